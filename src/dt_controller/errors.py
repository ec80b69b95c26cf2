"""Error taxonomy for Digital Twins lifecycle operations.

Every error raised by the reconciler carries the operation name and the
instance's name and resource group so a failure can be traced back to the
resource that produced it. Underlying causes are chained with ``raise ... from``.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all lifecycle errors."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        name: str | None = None,
        resource_group: str | None = None,
    ) -> None:
        self.operation = operation
        self.name = name
        self.resource_group = resource_group
        super().__init__(message)

    @classmethod
    def wrap(
        cls,
        operation: str,
        name: str,
        resource_group: str,
        cause: object,
        **kwargs: object,
    ) -> LifecycleError:
        """Build an error whose message names the operation and the resource."""
        message = f'{operation} Digital Twins "{name}" (Resource Group "{resource_group}"): {cause}'
        return cls(
            message,
            operation=operation,
            name=name,
            resource_group=resource_group,
            **kwargs,
        )


class InvalidAddressError(LifecycleError):
    """Raised when an addressing field is empty or otherwise unusable."""

    pass


class ImmutableFieldError(InvalidAddressError):
    """Raised when an update tries to change a field fixed at creation."""

    pass


class UnknownFieldError(LifecycleError):
    """Raised when an update marks a field this package does not manage as changed."""

    pass


class MalformedIdentityError(LifecycleError):
    """Raised when an identity string cannot be parsed.

    Fatal: the tracked identity is corrupt and retrying will not help.
    """

    pass


class AlreadyExistsError(LifecycleError):
    """Raised when Create finds an instance it does not track.

    The existing resource ID is exposed so the caller can import it instead.
    """

    def __init__(self, message: str, *, existing_id: str = "", **kwargs: object) -> None:
        self.existing_id = existing_id
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class RemoteQueryError(LifecycleError):
    """Raised when a remote call fails for a reason other than not-found.

    Not retried here; retry policy belongs to the Azure SDK pipeline.
    """

    pass


class OperationFailedError(LifecycleError):
    """Raised when a long-running operation reaches a failed terminal state."""

    def __init__(self, message: str, *, reason: str = "", **kwargs: object) -> None:
        self.reason = reason
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class OperationTimeoutError(LifecycleError, TimeoutError):
    """Raised when a deadline passes before an operation becomes terminal.

    The remote operation keeps running; callers may poll again later.
    """

    pass


class ConsistencyError(LifecycleError):
    """Raised when remote state contradicts an operation's reported success."""

    pass
