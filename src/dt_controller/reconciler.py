"""Lifecycle reconciliation for Azure Digital Twins instances.

The reconciler implements the four operations an orchestrator invokes:

1. create: guard against adopting an untracked instance, provision, wait,
   re-read, and return the resource ID to persist
2. read: fetch the instance and project it into RemoteState, reporting
   found=False when it was deleted out-of-band
3. update: send a minimal PATCH with only the changed fields
4. delete: remove the instance, treating an absent instance as deleted

The reconciler holds no state between calls. All state lives in ARM and in
the orchestrator's store, which must serialize calls per resource ID.

SECURITY: Every remote call and every poll iteration is bounded by the
operation's deadline.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from azure.core.exceptions import AzureError, HttpResponseError

from .config import Config, TimeoutsConfig
from .errors import (
    AlreadyExistsError,
    ConsistencyError,
    ImmutableFieldError,
    LifecycleError,
    MalformedIdentityError,
    OperationFailedError,
    OperationTimeoutError,
    RemoteQueryError,
    UnknownFieldError,
)
from .identity import DigitalTwinsId, encode, parse_digital_twins_id, validate_import_id
from .models import (
    IMMUTABLE_FIELDS,
    PATCHABLE_FIELDS,
    DigitalTwinsSpec,
    RemoteState,
    expand_tags,
    normalize_location,
)
from .operation import AsyncOperation, Deadline, ExponentialBackoff, OperationWaiter
from .prober import ExistenceProber, ProbeResult, response_was_not_found
from .transport import DigitalTwinsTransport, create_transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_CONFLICT = 409

RESOURCE_TYPE_NAME = "azurerm_iothub_digital_twins"


@dataclass(frozen=True)
class CreateResult:
    """Outcome of a successful create."""

    identity: str
    state: RemoteState


@dataclass(frozen=True)
class ReadResult:
    """Outcome of a read. found=False means drop the resource from state."""

    found: bool
    state: RemoteState = field(default_factory=RemoteState)


def build_patch(spec: DigitalTwinsSpec, changed_fields: Iterable[str]) -> dict[str, Any]:
    """Build a PATCH body holding only the changed, patchable fields.

    Unchanged fields are never resent so out-of-band edits to fields this
    package does not manage are left alone.
    """
    patch: dict[str, Any] = {}
    changed = set(changed_fields)
    if "tags" in changed:
        patch["tags"] = expand_tags(spec.tags)
    return patch


class LifecycleReconciler:
    """Create/Read/Update/Delete for a single Digital Twins instance.

    Collaborators are injected; nothing is reached through globals.
    """

    def __init__(
        self,
        transport: DigitalTwinsTransport,
        prober: ExistenceProber,
        waiter: OperationWaiter,
        subscription_id: str,
        timeouts: TimeoutsConfig | None = None,
    ) -> None:
        self._transport = transport
        self._prober = prober
        self._waiter = waiter
        self._subscription_id = subscription_id
        self._timeouts = timeouts or TimeoutsConfig()

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport: DigitalTwinsTransport | None = None,
    ) -> LifecycleReconciler:
        """Wire a reconciler from configuration.

        Raises:
            SecretlessViolationError: If a transport must be built and
                credential secrets are present in the environment.
        """
        transport = transport or create_transport(config)
        strategy = ExponentialBackoff(
            base_seconds=config.poll_interval_seconds,
            max_seconds=config.max_poll_interval_seconds,
        )
        return cls(
            transport=transport,
            prober=ExistenceProber(transport),
            waiter=OperationWaiter(strategy),
            subscription_id=config.subscription_id,
            timeouts=config.timeouts,
        )

    @staticmethod
    def import_id(resource_id: str) -> DigitalTwinsId:
        """Validate an externally supplied ID before it is imported.

        Raises:
            MalformedIdentityError: If the ID cannot be parsed.
        """
        return validate_import_id(resource_id)

    async def create(self, spec: DigitalTwinsSpec) -> CreateResult:
        """Provision a new instance from its desired configuration.

        Raises:
            InvalidAddressError: If an addressing field is empty.
            AlreadyExistsError: If the instance already exists.
            RemoteQueryError: If a remote call failed.
            OperationFailedError: If provisioning failed remotely.
            OperationTimeoutError: If the create timeout elapsed.
            ConsistencyError: If the instance is missing after success.
        """
        name = spec.name
        resource_group = spec.resource_group_name
        address = DigitalTwinsId(self._subscription_id, resource_group, name)
        prospective_id = encode(address)
        deadline = Deadline.after(self._timeouts.create_seconds)

        log_extra = {"instance_name": name, "resource_group": resource_group, "operation": "create"}
        logger.info("Creating Digital Twins instance", extra=log_extra)

        existing = await self._probe(
            address, deadline, "checking for presence of existing"
        )
        if existing.found:
            existing_id = existing.state.id or prospective_id
            logger.warning(
                "Digital Twins instance already exists",
                extra={**log_extra, "resource_id": existing_id},
            )
            raise AlreadyExistsError(
                f'A resource with the ID "{existing_id}" already exists - to be managed '
                f'it needs to be imported into the state. Please see the resource '
                f'documentation for "{RESOURCE_TYPE_NAME}" for more information.',
                existing_id=existing_id,
                operation="creating",
                name=name,
                resource_group=resource_group,
            )

        operation = await self._call(
            deadline,
            "creating",
            address,
            self._transport.begin_create_or_update,
            resource_group,
            name,
            normalize_location(spec.location),
            expand_tags(spec.tags),
            conflict_is_exists=True,
        )

        await self._wait(operation, deadline, "creating", address)

        created = await self._probe(address, deadline, "retrieving")
        if not created.found:
            raise ConsistencyError.wrap(
                "creating",
                name,
                resource_group,
                "empty or nil ID returned after successful create",
            )

        try:
            parsed = parse_digital_twins_id(created.state.id)
        except MalformedIdentityError as e:
            raise MalformedIdentityError.wrap("parsing ID returned for", name, resource_group, e) from e

        identity = encode(DigitalTwinsId(self._subscription_id, parsed.resource_group, parsed.name))
        logger.info(
            "Created Digital Twins instance",
            extra={**log_extra, "resource_id": identity, "host_name": created.state.host_name},
        )
        return CreateResult(identity=identity, state=self._project(created.state, parsed))

    async def read(self, resource_id: str) -> ReadResult:
        """Fetch the current state of a tracked instance.

        Raises:
            MalformedIdentityError: If the tracked ID is corrupt.
            RemoteQueryError: If the query failed for a reason other than not-found.
        """
        address = self._decode("reading", resource_id)
        deadline = Deadline.after(self._timeouts.read_seconds)

        result = await self._probe(address, deadline, "retrieving")
        if not result.found:
            logger.info(
                "Digital Twins instance does not exist - removing from state",
                extra={"resource_id": resource_id, "operation": "read"},
            )
            return ReadResult(found=False)

        return ReadResult(found=True, state=self._project(result.state, address))

    async def update(
        self,
        resource_id: str,
        spec: DigitalTwinsSpec,
        changed_fields: Iterable[str],
    ) -> RemoteState:
        """Apply changed fields to a tracked instance and return its new state.

        Args:
            resource_id: ID persisted by the orchestrator.
            spec: Desired configuration after the change.
            changed_fields: Spec field names the caller marked as changed.

        Raises:
            ImmutableFieldError: If a field fixed at creation was changed.
            UnknownFieldError: If a changed field is not managed here.
            RemoteQueryError: If the patch call failed.
            OperationFailedError: If an asynchronous patch failed remotely.
            ConsistencyError: If the instance is missing after the patch.
        """
        address = self._decode("updating", resource_id)
        changed = set(changed_fields)

        unknown = changed - IMMUTABLE_FIELDS - PATCHABLE_FIELDS
        if unknown:
            raise UnknownFieldError.wrap(
                "updating",
                address.name,
                address.resource_group,
                f"unknown fields marked changed: {sorted(unknown)}",
            )

        immutable = sorted(changed & IMMUTABLE_FIELDS)
        if spec.name != address.name:
            immutable.append("name")
        if spec.resource_group_name != address.resource_group:
            immutable.append("resource_group_name")
        if immutable:
            raise ImmutableFieldError.wrap(
                "updating",
                address.name,
                address.resource_group,
                f"fields {sorted(set(immutable))} cannot change after creation; "
                "the instance must be replaced",
            )

        patch = build_patch(spec, changed)
        log_extra = {
            "instance_name": address.name,
            "resource_group": address.resource_group,
            "operation": "update",
            "patched_fields": sorted(patch),
        }

        if patch:
            deadline = Deadline.after(self._timeouts.update_seconds)
            logger.info("Updating Digital Twins instance", extra=log_extra)
            operation = await self._call(
                deadline,
                "updating",
                address,
                self._transport.patch,
                address.resource_group,
                address.name,
                patch,
            )
            # Returns at once when the patch completed synchronously
            await self._wait(operation, deadline, "updating", address)
        else:
            logger.info("No patchable changes, skipping update call", extra=log_extra)

        result = await self.read(resource_id)
        if not result.found:
            raise ConsistencyError.wrap(
                "updating",
                address.name,
                address.resource_group,
                "instance not found after update",
            )
        return result.state

    async def delete(self, resource_id: str) -> None:
        """Delete a tracked instance. Deleting an absent instance succeeds.

        Raises:
            MalformedIdentityError: If the tracked ID is corrupt.
            RemoteQueryError: If the delete call failed.
            OperationFailedError: If the deletion failed remotely.
            OperationTimeoutError: If the delete timeout elapsed.
        """
        address = self._decode("deleting", resource_id)
        deadline = Deadline.after(self._timeouts.delete_seconds)
        log_extra = {
            "instance_name": address.name,
            "resource_group": address.resource_group,
            "operation": "delete",
        }
        logger.info("Deleting Digital Twins instance", extra=log_extra)

        try:
            operation = await self._call(
                deadline,
                "deleting",
                address,
                self._transport.begin_delete,
                address.resource_group,
                address.name,
                absorb_not_found=True,
            )
        except _NotFound:
            logger.info("Digital Twins instance already absent", extra=log_extra)
            return

        try:
            await self._wait(operation, deadline, "deleting", address)
        except OperationFailedError:
            error = getattr(operation, "error", None)
            if isinstance(error, AzureError) and response_was_not_found(error):
                logger.info("Digital Twins instance vanished during delete", extra=log_extra)
                return
            raise

        logger.info("Deleted Digital Twins instance", extra=log_extra)

    def _decode(self, operation: str, resource_id: str) -> DigitalTwinsId:
        try:
            return parse_digital_twins_id(resource_id)
        except MalformedIdentityError as e:
            raise MalformedIdentityError(
                f"{operation} Digital Twins: {e}", operation=operation
            ) from e

    def _project(self, state: RemoteState, address: DigitalTwinsId) -> RemoteState:
        """Apply remote attributes onto the declared fields."""
        return dataclasses.replace(
            state,
            name=address.name,
            resource_group=address.resource_group,
            location=normalize_location(state.location),
        )

    async def _probe(
        self,
        address: DigitalTwinsId,
        deadline: Deadline,
        operation: str,
    ) -> ProbeResult:
        try:
            return await self._prober.probe(address, deadline)
        except LifecycleError as e:
            raise type(e).wrap(operation, address.name, address.resource_group, e) from e

    async def _call(
        self,
        deadline: Deadline,
        operation: str,
        address: DigitalTwinsId,
        func: Callable[..., T],
        *args: Any,
        absorb_not_found: bool = False,
        conflict_is_exists: bool = False,
    ) -> T:
        """Run a blocking transport call bounded by the deadline.

        Raises:
            _NotFound: If absorb_not_found is set and ARM answered 404.
            AlreadyExistsError: If conflict_is_exists is set and ARM answered
                409 Conflict.
            RemoteQueryError: For any other SDK error.
            OperationTimeoutError: If the deadline passed first.
        """
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, func, *args),
                timeout=deadline.remaining(),
            )
        except TimeoutError as e:
            raise OperationTimeoutError.wrap(
                operation, address.name, address.resource_group, "deadline exceeded"
            ) from e
        except AzureError as e:
            if absorb_not_found and response_was_not_found(e):
                raise _NotFound() from e
            if (
                conflict_is_exists
                and isinstance(e, HttpResponseError)
                and e.status_code == HTTP_CONFLICT
            ):
                raise AlreadyExistsError.wrap(
                    operation,
                    address.name,
                    address.resource_group,
                    e,
                    existing_id=encode(address),
                ) from e
            raise RemoteQueryError.wrap(operation, address.name, address.resource_group, e) from e

    async def _wait(
        self,
        operation: AsyncOperation,
        deadline: Deadline,
        verb: str,
        address: DigitalTwinsId,
    ) -> None:
        description = f"waiting on {verb} future for"
        try:
            await self._waiter.wait(operation, deadline, description=f"{verb} {address.name}")
        except OperationFailedError as e:
            raise OperationFailedError.wrap(
                description, address.name, address.resource_group, e.reason, reason=e.reason
            ) from e
        except OperationTimeoutError as e:
            raise OperationTimeoutError.wrap(
                description, address.name, address.resource_group, e
            ) from e


class _NotFound(Exception):
    """Internal signal for a 404 that the caller asked to absorb."""

    pass
