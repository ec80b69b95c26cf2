"""Existence probing for Digital Twins instances.

A probe distinguishes "the instance is absent" (a normal outcome, reported
as found=False) from "presence could not be determined" (RemoteQueryError).
Callers branch on ``found``, never on the absence of an exception.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError

from .errors import OperationTimeoutError, RemoteQueryError
from .identity import DigitalTwinsId
from .models import RemoteState
from .operation import Deadline
from .transport import DigitalTwinsTransport

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


def response_was_not_found(error: AzureError) -> bool:
    """Check whether an SDK error means the resource does not exist."""
    if isinstance(error, ResourceNotFoundError):
        return True
    return isinstance(error, HttpResponseError) and error.status_code == HTTP_NOT_FOUND


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a probe."""

    found: bool
    state: RemoteState = field(default_factory=RemoteState)


class ExistenceProber:
    """Fetches the current remote state of an instance by address."""

    def __init__(self, transport: DigitalTwinsTransport) -> None:
        self._transport = transport

    async def probe(self, address: DigitalTwinsId, deadline: Deadline) -> ProbeResult:
        """Fetch the instance at ``address``.

        Raises:
            RemoteQueryError: If the query failed for any reason but not-found.
            OperationTimeoutError: If the deadline passed before ARM answered.
        """
        loop = asyncio.get_event_loop()

        try:
            description = await asyncio.wait_for(
                loop.run_in_executor(
                    None, self._transport.get, address.resource_group, address.name
                ),
                timeout=deadline.remaining(),
            )
        except TimeoutError as e:
            raise OperationTimeoutError(
                f"retrieving Digital Twins {address.name!r} timed out",
                name=address.name,
                resource_group=address.resource_group,
            ) from e
        except AzureError as e:
            if response_was_not_found(e):
                logger.debug(
                    "Digital Twins instance not found",
                    extra={"instance_name": address.name, "resource_group": address.resource_group},
                )
                return ProbeResult(found=False)
            raise RemoteQueryError(
                str(e),
                name=address.name,
                resource_group=address.resource_group,
            ) from e

        state = RemoteState.from_sdk(description, resource_group=address.resource_group)

        # An empty ID means there is nothing to manage
        if not state.exists:
            return ProbeResult(found=False)

        return ProbeResult(found=True, state=state)
