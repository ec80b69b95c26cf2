"""Transport capability used by the reconciler to reach ARM.

The reconciler depends only on the DigitalTwinsTransport protocol. The Azure
implementation wraps the Digital Twins management SDK; authentication, retries
and throttling are handled by the SDK's azure-core pipeline.

All methods are blocking. The reconciler runs them in the default executor.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from azure.mgmt.digitaltwins import AzureDigitalTwinsManagementClient
from azure.mgmt.digitaltwins.models import DigitalTwinsDescription, DigitalTwinsPatchDescription

from .operation import AsyncOperation, PollerOperation
from .security import get_managed_identity_credential

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


@runtime_checkable
class DigitalTwinsTransport(Protocol):
    """Remote calls needed to manage a Digital Twins instance.

    Not-found must surface as ``azure.core.exceptions.ResourceNotFoundError``
    (or an ``HttpResponseError`` with status 404); everything else as another
    ``AzureError``.
    """

    def get(self, resource_group: str, name: str) -> Any:
        """Fetch the instance description."""
        ...

    def begin_create_or_update(
        self,
        resource_group: str,
        name: str,
        location: str,
        tags: dict[str, str],
    ) -> AsyncOperation:
        """Start provisioning an instance."""
        ...

    def patch(self, resource_group: str, name: str, patch: dict[str, Any]) -> AsyncOperation:
        """Apply a partial update containing only the given fields."""
        ...

    def begin_delete(self, resource_group: str, name: str) -> AsyncOperation:
        """Start deleting an instance."""
        ...


class AzureDigitalTwinsTransport:
    """DigitalTwinsTransport backed by ``azure-mgmt-digitaltwins``."""

    def __init__(self, client: AzureDigitalTwinsManagementClient) -> None:
        self._client = client

    def get(self, resource_group: str, name: str) -> Any:
        return self._client.digital_twins.get(resource_group, name)

    def begin_create_or_update(
        self,
        resource_group: str,
        name: str,
        location: str,
        tags: dict[str, str],
    ) -> AsyncOperation:
        description = DigitalTwinsDescription(location=location, tags=tags)
        poller = self._client.digital_twins.begin_create_or_update(
            resource_group, name, description
        )
        return PollerOperation(poller, description=f"creating {name}")

    def patch(self, resource_group: str, name: str, patch: dict[str, Any]) -> AsyncOperation:
        description = DigitalTwinsPatchDescription(**patch)
        poller = self._client.digital_twins.begin_update(resource_group, name, description)
        return PollerOperation(poller, description=f"updating {name}")

    def begin_delete(self, resource_group: str, name: str) -> AsyncOperation:
        poller = self._client.digital_twins.begin_delete(resource_group, name)
        return PollerOperation(poller, description=f"deleting {name}")


def create_transport(config: Config) -> AzureDigitalTwinsTransport:
    """Build the Azure transport with a managed identity credential.

    Raises:
        SecretlessViolationError: If credential secrets are present in the environment.
    """
    credential = get_managed_identity_credential(config.client_id)
    client = AzureDigitalTwinsManagementClient(
        credential=credential,
        subscription_id=config.subscription_id,
    )
    logger.info(
        "Digital Twins transport ready",
        extra={"subscription_id": config.subscription_id},
    )
    return AzureDigitalTwinsTransport(client)
