"""Azure Mock Context for integration testing.

Provides a context manager that patches Azure SDK components with mock implementations.
"""

from __future__ import annotations

from typing import Any
from unittest import mock

from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import MockDigitalTwinsClient, MockDigitalTwinsState

DEFAULT_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"


class MockAzureContext:
    """Context manager for Azure API mocking in integration tests.

    Patches:
    - azure.identity.ManagedIdentityCredential → MockManagedIdentityCredential
    - AzureDigitalTwinsManagementClient → MockDigitalTwinsClient

    Usage:
        with MockAzureContext(initial_instances=[...]) as ctx:
            reconciler = LifecycleReconciler.from_config(config)
            await reconciler.read(resource_id)

            assert ctx.client.calls_to("get")
    """

    def __init__(
        self,
        *,
        subscription_id: str = DEFAULT_SUBSCRIPTION_ID,
        client_id: str | None = None,
        initial_instances: list[dict[str, Any]] | None = None,
        **client_options: Any,
    ) -> None:
        """Initialize mock context.

        Args:
            subscription_id: Subscription the mock state lives in.
            client_id: User-assigned identity client ID to simulate.
            initial_instances: Instances to pre-populate (resource_group, name, location, tags).
            **client_options: Behaviour switches passed to MockDigitalTwinsClient.
        """
        self._client_id = client_id
        self._initial_instances = initial_instances or []
        self._client_options = client_options
        self.state = MockDigitalTwinsState(subscription_id)
        self._client: MockDigitalTwinsClient | None = None
        self._credential: MockManagedIdentityCredential | None = None
        self._patches: list[Any] = []

    @property
    def client(self) -> MockDigitalTwinsClient:
        """Get the mock client created by the code under test.

        Raises:
            RuntimeError: If no client has been built yet.
        """
        if self._client is None:
            raise RuntimeError("No Digital Twins client has been created in this context")
        return self._client

    @property
    def credential(self) -> MockManagedIdentityCredential:
        if self._credential is None:
            raise RuntimeError("MockAzureContext must be used as a context manager")
        return self._credential

    def __enter__(self) -> MockAzureContext:
        """Enter the mock context, applying patches."""
        self._credential = create_mock_credential(client_id=self._client_id)

        for instance in self._initial_instances:
            self.state.put(
                instance["resource_group"],
                instance["name"],
                instance.get("location", "westeurope"),
                instance.get("tags"),
            )

        credential_patch = mock.patch(
            "dt_controller.security.ManagedIdentityCredential",
            return_value=self._credential,
        )
        self._patches.append(credential_patch)

        def create_mock_client(credential: Any, subscription_id: str) -> MockDigitalTwinsClient:
            _ = credential, subscription_id
            self._client = MockDigitalTwinsClient(self.state, **self._client_options)
            return self._client

        client_patch = mock.patch(
            "dt_controller.transport.AzureDigitalTwinsManagementClient",
            side_effect=create_mock_client,
        )
        self._patches.append(client_patch)

        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the mock context, removing patches."""
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()
