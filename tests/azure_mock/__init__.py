"""Azure API Mock for Integration Testing.

This module provides a mock implementation of the Azure Digital Twins
management API that enables integration testing without Azure connectivity.

Key Features:
- In-memory state for Digital Twins instances
- Long-running operation simulation (in progress → succeeded/failed)
- Error injection per SDK method (404, 409, 403, ...)
- Out-of-band deletion and never-completing operations
- Managed Identity simulation

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        reconciler = LifecycleReconciler.from_config(config)
        result = await reconciler.create(spec)

        assert ctx.state.instance_count == 1
"""

from .context import DEFAULT_SUBSCRIPTION_ID, MockAzureContext
from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import (
    MockDigitalTwinsClient,
    MockDigitalTwinsDescription,
    MockDigitalTwinsState,
    MockLROPoller,
    http_error,
)

__all__ = [
    "DEFAULT_SUBSCRIPTION_ID",
    "MockAzureContext",
    "MockDigitalTwinsClient",
    "MockDigitalTwinsDescription",
    "MockDigitalTwinsState",
    "MockLROPoller",
    "MockManagedIdentityCredential",
    "create_mock_credential",
    "http_error",
]
