"""Credential acquisition for the Digital Twins transport.

Only managed identities are used to reach ARM. Service principal secrets,
certificates and passwords in the environment are treated as a
misconfiguration and stop the process before any SDK client is built.
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate secret-based authentication
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_var} is set. Digital Twins lifecycle calls "
    "authenticate with a managed identity only; remove credential variables "
    "from the environment and assign a managed identity instead."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are found in the environment."""

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to continue when secret-bearing variables are set.

    Raises:
        SecretlessViolationError: If any forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={"security_event": "credential_detected", "env_var": env_var},
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))


def get_managed_identity_credential(
    client_id: str | None = None,
) -> ManagedIdentityCredential:
    """Get a ManagedIdentityCredential after checking the environment.

    Args:
        client_id: Client ID of a user-assigned identity; system-assigned if None.
    """
    enforce_secretless_architecture()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()
