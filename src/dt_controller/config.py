"""Configuration management with validation.

All settings are validated at load time so a misconfigured operator fails
before it makes any Azure API call.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Per-operation timeouts, matching the provider defaults
DEFAULT_CREATE_TIMEOUT_SECONDS = 1800
DEFAULT_READ_TIMEOUT_SECONDS = 300
DEFAULT_UPDATE_TIMEOUT_SECONDS = 1800
DEFAULT_DELETE_TIMEOUT_SECONDS = 1800

MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 24 * 3600

DEFAULT_POLL_INTERVAL_SECONDS = 10
DEFAULT_MAX_POLL_INTERVAL_SECONDS = 60

# Security constraints
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file

VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


@dataclass(frozen=True)
class TimeoutsConfig:
    """Upper bounds for each lifecycle operation, in seconds."""

    create_seconds: int = DEFAULT_CREATE_TIMEOUT_SECONDS
    read_seconds: int = DEFAULT_READ_TIMEOUT_SECONDS
    update_seconds: int = DEFAULT_UPDATE_TIMEOUT_SECONDS
    delete_seconds: int = DEFAULT_DELETE_TIMEOUT_SECONDS

    def validate(self) -> list[str]:
        errors: list[str] = []
        for env_name, value in (
            ("CREATE_TIMEOUT", self.create_seconds),
            ("READ_TIMEOUT", self.read_seconds),
            ("UPDATE_TIMEOUT", self.update_seconds),
            ("DELETE_TIMEOUT", self.delete_seconds),
        ):
            if not (MIN_TIMEOUT_SECONDS <= value <= MAX_TIMEOUT_SECONDS):
                errors.append(
                    f"{env_name} must be between {MIN_TIMEOUT_SECONDS} "
                    f"and {MAX_TIMEOUT_SECONDS} seconds"
                )
        return errors


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    subscription_id: str

    # User-assigned managed identity; system-assigned when None
    client_id: str | None = None

    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_interval_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS

    # Structured JSON logs to stdout
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        errors.extend(self.timeouts.validate())

        if self.poll_interval_seconds <= 0:
            errors.append("POLL_INTERVAL must be positive")
        elif self.poll_interval_seconds > self.max_poll_interval_seconds:
            errors.append("POLL_INTERVAL cannot exceed MAX_POLL_INTERVAL")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription holding the Digital Twins instances
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity (optional)
            CREATE_TIMEOUT: Create timeout in seconds (default: 1800)
            READ_TIMEOUT: Read timeout in seconds (default: 300)
            UPDATE_TIMEOUT: Update timeout in seconds (default: 1800)
            DELETE_TIMEOUT: Delete timeout in seconds (default: 1800)
            POLL_INTERVAL: Initial operation poll interval in seconds (default: 10)
            MAX_POLL_INTERVAL: Poll interval cap in seconds (default: 60)
            ENABLE_AUDIT_LOGGING: Enable JSON logs (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            timeouts=TimeoutsConfig(
                create_seconds=get_int("CREATE_TIMEOUT", DEFAULT_CREATE_TIMEOUT_SECONDS),
                read_seconds=get_int("READ_TIMEOUT", DEFAULT_READ_TIMEOUT_SECONDS),
                update_seconds=get_int("UPDATE_TIMEOUT", DEFAULT_UPDATE_TIMEOUT_SECONDS),
                delete_seconds=get_int("DELETE_TIMEOUT", DEFAULT_DELETE_TIMEOUT_SECONDS),
            ),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            max_poll_interval_seconds=get_int(
                "MAX_POLL_INTERVAL", DEFAULT_MAX_POLL_INTERVAL_SECONDS
            ),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
