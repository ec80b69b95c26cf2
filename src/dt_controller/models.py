"""Pydantic models for Digital Twins desired state, plus the remote snapshot.

These models provide:
1. Type-safe YAML parsing of the desired configuration
2. Validation at the boundary (fail fast, fail loudly)
3. Projection of SDK responses into a plain RemoteState
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# Digital Twins naming rules: 3-63 chars, alphanumerics and hyphens,
# starting and ending with an alphanumeric
VALID_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9-]{1,61}[A-Za-z0-9]$"

# ARM resource group names: word characters, hyphens, periods and
# parentheses, not ending with a period
VALID_RESOURCE_GROUP_PATTERN = r"^[-\w.()]*[-\w()]$"
MAX_RESOURCE_GROUP_NAME_LENGTH = 90

# ARM tag limits
MAX_TAG_COUNT = 50
MAX_TAG_KEY_LENGTH = 512
MAX_TAG_VALUE_LENGTH = 256

# Fields fixed at creation; changing them means destroy and recreate
IMMUTABLE_FIELDS: frozenset[str] = frozenset({"name", "resource_group_name", "location"})

# Fields that can be sent in a PATCH request
PATCHABLE_FIELDS: frozenset[str] = frozenset({"tags"})


def normalize_location(location: str | None) -> str:
    """Normalize an Azure location to its canonical form.

    "West US" and "westus" refer to the same region; ARM returns the latter.
    """
    if not location:
        return ""
    return location.replace(" ", "").lower()


def expand_tags(tags: dict[str, Any] | None) -> dict[str, str]:
    """Convert declared tags into the string map sent to ARM."""
    if not tags:
        return {}
    return {str(key): "" if value is None else str(value) for key, value in tags.items()}


def flatten_tags(tags: dict[str, str | None] | None) -> dict[str, str]:
    """Convert tags from an ARM response into the declared tag set."""
    if not tags:
        return {}
    return {key: value or "" for key, value in tags.items()}


class DigitalTwinsSpec(BaseModel):
    """Desired configuration of a Digital Twins instance."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    name: Annotated[str, Field(min_length=3, max_length=63)]
    resource_group_name: Annotated[
        str,
        Field(min_length=1, max_length=MAX_RESOURCE_GROUP_NAME_LENGTH, alias="resourceGroupName"),
    ]
    location: Annotated[str, Field(min_length=1)]
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(VALID_NAME_PATTERN, v):
            raise ValueError(
                "name must be 3-63 characters of letters, digits and hyphens, "
                "starting and ending with a letter or digit"
            )
        return v

    @field_validator("resource_group_name")
    @classmethod
    def validate_resource_group_name(cls, v: str) -> str:
        if not re.match(VALID_RESOURCE_GROUP_PATTERN, v):
            raise ValueError(
                "resource group name may only contain letters, digits, underscores, "
                "hyphens, periods and parentheses, and cannot end with a period"
            )
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: dict[str, str]) -> dict[str, str]:
        if len(v) > MAX_TAG_COUNT:
            raise ValueError(f"a maximum of {MAX_TAG_COUNT} tags can be applied to each resource")
        for key, value in v.items():
            if len(key) > MAX_TAG_KEY_LENGTH:
                raise ValueError(f"tag key {key[:32]!r}... exceeds {MAX_TAG_KEY_LENGTH} characters")
            if len(value) > MAX_TAG_VALUE_LENGTH:
                raise ValueError(f"tag value for {key!r} exceeds {MAX_TAG_VALUE_LENGTH} characters")
        return v


@dataclass(frozen=True)
class RemoteState:
    """Snapshot of a Digital Twins instance as ARM reports it.

    Recomputed on every probe and never cached beyond one reconciliation call.
    """

    id: str = ""
    name: str = ""
    resource_group: str = ""
    location: str = ""
    host_name: str | None = None
    provisioning_state: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    exists: bool = False

    @classmethod
    def from_sdk(cls, description: Any, resource_group: str) -> RemoteState:
        """Project an SDK ``DigitalTwinsDescription`` into a RemoteState.

        Location is normalized and tags are flattened into the declared set.
        """
        resource_id = getattr(description, "id", None) or ""
        return cls(
            id=resource_id,
            name=getattr(description, "name", None) or "",
            resource_group=resource_group,
            location=normalize_location(getattr(description, "location", None)),
            host_name=getattr(description, "host_name", None),
            provisioning_state=getattr(description, "provisioning_state", None),
            tags=flatten_tags(getattr(description, "tags", None)),
            exists=bool(resource_id),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "name": self.name,
            "resource_group_name": self.resource_group,
            "location": self.location,
            "host_name": self.host_name,
            "provisioning_state": self.provisioning_state,
            "tags": dict(self.tags),
        }
