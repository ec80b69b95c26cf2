"""Identity codec for Digital Twins instances.

Azure resource IDs for Digital Twins instances follow the pattern:
/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.DigitalTwins/digitalTwinsInstances/{name}

The ID is the identity persisted by the orchestrator, so parsing must stay
backward compatible: once an ID has been stored it has to remain parseable.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidAddressError, MalformedIdentityError

PROVIDER_NAMESPACE = "Microsoft.DigitalTwins"
RESOURCE_TYPE = "digitalTwinsInstances"

SUBSCRIPTIONS_KEY = "subscriptions"
RESOURCE_GROUPS_KEY = "resourceGroups"
PROVIDERS_KEY = "providers"

# Older ARM responses lower-case this segment; IDs stored from them must still parse
LEGACY_RESOURCE_GROUPS_KEY = "resourcegroups"


@dataclass(frozen=True)
class DigitalTwinsId:
    """Addressing triple for a Digital Twins instance."""

    subscription_id: str
    resource_group: str
    name: str

    def id(self) -> str:
        """Encode this address as an Azure resource ID."""
        return encode(self)

    def __str__(self) -> str:
        return encode(self)


def encode(address: DigitalTwinsId) -> str:
    """Encode an addressing triple as a resource ID.

    Raises:
        InvalidAddressError: If any addressing field is empty or contains a
            path separator.
    """
    fields = (
        ("subscription_id", address.subscription_id),
        ("resource_group", address.resource_group),
        ("name", address.name),
    )
    missing = [label for label, value in fields if not value]
    if missing:
        raise InvalidAddressError(
            f"cannot encode Digital Twins ID, empty field(s): {', '.join(missing)}",
            name=address.name or None,
            resource_group=address.resource_group or None,
        )
    separated = [label for label, value in fields if "/" in value]
    if separated:
        raise InvalidAddressError(
            f"cannot encode Digital Twins ID, '/' in field(s): {', '.join(separated)}",
            name=address.name,
            resource_group=address.resource_group,
        )

    return (
        f"/{SUBSCRIPTIONS_KEY}/{address.subscription_id}"
        f"/{RESOURCE_GROUPS_KEY}/{address.resource_group}"
        f"/{PROVIDERS_KEY}/{PROVIDER_NAMESPACE}/{RESOURCE_TYPE}/{address.name}"
    )


def parse_digital_twins_id(resource_id: str) -> DigitalTwinsId:
    """Decode a resource ID into its addressing triple.

    Raises:
        MalformedIdentityError: If the ID does not have the expected structure.
    """
    if not resource_id or not isinstance(resource_id, str):
        raise MalformedIdentityError("Digital Twins ID is empty")

    if not resource_id.startswith("/"):
        raise MalformedIdentityError(
            f"Digital Twins ID must start with '/': {resource_id!r}"
        )

    segments = resource_id[1:].split("/")

    # subscriptions/{sub}/resourceGroups/{rg}/providers/{ns}/{type}/{name}
    if len(segments) != 8:
        raise MalformedIdentityError(
            f"Digital Twins ID must have 8 segments, got {len(segments)}: {resource_id!r}"
        )

    if any(not segment for segment in segments):
        raise MalformedIdentityError(
            f"Digital Twins ID contains an empty segment: {resource_id!r}"
        )

    subs_key, subscription_id, rg_key, resource_group, prov_key, namespace, rtype, name = segments

    if subs_key != SUBSCRIPTIONS_KEY:
        raise MalformedIdentityError(
            f"Digital Twins ID must start with /{SUBSCRIPTIONS_KEY}/: {resource_id!r}"
        )
    if rg_key not in (RESOURCE_GROUPS_KEY, LEGACY_RESOURCE_GROUPS_KEY):
        raise MalformedIdentityError(
            f"Digital Twins ID is missing the {RESOURCE_GROUPS_KEY} segment: {resource_id!r}"
        )
    if prov_key != PROVIDERS_KEY:
        raise MalformedIdentityError(
            f"Digital Twins ID is missing the {PROVIDERS_KEY} segment: {resource_id!r}"
        )
    if (namespace, rtype) != (PROVIDER_NAMESPACE, RESOURCE_TYPE):
        raise MalformedIdentityError(
            f"ID is not a {PROVIDER_NAMESPACE}/{RESOURCE_TYPE} resource: {resource_id!r}"
        )

    return DigitalTwinsId(
        subscription_id=subscription_id,
        resource_group=resource_group,
        name=name,
    )


def validate_import_id(resource_id: str) -> DigitalTwinsId:
    """Validate an externally supplied ID before any remote call is made.

    Used on the import path so that a malformed ID fails fast with a clear
    error instead of an opaque API failure.
    """
    return parse_digital_twins_id(resource_id.strip() if resource_id else resource_id)
