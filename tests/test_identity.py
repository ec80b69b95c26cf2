"""Tests for Digital Twins identity encoding and parsing."""

from __future__ import annotations

import pytest

from dt_controller.errors import InvalidAddressError, MalformedIdentityError
from dt_controller.identity import (
    DigitalTwinsId,
    encode,
    parse_digital_twins_id,
    validate_import_id,
)

SUB = "12345678-1234-1234-1234-123456789012"
VALID_ID = (
    f"/subscriptions/{SUB}/resourceGroups/rg1"
    "/providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1"
)


class TestEncode:
    """Tests for encoding an address into a resource ID."""

    def test_encode_scenario_id(self) -> None:
        """Encoded ID follows the ARM resource ID layout."""
        assert encode(DigitalTwinsId(SUB, "rg1", "dt1")) == VALID_ID

    def test_str_and_id_match_encode(self) -> None:
        address = DigitalTwinsId(SUB, "rg1", "dt1")
        assert str(address) == VALID_ID
        assert address.id() == VALID_ID

    @pytest.mark.parametrize(
        "address",
        [
            DigitalTwinsId("", "rg1", "dt1"),
            DigitalTwinsId(SUB, "", "dt1"),
            DigitalTwinsId(SUB, "rg1", ""),
        ],
    )
    def test_empty_field_rejected(self, address: DigitalTwinsId) -> None:
        with pytest.raises(InvalidAddressError):
            encode(address)

    @pytest.mark.parametrize(
        "address",
        [
            DigitalTwinsId(SUB, "rg1", "a/b"),
            DigitalTwinsId(SUB, "rg/x", "dt1"),
            DigitalTwinsId(f"{SUB}/extra", "rg1", "dt1"),
        ],
    )
    def test_path_separator_rejected(self, address: DigitalTwinsId) -> None:
        """Anything encode accepts must decode back to the same triple."""
        with pytest.raises(InvalidAddressError):
            encode(address)


class TestParse:
    """Tests for parsing resource IDs."""

    @pytest.mark.parametrize(
        "address",
        [
            DigitalTwinsId(SUB, "rg1", "dt1"),
            DigitalTwinsId(SUB, "My-Resource-Group", "Twins-Prod-01"),
            DigitalTwinsId("ABCDEF00-1234-1234-1234-123456789012", "RG_with.dots(1)", "a1b"),
        ],
    )
    def test_round_trip_preserves_case(self, address: DigitalTwinsId) -> None:
        """Decoding an encoded address recovers it exactly."""
        assert parse_digital_twins_id(encode(address)) == address

    def test_parse_valid(self) -> None:
        parsed = parse_digital_twins_id(VALID_ID)
        assert parsed.subscription_id == SUB
        assert parsed.resource_group == "rg1"
        assert parsed.name == "dt1"

    def test_legacy_lowercase_resource_groups_segment(self) -> None:
        """IDs stored with a lower-cased resourcegroups key still parse."""
        legacy = VALID_ID.replace("/resourceGroups/", "/resourcegroups/")
        assert parse_digital_twins_id(legacy) == DigitalTwinsId(SUB, "rg1", "dt1")

    @pytest.mark.parametrize(
        "resource_id",
        [
            "",
            "subscriptions/x/resourceGroups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1",
            f"/subscriptions/{SUB}/resourceGroups/rg1",
            f"/subscriptions/{SUB}/resourceGroups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances",
            f"/subscriptions/{SUB}/resourceGroups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances/",
            f"/subscriptions/{SUB}/resourceGroups//providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1",
            f"/subscriptions/{SUB}/resourceGroups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1/extra",
            f"/tenants/{SUB}/resourceGroups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1",
            f"/subscriptions/{SUB}/groups/rg1/providers/Microsoft.DigitalTwins/digitalTwinsInstances/dt1",
            f"/subscriptions/{SUB}/resourceGroups/rg1/providers/Microsoft.Devices/IotHubs/dt1",
            f"/subscriptions/{SUB}/resourceGroups/rg1/provider/Microsoft.DigitalTwins/digitalTwinsInstances/dt1",
        ],
    )
    def test_malformed_ids_rejected(self, resource_id: str) -> None:
        """Malformed IDs always fail with MalformedIdentityError."""
        with pytest.raises(MalformedIdentityError):
            parse_digital_twins_id(resource_id)


class TestValidateImportId:
    """Tests for import-time ID validation."""

    def test_valid_id_accepted(self) -> None:
        assert validate_import_id(VALID_ID).name == "dt1"

    def test_surrounding_whitespace_ignored(self) -> None:
        assert validate_import_id(f"  {VALID_ID}\n").name == "dt1"

    def test_iothub_id_rejected(self) -> None:
        """An ID for another resource type fails before any remote call."""
        with pytest.raises(MalformedIdentityError) as exc_info:
            validate_import_id(
                f"/subscriptions/{SUB}/resourceGroups/rg1/providers/Microsoft.Devices/IotHubs/hub1"
            )
        assert "Microsoft.DigitalTwins" in str(exc_info.value)
