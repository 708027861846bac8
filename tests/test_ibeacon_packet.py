"""Tests for iBeacon packet construction and parsing."""

from __future__ import annotations

import pytest

from ibeacon_transmitter.ibeacon_packet import (
    APPLE_COMPANY_ID,
    IBEACON_PAYLOAD_LENGTH,
    IBEACON_TYPE_CODE,
    BeaconFrame,
    BeaconIdentity,
    IBeaconConfigError,
    build_ibeacon_payload,
    build_manufacturer_data,
    frame_from_identity,
    normalize_identifier,
    parse_ibeacon_payload,
    uuid_to_bytes,
)

UUID = "856E3AB6-5EA8-45EB-9813-676BB29C4316"


class TestNormalizeIdentifier:
    """Tests for major/minor normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1", "1"),
            ("42", "42"),
            (" 7 ", "7"),
            ("0", "0"),
            ("-5", "0"),
            ("abc", "0"),
            ("", "0"),
            ("1.5", "0"),
            ("65535", "65535"),
            ("70000", "65535"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_identifier(raw) == expected

    def test_none_becomes_zero(self) -> None:
        assert normalize_identifier(None) == "0"


class TestBeaconFrame:
    """Tests for BeaconFrame validation."""

    def test_defaults(self) -> None:
        frame = BeaconFrame()
        assert frame.uuid == UUID
        assert frame.major == 0
        assert frame.minor == 0
        assert frame.measured_power == -59
        assert frame.data_fields == [0]

    def test_invalid_uuid(self) -> None:
        with pytest.raises(IBeaconConfigError, match="Invalid UUID"):
            BeaconFrame(uuid="not-a-uuid")

    def test_major_out_of_range(self) -> None:
        with pytest.raises(IBeaconConfigError, match="Major"):
            BeaconFrame(major=65536)

    def test_minor_negative(self) -> None:
        with pytest.raises(IBeaconConfigError, match="Minor"):
            BeaconFrame(minor=-1)

    def test_measured_power_out_of_range(self) -> None:
        with pytest.raises(IBeaconConfigError, match="Measured power"):
            BeaconFrame(measured_power=200)

    def test_data_fields_must_be_one_byte(self) -> None:
        with pytest.raises(IBeaconConfigError, match="data byte"):
            BeaconFrame(data_fields=[0, 1])

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(IBeaconConfigError, ValueError)


class TestFrameFromIdentity:
    """Tests for resolving a user identity into a frame."""

    def test_normalizes_invalid_values(self) -> None:
        identity = BeaconIdentity(uuid=UUID, major="-5", minor="abc")
        frame = frame_from_identity(identity)
        assert frame.major == 0
        assert frame.minor == 0

    def test_keeps_valid_values(self) -> None:
        frame = frame_from_identity(BeaconIdentity(major="1", minor="2"), measured_power=-65)
        assert (frame.major, frame.minor, frame.measured_power) == (1, 2, -65)


class TestPayload:
    """Tests for the wire layout."""

    def test_layout(self) -> None:
        frame = BeaconFrame(uuid=UUID, major=1, minor=2, measured_power=-59, data_fields=[0])
        payload = build_ibeacon_payload(frame)

        assert len(payload) == IBEACON_PAYLOAD_LENGTH == 24
        assert payload[0:2] == b"\x02\x15"
        assert payload[2:18] == uuid_to_bytes(UUID)
        assert payload[18:20] == b"\x00\x01"
        assert payload[20:22] == b"\x00\x02"
        assert payload[22] == 0xC5  # -59 as signed byte
        assert payload[23] == 0x00

    def test_type_code_constant(self) -> None:
        assert IBEACON_TYPE_CODE == 0x0215

    def test_big_endian_identifiers(self) -> None:
        payload = build_ibeacon_payload(BeaconFrame(major=0x1234, minor=0xABCD))
        assert payload[18:22] == b"\x12\x34\xab\xcd"

    def test_manufacturer_data_keyed_by_apple(self) -> None:
        frame = BeaconFrame(major=3)
        data = build_manufacturer_data(frame)
        assert list(data) == [APPLE_COMPANY_ID]
        assert APPLE_COMPANY_ID == 0x004C
        assert data[APPLE_COMPANY_ID] == build_ibeacon_payload(frame)

    def test_uuid_without_hyphens(self) -> None:
        assert uuid_to_bytes(UUID.replace("-", "")) == uuid_to_bytes(UUID)


class TestParse:
    """Tests for parse_ibeacon_payload."""

    def test_parse_built_payload(self) -> None:
        frame = BeaconFrame(uuid=UUID, major=10, minor=20, measured_power=-70, data_fields=[7])
        parsed = parse_ibeacon_payload(build_ibeacon_payload(frame))
        assert parsed == frame

    def test_parse_without_data_byte(self) -> None:
        payload = build_ibeacon_payload(BeaconFrame(major=5))[:-1]
        parsed = parse_ibeacon_payload(payload)
        assert parsed is not None
        assert parsed.major == 5
        assert parsed.data_fields == [0]

    def test_parse_lowercase_uuid_formats_upper(self) -> None:
        frame = BeaconFrame(uuid=UUID.lower())
        parsed = parse_ibeacon_payload(build_ibeacon_payload(frame))
        assert parsed.uuid == UUID

    def test_wrong_type_code(self) -> None:
        payload = b"\x02\x16" + build_ibeacon_payload(BeaconFrame())[2:]
        assert parse_ibeacon_payload(payload) is None

    def test_wrong_length(self) -> None:
        assert parse_ibeacon_payload(b"\x02\x15\x00") is None
