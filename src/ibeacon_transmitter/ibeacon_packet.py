"""iBeacon packet construction utilities.

This module provides pure Python functions to build and parse iBeacon
advertisement packets. It has no platform dependencies and is shared by the
BlueZ advertiser and the verification scanner.

iBeacon Packet Format (Manufacturer Specific Data):
    Offset  Length  Value       Description
    0-1     2       0x4C00      Apple Company ID (little-endian)
    2-3     2       0x0215      Beacon type code (type 0x02, length 0x15)
    4-19    16      [UUID]      Proximity UUID (big-endian)
    20-21   2       [Major]     Major value (big-endian)
    22-23   2       [Minor]     Minor value (big-endian)
    24      1       [TxPower]   Measured power at 1 m (signed int8)
    25      1       [Data]      Data field
"""

from dataclasses import dataclass, field
import re
import struct

# https://www.bluetooth.com/specifications/assigned-numbers/
APPLE_COMPANY_ID = 0x004C

IBEACON_TYPE_CODE = 0x0215

# Beacon layout in the AltBeacon parser notation
IBEACON_LAYOUT = "m:2-3=0215,i:4-19,i:20-21,i:22-23,p:24-24,d:25-25"

# Offsets below are relative to the payload (company ID stripped)
IBEACON_PAYLOAD_FORMAT = ">H16sHHbB"
IBEACON_PAYLOAD_LENGTH = struct.calcsize(IBEACON_PAYLOAD_FORMAT)  # 24 bytes

DEFAULT_UUID = "856E3AB6-5EA8-45EB-9813-676BB29C4316"
DEFAULT_MAJOR = "0"
DEFAULT_MINOR = "0"
DEFAULT_MEASURED_POWER = -59  # Typical RSSI at 1 meter for BLE devices
DEFAULT_DATA_FIELDS = (0,)

MAX_IDENTIFIER = 0xFFFF

UUID_PATTERN = re.compile(
    r"^[0-9A-Fa-f]{8}-?[0-9A-Fa-f]{4}-?[0-9A-Fa-f]{4}-?[0-9A-Fa-f]{4}-?[0-9A-Fa-f]{12}$"
)


class IBeaconConfigError(ValueError):
    """Raised when iBeacon configuration is invalid."""

    pass


@dataclass
class BeaconIdentity:
    """User-editable beacon identity.

    Major and minor are kept as the strings the user typed. They are only
    normalized when transmission starts, see normalize_identifier().
    """

    uuid: str = DEFAULT_UUID
    major: str = DEFAULT_MAJOR
    minor: str = DEFAULT_MINOR


@dataclass
class BeaconFrame:
    """Fully resolved iBeacon advertisement contents.

    Attributes:
        uuid: 16-byte proximity UUID as string
        major: Group identifier (0-65535)
        minor: Device identifier within group (0-65535)
        measured_power: Calibrated RSSI at 1 meter in dBm
        data_fields: Trailing data bytes (one byte in the iBeacon layout)
    """

    uuid: str = DEFAULT_UUID
    major: int = 0
    minor: int = 0
    measured_power: int = DEFAULT_MEASURED_POWER
    data_fields: list[int] = field(default_factory=lambda: list(DEFAULT_DATA_FIELDS))

    def __post_init__(self) -> None:
        validate_frame(self)


def normalize_identifier(value: str) -> str:
    """Coerce a major/minor input string to a valid uint16 string.

    Non-numeric and non-positive input becomes "0". Values above 65535
    are clamped to "65535".
    """
    try:
        number = int(value.strip())
    except (AttributeError, ValueError):
        return "0"

    if number <= 0:
        return "0"
    return str(min(number, MAX_IDENTIFIER))


def uuid_to_bytes(uuid_str: str) -> bytes:
    """Convert a UUID string to 16 bytes.

    Args:
        uuid_str: UUID string with or without hyphens

    Returns:
        16-byte representation of the UUID (big-endian)

    Raises:
        IBeaconConfigError: If UUID format is invalid
    """
    hex_str = uuid_str.replace("-", "")

    if len(hex_str) != 32:
        raise IBeaconConfigError(f"UUID must be 32 hex characters, got {len(hex_str)}")

    try:
        return bytes.fromhex(hex_str)
    except ValueError as e:
        raise IBeaconConfigError(f"Invalid UUID hex characters: {e}") from e


def bytes_to_uuid(raw: bytes) -> str:
    """Format 16 bytes as an upper-case hyphenated UUID string."""
    h = raw.hex().upper()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def validate_frame(frame: BeaconFrame) -> None:
    """Validate iBeacon frame values.

    Raises:
        IBeaconConfigError: If any value is out of range
    """
    if not UUID_PATTERN.match(frame.uuid):
        raise IBeaconConfigError(
            f"Invalid UUID format: {frame.uuid}. "
            "Expected format: XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX"
        )

    if not 0 <= frame.major <= MAX_IDENTIFIER:
        raise IBeaconConfigError(f"Major must be 0-65535, got {frame.major}")

    if not 0 <= frame.minor <= MAX_IDENTIFIER:
        raise IBeaconConfigError(f"Minor must be 0-65535, got {frame.minor}")

    if not -128 <= frame.measured_power <= 127:
        raise IBeaconConfigError(
            f"Measured power must be -128 to 127, got {frame.measured_power}"
        )

    if len(frame.data_fields) != 1 or not 0 <= frame.data_fields[0] <= 0xFF:
        raise IBeaconConfigError(
            f"iBeacon layout carries exactly one data byte, got {frame.data_fields}"
        )


def frame_from_identity(
    identity: BeaconIdentity,
    measured_power: int = DEFAULT_MEASURED_POWER,
    data_fields: list[int] | None = None,
) -> BeaconFrame:
    """Resolve a user identity into a frame, normalizing major and minor."""
    return BeaconFrame(
        uuid=identity.uuid,
        major=int(normalize_identifier(identity.major)),
        minor=int(normalize_identifier(identity.minor)),
        measured_power=measured_power,
        data_fields=list(data_fields) if data_fields is not None else list(DEFAULT_DATA_FIELDS),
    )


def build_ibeacon_payload(frame: BeaconFrame) -> bytes:
    """Build the iBeacon payload (without the Apple company ID prefix).

    Returns:
        24-byte iBeacon payload
    """
    # >: big-endian
    # H: beacon type code
    # 16s: UUID
    # H: major
    # H: minor
    # b: measured power (signed)
    # B: data field
    return struct.pack(
        IBEACON_PAYLOAD_FORMAT,
        IBEACON_TYPE_CODE,
        uuid_to_bytes(frame.uuid),
        frame.major,
        frame.minor,
        frame.measured_power,
        frame.data_fields[0],
    )


def build_manufacturer_data(frame: BeaconFrame) -> dict[int, bytes]:
    """Build the manufacturer-specific data dictionary for BlueZ.

    Returns:
        Dictionary with Apple company ID as key and iBeacon payload as value
    """
    return {APPLE_COMPANY_ID: build_ibeacon_payload(frame)}


def parse_ibeacon_payload(payload: bytes) -> BeaconFrame | None:
    """Parse manufacturer data (company ID stripped) into a frame.

    Returns None when the bytes are not an iBeacon payload. Payloads that
    omit the trailing data byte, as most iBeacon senders do, are accepted.
    """
    if len(payload) == IBEACON_PAYLOAD_LENGTH - 1:
        payload = payload + b"\x00"
    if len(payload) != IBEACON_PAYLOAD_LENGTH:
        return None

    type_code, uuid_bytes, major, minor, power, data = struct.unpack(
        IBEACON_PAYLOAD_FORMAT, payload
    )
    if type_code != IBEACON_TYPE_CODE:
        return None

    return BeaconFrame(
        uuid=bytes_to_uuid(uuid_bytes),
        major=major,
        minor=minor,
        measured_power=power,
        data_fields=[data],
    )


def format_frame_for_logging(frame: BeaconFrame) -> str:
    """Format a frame for human-readable logging."""
    return (
        f"UUID: {frame.uuid}\n"
        f"Major: {frame.major}\n"
        f"Minor: {frame.minor}\n"
        f"Measured Power: {frame.measured_power} dBm"
    )
