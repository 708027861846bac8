"""iBeacon transmitter for Linux.

This package drives BLE iBeacon advertising through the BlueZ Bluetooth
stack. An AdvertisingController owns the beacon identity, advertising
profile and playback state, and delegates to a RadioAdvertiser and a
PermissionGate that can be swapped for test doubles.

Example:
    from ibeacon_transmitter import (
        AdvertisingController,
        BlueZAdvertiser,
        LinuxPermissionGate,
        AdvertiseMode,
    )

    controller = AdvertisingController(BlueZAdvertiser(), LinuxPermissionGate())
    controller.set_major("1")
    controller.set_minor("2")
    await controller.start()
    await controller.change_mode(AdvertiseMode.LOW_LATENCY)
"""

__version__ = "0.1.0"

from .ibeacon_packet import (
    BeaconIdentity,
    BeaconFrame,
    IBeaconConfigError,
    build_ibeacon_payload,
    build_manufacturer_data,
    normalize_identifier,
    parse_ibeacon_payload,
    APPLE_COMPANY_ID,
    IBEACON_TYPE_CODE,
    IBEACON_LAYOUT,
    DEFAULT_UUID,
    DEFAULT_MEASURED_POWER,
)
from .profile import (
    AdvertiseMode,
    AdvertiseTxPowerLevel,
    AdvertisingProfile,
    InvalidSelectionError,
)
from .permissions import (
    Capability,
    PermissionResult,
    PermissionDeniedError,
    PermissionGate,
    StaticPermissionGate,
    LinuxPermissionGate,
    REQUIRED_CAPABILITIES,
)
from .radio import RadioAdvertiser, ManufacturerData
from .advertiser import BlueZAdvertiser
from .controller import (
    AdvertisingController,
    PlaybackState,
    PendingIntent,
    NoPendingActionError,
    InvalidTransitionError,
    IdentityLockedError,
)

__all__ = [
    # Version
    "__version__",
    # Packet
    "BeaconIdentity",
    "BeaconFrame",
    "IBeaconConfigError",
    "build_ibeacon_payload",
    "build_manufacturer_data",
    "normalize_identifier",
    "parse_ibeacon_payload",
    "APPLE_COMPANY_ID",
    "IBEACON_TYPE_CODE",
    "IBEACON_LAYOUT",
    "DEFAULT_UUID",
    "DEFAULT_MEASURED_POWER",
    # Profile
    "AdvertiseMode",
    "AdvertiseTxPowerLevel",
    "AdvertisingProfile",
    "InvalidSelectionError",
    # Permissions
    "Capability",
    "PermissionResult",
    "PermissionDeniedError",
    "PermissionGate",
    "StaticPermissionGate",
    "LinuxPermissionGate",
    "REQUIRED_CAPABILITIES",
    # Radio
    "RadioAdvertiser",
    "ManufacturerData",
    "BlueZAdvertiser",
    # Controller
    "AdvertisingController",
    "PlaybackState",
    "PendingIntent",
    "NoPendingActionError",
    "InvalidTransitionError",
    "IdentityLockedError",
]
