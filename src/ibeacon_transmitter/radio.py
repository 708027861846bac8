"""Radio advertiser capability used by the advertising controller."""

from typing import Protocol

from .profile import AdvertiseMode, AdvertiseTxPowerLevel, AdvertisingProfile

# Company ID -> manufacturer-specific payload
ManufacturerData = dict[int, bytes]


class RadioAdvertiser(Protocol):
    """Protocol for anything that can emit BLE advertising packets.

    Failures raised by an implementation are opaque to the controller and
    are never retried.
    """

    @property
    def is_active(self) -> bool:
        """Return whether advertising is currently on air."""
        ...

    @property
    def profile(self) -> AdvertisingProfile:
        """Return the profile the radio is (or will be) advertising with."""
        ...

    async def start(self, payload: ManufacturerData, profile: AdvertisingProfile) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def set_mode(self, mode: AdvertiseMode) -> None:
        ...

    async def set_tx_power(self, level: AdvertiseTxPowerLevel) -> None:
        ...
