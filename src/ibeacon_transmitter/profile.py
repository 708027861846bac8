"""Advertising profile: advertise mode and transmit power level."""

from dataclasses import dataclass
from enum import Enum


class InvalidSelectionError(ValueError):
    """Raised when a selected label has no backing mode or power level."""

    pass


class AdvertiseMode(Enum):
    """Trade-off between power draw and advertising frequency.

    Each member carries its display label and advertising interval in ms.
    """

    LOW_POWER = ("Low power", 1000)
    BALANCED = ("Balanced", 250)
    LOW_LATENCY = ("Low latency", 100)

    def __init__(self, label: str, interval_ms: int):
        self.label = label
        self.interval_ms = interval_ms

    @classmethod
    def from_label(cls, label: str) -> "AdvertiseMode":
        return _lookup(cls, label)


class AdvertiseTxPowerLevel(Enum):
    """Broadcast strength presets.

    Each member carries its display label and nominal radiated power in dBm.
    """

    ULTRA_LOW = ("Ultra low", -21)
    LOW = ("Low", -15)
    MEDIUM = ("Medium", -7)
    HIGH = ("High", 1)

    def __init__(self, label: str, dbm: int):
        self.label = label
        self.dbm = dbm

    @classmethod
    def from_label(cls, label: str) -> "AdvertiseTxPowerLevel":
        return _lookup(cls, label)


def _lookup(enum_cls, label: str):
    """Find a member by display label or member name, case-insensitively."""
    wanted = label.strip().lower()
    for member in enum_cls:
        if wanted in (member.label.lower(), member.name.lower()):
            return member
    choices = ", ".join(m.label for m in enum_cls)
    raise InvalidSelectionError(f"Unknown {enum_cls.__name__} '{label}'. Choose one of: {choices}")


@dataclass(frozen=True)
class AdvertisingProfile:
    """Advertising parameters handed to the radio with every start."""

    mode: AdvertiseMode = AdvertiseMode.LOW_POWER
    tx_power_level: AdvertiseTxPowerLevel = AdvertiseTxPowerLevel.MEDIUM

    def describe(self) -> str:
        return f"mode {self.mode.label}, power {self.tx_power_level.label}"
