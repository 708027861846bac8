"""Fixtures for iBeacon transmitter tests."""

from __future__ import annotations

import dataclasses

import pytest

from ibeacon_transmitter.controller import AdvertisingController
from ibeacon_transmitter.permissions import REQUIRED_CAPABILITIES, StaticPermissionGate
from ibeacon_transmitter.profile import (
    AdvertiseMode,
    AdvertiseTxPowerLevel,
    AdvertisingProfile,
)


class FakeRadio:
    """RadioAdvertiser double that records calls instead of touching BlueZ."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.payloads: list[dict[int, bytes]] = []
        self.error: Exception | None = None
        self._active = False
        self._profile = AdvertisingProfile()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def profile(self) -> AdvertisingProfile:
        return self._profile

    async def start(self, payload, profile) -> None:
        self.calls.append(("start", profile))
        if self.error is not None:
            raise self.error
        if self._active:
            raise AssertionError("start issued while already advertising")
        self.payloads.append(payload)
        self._profile = profile
        self._active = True

    async def stop(self) -> None:
        self.calls.append(("stop",))
        self._active = False

    async def set_mode(self, mode: AdvertiseMode) -> None:
        self.calls.append(("set_mode", mode))
        self._profile = dataclasses.replace(self._profile, mode=mode)

    async def set_tx_power(self, level: AdvertiseTxPowerLevel) -> None:
        self.calls.append(("set_tx_power", level))
        self._profile = dataclasses.replace(self._profile, tx_power_level=level)

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def radio() -> FakeRadio:
    return FakeRadio()


@pytest.fixture
def granted_gate() -> StaticPermissionGate:
    return StaticPermissionGate(granted=REQUIRED_CAPABILITIES)


@pytest.fixture
def denied_gate() -> StaticPermissionGate:
    """Gate with nothing granted; resolve() decides the outcome."""
    return StaticPermissionGate()


@pytest.fixture
def rejections() -> list:
    return []


@pytest.fixture
def controller(radio, granted_gate, rejections) -> AdvertisingController:
    return AdvertisingController(radio, granted_gate, on_permissions_rejected=rejections.append)
