"""Tests for the iBeacon verification scanner."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ibeacon_transmitter.ibeacon_packet import (
    APPLE_COMPANY_ID,
    BeaconFrame,
    build_ibeacon_payload,
)
from ibeacon_transmitter.scanner import IBeaconCollector, scan_for_beacons

UUID = "856E3AB6-5EA8-45EB-9813-676BB29C4316"
OTHER_UUID = "E7B2C021-5D07-4D0B-9C20-223488C8B012"


def advertisement(manufacturer_data: dict, rssi: int = -60) -> MagicMock:
    data = MagicMock()
    data.manufacturer_data = manufacturer_data
    data.rssi = rssi
    return data


def device(address: str = "AA:BB:CC:DD:EE:FF") -> MagicMock:
    d = MagicMock()
    d.address = address
    return d


def ibeacon(uuid: str = UUID, major: int = 1, minor: int = 2) -> dict:
    return {APPLE_COMPANY_ID: build_ibeacon_payload(BeaconFrame(uuid=uuid, major=major, minor=minor))}


class TestIBeaconCollector:
    """Tests for the detection callback."""

    def test_records_ibeacon(self) -> None:
        collector = IBeaconCollector()
        collector(device(), advertisement(ibeacon(), rssi=-42))

        [sighting] = collector.sightings.values()
        assert sighting.address == "AA:BB:CC:DD:EE:FF"
        assert sighting.rssi == -42
        assert (sighting.frame.uuid, sighting.frame.major, sighting.frame.minor) == (UUID, 1, 2)

    def test_ignores_other_manufacturers(self) -> None:
        collector = IBeaconCollector()
        collector(device(), advertisement({0x0059: b"\x01\x02"}))
        assert collector.sightings == {}

    def test_ignores_non_ibeacon_apple_data(self) -> None:
        collector = IBeaconCollector()
        collector(device(), advertisement({APPLE_COMPANY_ID: b"\x10\x05\x01"}))
        assert collector.sightings == {}

    def test_uuid_filter_accepts_any_format(self) -> None:
        collector = IBeaconCollector(uuid=UUID.lower().replace("-", ""))
        collector(device(), advertisement(ibeacon()))
        collector(device("11:22:33:44:55:66"), advertisement(ibeacon(uuid=OTHER_UUID)))
        assert [s.frame.uuid for s in collector.sightings.values()] == [UUID]

    def test_keeps_latest_per_identity(self) -> None:
        collector = IBeaconCollector()
        collector(device(), advertisement(ibeacon(), rssi=-80))
        collector(device(), advertisement(ibeacon(), rssi=-50))
        collector(device(), advertisement(ibeacon(minor=3)))
        assert len(collector.sightings) == 2
        assert collector.sightings[(UUID, 1, 2)].rssi == -50


@pytest.mark.asyncio
async def test_scan_for_beacons() -> None:
    with patch("ibeacon_transmitter.scanner.BleakScanner") as scanner_cls:

        async def enter():
            callback = scanner_cls.call_args.kwargs["detection_callback"]
            callback(device(), advertisement(ibeacon()))

        scanner_cls.return_value.__aenter__.side_effect = enter
        sightings = await scan_for_beacons(timeout=0.01)

    scanner_cls.return_value.__aexit__.assert_awaited_once()
    assert len(sightings) == 1
    assert sightings[0].frame.major == 1
