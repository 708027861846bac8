"""iBeacon scanner using bleak, for checking that a transmitter is on air."""

import asyncio
import logging
from dataclasses import dataclass

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from .ibeacon_packet import (
    APPLE_COMPANY_ID,
    BeaconFrame,
    bytes_to_uuid,
    parse_ibeacon_payload,
    uuid_to_bytes,
)

logger = logging.getLogger(__name__)


@dataclass
class BeaconSighting:
    """One received iBeacon advertisement."""

    address: str
    rssi: int
    frame: BeaconFrame


class IBeaconCollector:
    """Detection callback that keeps the latest sighting per beacon identity."""

    def __init__(self, uuid: str | None = None):
        self._uuid = bytes_to_uuid(uuid_to_bytes(uuid)) if uuid else None
        self.sightings: dict[tuple[str, int, int], BeaconSighting] = {}

    def __call__(self, device: BLEDevice, advertisement_data: AdvertisementData) -> None:
        payload = advertisement_data.manufacturer_data.get(APPLE_COMPANY_ID)
        if payload is None:
            return

        frame = parse_ibeacon_payload(bytes(payload))
        if frame is None:
            return
        if self._uuid and frame.uuid != self._uuid:
            return

        key = (frame.uuid, frame.major, frame.minor)
        if key not in self.sightings:
            logger.info(
                f"[SCAN] iBeacon {frame.uuid} major={frame.major} minor={frame.minor} "
                f"from {device.address} ({advertisement_data.rssi} dBm)"
            )
        self.sightings[key] = BeaconSighting(
            address=device.address, rssi=advertisement_data.rssi, frame=frame
        )


async def scan_for_beacons(timeout: float = 10.0, uuid: str | None = None) -> list[BeaconSighting]:
    """Listen for iBeacon advertisements.

    Args:
        timeout: Seconds to scan
        uuid: Only report beacons with this proximity UUID

    Returns:
        Latest sighting of each distinct (uuid, major, minor)
    """
    logger.info(f"[SCAN] Scanning for iBeacons ({timeout}s)...")
    collector = IBeaconCollector(uuid)

    async with BleakScanner(detection_callback=collector):
        await asyncio.sleep(timeout)

    return list(collector.sightings.values())
