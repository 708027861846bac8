"""iBeacon radio advertiser using the BlueZ D-Bus API.

This module provides BlueZAdvertiser, the RadioAdvertiser implementation for
Linux. It exports an org.bluez.LEAdvertisement1 object carrying the iBeacon
manufacturer data and registers it with the adapter's advertising manager.

Requirements:
    - Linux with BlueZ 5.x (experimental features enabled for interval
      and TxPower control)
    - bluetoothd running
    - Bluetooth adapter available and powered on
    - Root/sudo access for adapter TX power control (optional)
"""

import asyncio
import dataclasses
import logging
import subprocess
from typing import Any

from dbus_next import BusType, Variant
from dbus_next.aio import MessageBus
from dbus_next.service import ServiceInterface, dbus_property, method, PropertyAccess

from .profile import AdvertiseMode, AdvertiseTxPowerLevel, AdvertisingProfile
from .radio import ManufacturerData

logger = logging.getLogger(__name__)

# BlueZ D-Bus constants
BLUEZ_SERVICE = "org.bluez"
BLUEZ_LE_ADVERTISING_MANAGER_INTERFACE = "org.bluez.LEAdvertisingManager1"
BLUEZ_LE_ADVERTISEMENT_INTERFACE = "org.bluez.LEAdvertisement1"

DEFAULT_ADAPTER = "hci0"
ADVERTISEMENT_PATH = "/com/walkbase/ibeacon/advertisement0"


async def set_adapter_tx_power(adapter: str, power_dbm: int) -> bool:
    """Set the Bluetooth adapter's transmit power level.

    Uses hciconfig to set the inquiry transmit power, which drives the
    overall adapter power on many chipsets. Requires root/sudo privileges.

    Args:
        adapter: Adapter name (e.g., "hci0")
        power_dbm: Desired transmit power in dBm

    Returns:
        True if the command ran, False otherwise
    """
    power_dbm = max(-20, min(20, power_dbm))

    logger.info(f"[TX_POWER] Setting {adapter} transmit power to {power_dbm} dBm...")

    try:
        result = await asyncio.create_subprocess_exec(
            "sudo", "hciconfig", adapter, "inqtpl", str(power_dbm),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        _, stderr = await result.communicate()
    except FileNotFoundError:
        logger.warning("[TX_POWER] hciconfig not found. Install bluez-utils package.")
        return False
    except PermissionError:
        logger.warning("[TX_POWER] Permission denied. Run with sudo for TX power control.")
        return False

    if result.returncode != 0:
        logger.debug(f"[TX_POWER] inqtpl not supported: {stderr.decode()}")
        return False

    logger.info(f"[TX_POWER] Inquiry TX power set to {power_dbm} dBm")
    return True


class IBeaconAdvertisement(ServiceInterface):
    """D-Bus service implementing org.bluez.LEAdvertisement1 for iBeacon.

    For iBeacon we use:
    - Type: "broadcast" (one-way advertisement, no connection)
    - ManufacturerData: Apple company ID (0x004C) with iBeacon payload
    - MinInterval/MaxInterval: from the advertise mode
    - TxPower: from the transmit power level
    """

    def __init__(self, payload: ManufacturerData, profile: AdvertisingProfile):
        super().__init__(BLUEZ_LE_ADVERTISEMENT_INTERFACE)
        # dbus-next expects bytes directly for "ay" type
        self._manufacturer_data = {
            company_id: Variant("ay", data) for company_id, data in payload.items()
        }
        self.profile = profile

    @dbus_property(access=PropertyAccess.READ)
    def Type(self) -> "s":
        return "broadcast"

    @dbus_property(access=PropertyAccess.READ)
    def ManufacturerData(self) -> "a{qv}":
        return self._manufacturer_data

    @dbus_property(access=PropertyAccess.READ)
    def IncludeTxPower(self) -> "b":
        """iBeacon carries its measured power in the manufacturer data."""
        return False

    @dbus_property(access=PropertyAccess.READ)
    def MinInterval(self) -> "u":
        return self.profile.mode.interval_ms

    @dbus_property(access=PropertyAccess.READ)
    def MaxInterval(self) -> "u":
        return self.profile.mode.interval_ms

    @dbus_property(access=PropertyAccess.READ)
    def TxPower(self) -> "n":
        return self.profile.tx_power_level.dbm

    @method()
    def Release(self) -> None:
        """Called by BlueZ when the advertisement is released."""
        logger.info("[ADVERTISE] Advertisement released by BlueZ")


class BlueZAdvertiser:
    """Advertises iBeacon packets on Linux via BlueZ D-Bus.

    BlueZ reads advertisement properties only at registration time, so a
    mode or power change while active re-registers the advertisement.

    Example:
        advertiser = BlueZAdvertiser(adapter="hci0")
        await advertiser.start(build_manufacturer_data(frame), AdvertisingProfile())
        await advertiser.set_mode(AdvertiseMode.LOW_LATENCY)
        await advertiser.stop()
    """

    def __init__(
        self,
        adapter: str = DEFAULT_ADAPTER,
        apply_adapter_tx_power: bool = False,
        profile: AdvertisingProfile | None = None,
    ):
        """Initialize the advertiser.

        Args:
            adapter: Bluetooth adapter name (default: "hci0")
            apply_adapter_tx_power: Also push the power level to the adapter
                                    through hciconfig. Requires sudo.
            profile: Profile reported while idle, until the first start
        """
        self._adapter_name = adapter
        self._adapter_path = f"/org/bluez/{adapter}"
        self._apply_adapter_tx_power = apply_adapter_tx_power

        self._profile = profile or AdvertisingProfile()
        self._bus: MessageBus | None = None
        self._advertisement: IBeaconAdvertisement | None = None
        self._advertising_manager: Any = None
        self._is_advertising = False

    @property
    def is_active(self) -> bool:
        return self._is_advertising

    @property
    def profile(self) -> AdvertisingProfile:
        return self._profile

    async def _connect(self) -> None:
        logger.debug("[ADVERTISE] Connecting to system D-Bus...")
        self._bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
        logger.info("[ADVERTISE] Connected to D-Bus system bus")

        introspection = await self._bus.introspect(BLUEZ_SERVICE, self._adapter_path)
        adapter_proxy = self._bus.get_proxy_object(
            BLUEZ_SERVICE, self._adapter_path, introspection
        )
        self._advertising_manager = adapter_proxy.get_interface(
            BLUEZ_LE_ADVERTISING_MANAGER_INTERFACE
        )

    async def _register(self) -> None:
        logger.debug("[ADVERTISE] Registering advertisement with BlueZ...")
        await self._advertising_manager.call_register_advertisement(ADVERTISEMENT_PATH, {})

    async def _unregister(self) -> None:
        await self._advertising_manager.call_unregister_advertisement(ADVERTISEMENT_PATH)
        logger.debug("[ADVERTISE] Advertisement unregistered")

    async def start(self, payload: ManufacturerData, profile: AdvertisingProfile) -> None:
        """Register an advertisement carrying payload with BlueZ.

        Raises:
            dbus_next.errors.DBusError: If BlueZ rejects the advertisement
        """
        if self._is_advertising:
            logger.warning("[ADVERTISE] Already advertising, ignoring start request")
            return

        logger.info(f"[ADVERTISE] Starting on {self._adapter_name} ({profile.describe()})")
        self._profile = profile

        if self._apply_adapter_tx_power:
            await set_adapter_tx_power(self._adapter_name, profile.tx_power_level.dbm)

        try:
            await self._connect()

            self._advertisement = IBeaconAdvertisement(payload, profile)
            self._bus.export(ADVERTISEMENT_PATH, self._advertisement)
            logger.debug(f"[ADVERTISE] Exported advertisement at {ADVERTISEMENT_PATH}")

            await self._register()
        except Exception:
            self._teardown()
            raise

        self._is_advertising = True
        logger.info("[ADVERTISE] iBeacon advertising started")

    def _teardown(self) -> None:
        """Drop the exported object and the bus connection."""
        if self._bus is not None:
            if self._advertisement is not None:
                self._bus.unexport(ADVERTISEMENT_PATH)
            self._bus.disconnect()
            logger.debug("[ADVERTISE] Disconnected from D-Bus")

        self._is_advertising = False
        self._bus = None
        self._advertisement = None
        self._advertising_manager = None

    async def stop(self) -> None:
        """Unregister the advertisement and disconnect from D-Bus."""
        if not self._is_advertising:
            logger.debug("[ADVERTISE] Not advertising, nothing to stop")
            return

        logger.info("[ADVERTISE] Stopping iBeacon advertiser...")
        try:
            await self._unregister()
        finally:
            self._teardown()

        logger.info("[ADVERTISE] iBeacon advertiser stopped")

    async def _apply(self, profile: AdvertisingProfile) -> None:
        if not self._is_advertising:
            self._profile = profile
            return

        logger.info(f"[ADVERTISE] Re-registering with {profile.describe()}")
        try:
            await self._unregister()
            self._advertisement.profile = profile
            await self._register()
        except Exception:
            self._teardown()
            raise
        self._profile = profile

    async def set_mode(self, mode: AdvertiseMode) -> None:
        await self._apply(dataclasses.replace(self._profile, mode=mode))

    async def set_tx_power(self, level: AdvertiseTxPowerLevel) -> None:
        if self._apply_adapter_tx_power and self._is_advertising:
            await set_adapter_tx_power(self._adapter_name, level.dbm)
        await self._apply(dataclasses.replace(self._profile, tx_power_level=level))
