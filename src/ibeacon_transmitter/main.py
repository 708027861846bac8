"""Entry points for the iBeacon transmitter and the verification scanner.

Usage:
    python -m ibeacon_transmitter
    # or
    ibeacon-transmitter  (if installed via pip/uv)
    ibeacon-scan
"""

import argparse
import asyncio
import logging
import signal
import sys

from .advertiser import BlueZAdvertiser, DEFAULT_ADAPTER
from .console import ConsoleCommands, HELP_TEXT, QuitRequested
from .controller import AdvertisingController
from .ibeacon_packet import (
    DEFAULT_MAJOR,
    DEFAULT_MEASURED_POWER,
    DEFAULT_MINOR,
    DEFAULT_UUID,
    UUID_PATTERN,
    BeaconIdentity,
)
from .permissions import (
    REQUIRED_CAPABILITIES,
    LinuxPermissionGate,
    PermissionDeniedError,
    StaticPermissionGate,
)
from .profile import (
    AdvertiseMode,
    AdvertiseTxPowerLevel,
    AdvertisingProfile,
    InvalidSelectionError,
)
from .scanner import scan_for_beacons

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG; otherwise INFO
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _uuid(value: str) -> str:
    if not UUID_PATTERN.match(value):
        raise argparse.ArgumentTypeError(f"Invalid UUID '{value}'")
    return value.upper()


def _mode(value: str) -> AdvertiseMode:
    try:
        return AdvertiseMode.from_label(value)
    except InvalidSelectionError as e:
        raise argparse.ArgumentTypeError(str(e))


def _tx_power(value: str) -> AdvertiseTxPowerLevel:
    try:
        return AdvertiseTxPowerLevel.from_label(value)
    except InvalidSelectionError as e:
        raise argparse.ArgumentTypeError(str(e))


def _measured_power(value: str) -> int:
    try:
        power = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid measured power '{value}'")
    if not -128 <= power <= 127:
        raise argparse.ArgumentTypeError(f"Measured power must be -128 to 127, got {power}")
    return power


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Transmit iBeacon advertisements via BlueZ",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Advertise modes:   {", ".join(m.name.lower() for m in AdvertiseMode)}
TX power levels:   {", ".join(p.name.lower() for p in AdvertiseTxPowerLevel)}

{HELP_TEXT}

Examples:
    # Interactive console with default identity
    python -m ibeacon_transmitter

    # Start immediately with major 1, minor 2, low latency
    sudo python -m ibeacon_transmitter --major 1 --minor 2 --mode low_latency --autostart
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (debug) logging")
    parser.add_argument("--uuid", type=_uuid, default=DEFAULT_UUID, help=f"Proximity UUID (default: {DEFAULT_UUID})")
    parser.add_argument("--major", default=DEFAULT_MAJOR, help="Major value (default: %(default)s)")
    parser.add_argument("--minor", default=DEFAULT_MINOR, help="Minor value (default: %(default)s)")
    parser.add_argument(
        "--measured-power",
        type=_measured_power,
        default=DEFAULT_MEASURED_POWER,
        help="Calibrated RSSI at 1 meter in dBm (default: %(default)s)",
    )
    parser.add_argument("--mode", type=_mode, default=AdvertiseMode.LOW_POWER, help="Advertise mode")
    parser.add_argument(
        "--tx-power", type=_tx_power, default=AdvertiseTxPowerLevel.MEDIUM, help="Advertise TX power level"
    )
    parser.add_argument("--adapter", default=DEFAULT_ADAPTER, help="Bluetooth adapter to use (default: %(default)s)")
    parser.add_argument(
        "--hw-tx-power",
        action="store_true",
        help="Also push the TX power level to the adapter with hciconfig. Requires sudo.",
    )
    parser.add_argument(
        "--assume-granted",
        action="store_true",
        help="Skip the root/bluetooth group check",
    )
    parser.add_argument("--autostart", action="store_true", help="Start transmitting immediately")
    return parser


def build_controller(args: argparse.Namespace) -> AdvertisingController:
    """Wire the controller to BlueZ and the permission gate selected by args."""
    if args.assume_granted:
        gate = StaticPermissionGate(granted=REQUIRED_CAPABILITIES)
    else:
        gate = LinuxPermissionGate()

    def on_rejected(error: PermissionDeniedError) -> None:
        print(f"{error}. Run with sudo or join the 'bluetooth' group, then try again.")

    def on_transmitting(profile: AdvertisingProfile) -> None:
        print(f"Transmitting with {profile.describe()}")

    profile = AdvertisingProfile(mode=args.mode, tx_power_level=args.tx_power)
    return AdvertisingController(
        radio=BlueZAdvertiser(
            adapter=args.adapter,
            apply_adapter_tx_power=args.hw_tx_power,
            profile=profile,
        ),
        gate=gate,
        identity=BeaconIdentity(uuid=args.uuid, major=args.major, minor=args.minor),
        profile=profile,
        measured_power=args.measured_power,
        on_permissions_rejected=on_rejected,
        on_transmitting=on_transmitting,
    )


async def run_console(commands: ConsoleCommands, shutdown_event: asyncio.Event) -> None:
    """Read commands from stdin until quit, EOF or shutdown."""
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue[str] = asyncio.Queue()
    loop.add_reader(sys.stdin.fileno(), lambda: lines.put_nowait(sys.stdin.readline()))
    print("Type 'help' for commands.")

    try:
        while not shutdown_event.is_set():
            read = asyncio.ensure_future(lines.get())
            stop = asyncio.ensure_future(shutdown_event.wait())
            done, _ = await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
            read.cancel()
            stop.cancel()
            if read not in done:
                break

            line = read.result()
            if not line:
                break
            try:
                output = await commands.execute(line)
            except QuitRequested:
                break
            if output:
                print(output)
    finally:
        loop.remove_reader(sys.stdin.fileno())


async def async_main(args: argparse.Namespace) -> None:
    """Async entry point with signal handling."""
    controller = build_controller(args)
    commands = ConsoleCommands(controller)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info(f"[MAIN] Received signal {sig.name}, initiating shutdown...")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        controller.request_permissions()
        if args.autostart:
            await controller.start()
        await run_console(commands, shutdown_event)
    finally:
        await controller.stop()
        logger.info("[MAIN] Shutdown complete")


def main() -> None:
    """Main entry point for the iBeacon transmitter."""
    args = build_parser().parse_args()
    setup_logging(verbose=args.verbose)

    logger.info("[MAIN] Starting iBeacon transmitter...")
    logger.info(f"[MAIN]   UUID: {args.uuid}")
    logger.info(f"[MAIN]   Adapter: {args.adapter}")

    if sys.platform != "linux":
        logger.error(f"[MAIN] This service only runs on Linux (current: {sys.platform})")
        logger.error("[MAIN] BlueZ D-Bus API is Linux-specific")
        sys.exit(1)

    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logger.info("[MAIN] Interrupted")
    except Exception as e:
        logger.error(f"[MAIN] Fatal error: {e}")
        sys.exit(1)


def scan_main() -> None:
    """Entry point that lists iBeacons in range."""
    parser = argparse.ArgumentParser(description="List iBeacon advertisements in range")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (debug) logging")
    parser.add_argument("--timeout", type=float, default=10.0, help="Scan duration in seconds")
    parser.add_argument("--uuid", type=_uuid, help="Only show beacons with this UUID")
    args = parser.parse_args()
    setup_logging(verbose=args.verbose)

    sightings = asyncio.run(scan_for_beacons(timeout=args.timeout, uuid=args.uuid))
    for s in sightings:
        print(f"{s.frame.uuid}  major={s.frame.major}  minor={s.frame.minor}  {s.address}  {s.rssi} dBm")
    print(f"\nFound {len(sightings)} iBeacon(s)")


if __name__ == "__main__":
    main()
