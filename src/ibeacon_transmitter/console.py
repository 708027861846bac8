"""Line-oriented command front-end for the advertising controller."""

import logging

from dbus_next.errors import DBusError

from .controller import (
    AdvertisingController,
    IdentityLockedError,
    InvalidTransitionError,
    PendingIntent,
    PlaybackState,
)
from .ibeacon_packet import IBeaconConfigError
from .profile import AdvertiseMode, AdvertiseTxPowerLevel, InvalidSelectionError

logger = logging.getLogger(__name__)

HELP_TEXT = f"""Commands:
    play            Start transmitting, or resume when paused
    pause           Pause transmission
    stop            Stop transmission
    major VALUE     Set the major value (only while stopped)
    minor VALUE     Set the minor value (only while stopped)
    mode LABEL      Advertise mode: {", ".join(m.label for m in AdvertiseMode)}
    power LABEL     TX power level: {", ".join(p.label for p in AdvertiseTxPowerLevel)}
    status          Show the current state
    help            Show this text
    quit            Stop and exit"""


class QuitRequested(Exception):
    """Raised by the quit command to end the console loop."""

    pass


class ConsoleCommands:
    """Parses command lines and dispatches them to an AdvertisingController."""

    def __init__(self, controller: AdvertisingController):
        self.controller = controller
        self._handlers = {
            "play": self._play,
            "pause": self._pause,
            "stop": self._stop,
            "major": self._major,
            "minor": self._minor,
            "mode": self._mode,
            "power": self._power,
            "status": self._status,
            "help": self._help,
            "quit": self._quit,
            "exit": self._quit,
        }

    def status(self) -> str:
        c = self.controller
        transmitting = "Yes" if c.state is PlaybackState.PLAYING else "No"
        lines = [
            f"Transmitting: {transmitting}",
            f"Playback state: {c.state.name}",
            f"UUID: {c.identity.uuid}",
            f"Major: {c.identity.major}  Minor: {c.identity.minor}",
            f"Mode: {c.profile.mode.label}  Power: {c.profile.tx_power_level.label}",
        ]
        if c.pending_intent is not PendingIntent.NONE:
            lines.append(f"Waiting for permissions to {c.pending_intent.name.lower()}")
        return "\n".join(lines)

    async def execute(self, line: str) -> str:
        """Run one command line and return the text to show the user.

        Raises:
            QuitRequested: On quit/exit
        """
        parts = line.strip().split(maxsplit=1)
        if not parts:
            return ""

        logger.debug(f"[CONSOLE] > {line.strip()}")
        name, arg = parts[0].lower(), (parts[1] if len(parts) > 1 else "")
        handler = self._handlers.get(name)
        if handler is None:
            return f"Unknown command '{name}'. Type 'help' for a list."

        try:
            return await handler(arg)
        except (InvalidTransitionError, InvalidSelectionError, IdentityLockedError) as e:
            return str(e)
        except (DBusError, OSError, IBeaconConfigError) as e:
            logger.error(f"[CONSOLE] {name} failed: {e}")
            return str(e)

    async def _play(self, arg: str) -> str:
        await self.controller.play()
        return self.status()

    async def _pause(self, arg: str) -> str:
        await self.controller.pause()
        return self.status()

    async def _stop(self, arg: str) -> str:
        await self.controller.stop()
        return self.status()

    def _require_stopped(self) -> None:
        if self.controller.state is not PlaybackState.STOPPED:
            raise IdentityLockedError("Stop transmission before editing major/minor")

    async def _major(self, arg: str) -> str:
        self._require_stopped()
        self.controller.set_major(arg)
        return f"Major: {arg}"

    async def _minor(self, arg: str) -> str:
        self._require_stopped()
        self.controller.set_minor(arg)
        return f"Minor: {arg}"

    async def _mode(self, arg: str) -> str:
        await self.controller.select_mode(arg)
        return f"Mode: {self.controller.profile.mode.label}"

    async def _power(self, arg: str) -> str:
        await self.controller.select_power_level(arg)
        return f"Power: {self.controller.profile.tx_power_level.label}"

    async def _status(self, arg: str) -> str:
        return self.status()

    async def _help(self, arg: str) -> str:
        return HELP_TEXT

    async def _quit(self, arg: str) -> str:
        raise QuitRequested()
