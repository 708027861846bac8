"""Beacon advertising controller.

Owns the beacon identity, the advertising profile and the playback state,
and translates start/pause/resume/stop/change-mode/change-power intents into
calls against a RadioAdvertiser.

State machine:
    STOPPED --start--> PLAYING --pause--> PAUSED --resume--> PLAYING
    {PLAYING, PAUSED} --stop--> STOPPED

Starting and resuming require the capabilities in REQUIRED_CAPABILITIES.
When they are missing the action is recorded as the pending intent, a grant
request goes out through the PermissionGate, and the action runs only if the
result grants everything.
"""

import dataclasses
import logging
from enum import Enum, auto
from typing import Awaitable, Callable

from .ibeacon_packet import (
    DEFAULT_MEASURED_POWER,
    BeaconIdentity,
    BeaconFrame,
    build_manufacturer_data,
    format_frame_for_logging,
    frame_from_identity,
    normalize_identifier,
)
from .permissions import (
    REQUIRED_CAPABILITIES,
    Capability,
    PermissionDeniedError,
    PermissionGate,
    PermissionResult,
)
from .profile import AdvertiseMode, AdvertiseTxPowerLevel, AdvertisingProfile
from .radio import ManufacturerData, RadioAdvertiser

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    STOPPED = auto()
    PLAYING = auto()
    PAUSED = auto()


class PendingIntent(Enum):
    """Action waiting on the outcome of a permission request."""

    NONE = auto()
    START = auto()
    RESUME = auto()


class NoPendingActionError(RuntimeError):
    """A permission result arrived with no deferred action recorded."""

    pass


class InvalidTransitionError(RuntimeError):
    """The requested action is not valid from the current playback state."""

    def __init__(self, action: str, state: PlaybackState):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} while {state.name}")


class IdentityLockedError(RuntimeError):
    """Identity edits are refused while transmission is not stopped."""

    pass


class AdvertisingController:
    """Drives a RadioAdvertiser from high-level playback intents.

    Example:
        controller = AdvertisingController(BlueZAdvertiser(), LinuxPermissionGate())
        controller.set_major("1")
        controller.set_minor("2")
        await controller.start()
    """

    def __init__(
        self,
        radio: RadioAdvertiser,
        gate: PermissionGate,
        identity: BeaconIdentity | None = None,
        profile: AdvertisingProfile | None = None,
        measured_power: int = DEFAULT_MEASURED_POWER,
        data_fields: list[int] | None = None,
        on_permissions_rejected: Callable[[PermissionDeniedError], None] | None = None,
        on_transmitting: Callable[[AdvertisingProfile], None] | None = None,
        lock_identity: bool = False,
    ):
        """Initialize the controller.

        Args:
            radio: Capability that emits the advertising packets
            gate: Permission provider consulted before start/resume
            identity: Initial UUID, major and minor
            profile: Initial advertise mode and TX power level
            measured_power: Calibrated RSSI at 1 meter in dBm
            data_fields: Trailing data byte of the iBeacon layout
            on_permissions_rejected: Called when a grant request is refused
            on_transmitting: Called whenever advertising starts or its
                             parameters change while active
            lock_identity: Refuse set_major/set_minor unless STOPPED
        """
        self._radio = radio
        self._gate = gate
        self.identity = identity or BeaconIdentity()
        self._profile = profile or AdvertisingProfile()
        self._measured_power = measured_power
        self._data_fields = data_fields
        self._on_permissions_rejected = on_permissions_rejected
        self._on_transmitting = on_transmitting
        self._lock_identity = lock_identity

        self._state = PlaybackState.STOPPED
        self._pending = PendingIntent.NONE
        self._awaiting_grant = False
        self._payload: ManufacturerData | None = None
        self._frame: BeaconFrame | None = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def pending_intent(self) -> PendingIntent:
        return self._pending

    @property
    def profile(self) -> AdvertisingProfile:
        return self._profile

    @property
    def frame(self) -> BeaconFrame | None:
        """Frame of the last advertisement started, if any."""
        return self._frame

    @property
    def is_transmitting(self) -> bool:
        return self._state is PlaybackState.PLAYING

    # Identity

    def _check_identity_editable(self) -> None:
        if self._lock_identity and self._state is not PlaybackState.STOPPED:
            raise IdentityLockedError(
                f"Identity can only change while STOPPED (currently {self._state.name})"
            )

    def set_major(self, value: str) -> None:
        self._check_identity_editable()
        self.identity.major = value

    def set_minor(self, value: str) -> None:
        self._check_identity_editable()
        self.identity.minor = value

    # Profile

    async def change_mode(self, mode: AdvertiseMode) -> None:
        """Apply an advertise mode now; live if the radio is active."""
        await self._apply_to_radio(self._radio.set_mode(mode))
        self._profile = dataclasses.replace(self._profile, mode=mode)
        logger.info(f"[CONTROLLER] Advertise mode set to {mode.label}")
        if self._radio.is_active:
            self._notify_transmitting()

    async def change_power_level(self, level: AdvertiseTxPowerLevel) -> None:
        """Apply a TX power level now; live if the radio is active."""
        await self._apply_to_radio(self._radio.set_tx_power(level))
        self._profile = dataclasses.replace(self._profile, tx_power_level=level)
        logger.info(f"[CONTROLLER] TX power level set to {level.label}")
        if self._radio.is_active:
            self._notify_transmitting()

    async def _apply_to_radio(self, change: Awaitable[None]) -> None:
        """Await a live radio change, stopping if the radio went off air."""
        try:
            await change
        except Exception:
            if self._state is PlaybackState.PLAYING and not self._radio.is_active:
                logger.warning("[CONTROLLER] Radio went off air during change; stopped")
                self._state = PlaybackState.STOPPED
            raise

    async def select_mode(self, label: str) -> None:
        await self.change_mode(AdvertiseMode.from_label(label))

    async def select_power_level(self, label: str) -> None:
        await self.change_power_level(AdvertiseTxPowerLevel.from_label(label))

    # Playback

    async def start(self) -> None:
        """Start transmitting the current identity.

        Raises:
            InvalidTransitionError: If not STOPPED
        """
        if self._state is not PlaybackState.STOPPED:
            raise InvalidTransitionError("start", self._state)
        await self._do_action(PendingIntent.START)

    async def resume(self) -> None:
        """Restart the advertisement built by the last start().

        Raises:
            InvalidTransitionError: If not PAUSED
        """
        if self._state is not PlaybackState.PAUSED:
            raise InvalidTransitionError("resume", self._state)
        await self._do_action(PendingIntent.RESUME)

    async def play(self) -> None:
        """Resume when paused, start otherwise."""
        if self._state is PlaybackState.PAUSED:
            await self.resume()
        else:
            await self.start()

    async def pause(self) -> None:
        """Stop the radio but keep identity, profile and payload."""
        if self._state is not PlaybackState.PLAYING:
            raise InvalidTransitionError("pause", self._state)
        await self._radio.stop()
        self._state = PlaybackState.PAUSED
        logger.info("[CONTROLLER] Transmission paused")

    async def stop(self) -> None:
        """Stop transmitting. Safe to call from any state."""
        if self._radio.is_active:
            await self._radio.stop()
        if self._state is not PlaybackState.STOPPED:
            logger.info("[CONTROLLER] Transmission stopped")
        self._state = PlaybackState.STOPPED

    # Permission-gated dispatch

    async def _do_action(self, intent: PendingIntent) -> None:
        if self._gate.check_granted(REQUIRED_CAPABILITIES):
            await self._run(intent)
            return

        if self._awaiting_grant:
            # A single continuation slot: the newer intent replaces the older
            # one and no second request is issued.
            if self._pending is PendingIntent.NONE:
                logger.info(f"[CONTROLLER] Permission request outstanding, deferring {intent.name}")
            else:
                logger.warning(
                    f"[CONTROLLER] Permission request outstanding; "
                    f"{self._pending.name} superseded by {intent.name}"
                )
            self._pending = intent
            return

        logger.info(f"[CONTROLLER] Permissions missing, deferring {intent.name}")
        self._pending = intent
        self._awaiting_grant = True
        self._gate.request_grant(self._missing_capabilities(), self.on_permission_result)

    def _missing_capabilities(self) -> frozenset[Capability]:
        return frozenset(
            c for c in REQUIRED_CAPABILITIES if not self._gate.check_granted(frozenset({c}))
        )

    def request_permissions(self) -> None:
        """Ask up front for any missing capabilities, without deferring an action.

        Does nothing when everything is granted or a request is outstanding.
        """
        if self._awaiting_grant or self._gate.check_granted(REQUIRED_CAPABILITIES):
            return

        self._awaiting_grant = True
        self._gate.request_grant(self._missing_capabilities(), self._on_initial_permission_result)

    async def _on_initial_permission_result(self, result: PermissionResult) -> None:
        if self._pending is not PendingIntent.NONE:
            # An action was deferred onto this request in the meantime
            await self.on_permission_result(result)
            return

        self._awaiting_grant = False
        if result.covers(REQUIRED_CAPABILITIES):
            logger.info("[CONTROLLER] All permissions granted")
        else:
            logger.info(f"[CONTROLLER] Granted permissions: {[c.value for c in result.granted]}")
            logger.info(f"[CONTROLLER] Denied permissions: {[c.value for c in result.denied]}")

    async def on_permission_result(self, result: PermissionResult) -> None:
        """Run or reject the deferred action once a grant request resolves.

        Raises:
            NoPendingActionError: If no action was deferred
        """
        intent, self._pending = self._pending, PendingIntent.NONE
        self._awaiting_grant = False

        if intent is PendingIntent.NONE:
            raise NoPendingActionError("Permission result received with no pending action")

        if not result.covers(REQUIRED_CAPABILITIES):
            error = PermissionDeniedError(result.denied)
            logger.warning(f"[CONTROLLER] {error}")
            if self._on_permissions_rejected is not None:
                self._on_permissions_rejected(error)
            return

        logger.info("[CONTROLLER] Permissions granted")
        await self._run(intent)

    async def _run(self, intent: PendingIntent) -> None:
        expected = {
            PendingIntent.START: PlaybackState.STOPPED,
            PendingIntent.RESUME: PlaybackState.PAUSED,
        }[intent]
        if self._state is not expected:
            # State moved on while the grant was outstanding
            logger.warning(f"[CONTROLLER] Dropping {intent.name} while {self._state.name}")
            return

        if intent is PendingIntent.START:
            await self._start_transmission()
        else:
            await self._resume_transmission()

    async def _start_transmission(self) -> None:
        self.identity.major = normalize_identifier(self.identity.major)
        self.identity.minor = normalize_identifier(self.identity.minor)

        frame = frame_from_identity(self.identity, self._measured_power, self._data_fields)
        payload = build_manufacturer_data(frame)

        logger.info("[CONTROLLER] Starting transmission:")
        for line in format_frame_for_logging(frame).split("\n"):
            logger.info(f"[CONTROLLER]   {line}")

        await self._radio.start(payload, self._profile)
        self._frame = frame
        self._payload = payload
        self._state = PlaybackState.PLAYING
        self._notify_transmitting()

    async def _resume_transmission(self) -> None:
        if self._payload is None:
            await self._start_transmission()
            return

        await self._radio.start(self._payload, self._profile)
        self._state = PlaybackState.PLAYING
        logger.info("[CONTROLLER] Transmission resumed")
        self._notify_transmitting()

    def _notify_transmitting(self) -> None:
        logger.info(f"[CONTROLLER] Transmitting: {self._profile.describe()}")
        if self._on_transmitting is not None:
            self._on_transmitting(self._profile)
