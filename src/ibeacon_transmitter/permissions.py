"""Permission gate for the capabilities beacon transmission needs.

The controller never owns permission state. It asks a PermissionGate whether
the required capabilities are granted and, when they are not, subscribes to
the result of a single grant request.
"""

import asyncio
import grp
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Protocol

logger = logging.getLogger(__name__)


class Capability(Enum):
    """OS-level capabilities required to advertise."""

    FINE_LOCATION = "fine_location"
    BLUETOOTH_SCAN = "bluetooth_scan"
    BLUETOOTH_ADVERTISE = "bluetooth_advertise"
    # Background location is not requested; it cannot be asked for directly.


REQUIRED_CAPABILITIES = frozenset(Capability)


class PermissionDeniedError(RuntimeError):
    """Reported when a grant request does not grant every capability."""

    def __init__(self, denied: Iterable[Capability]):
        self.denied = sorted(denied, key=lambda c: c.value)
        names = ", ".join(c.value for c in self.denied)
        super().__init__(f"Permissions rejected: {names}")


@dataclass(frozen=True)
class PermissionResult:
    """Outcome of a permission check or grant request, one field per capability."""

    fine_location: bool = False
    bluetooth_scan: bool = False
    bluetooth_advertise: bool = False

    @classmethod
    def from_granted(cls, granted: Iterable[Capability]) -> "PermissionResult":
        granted = set(granted)
        return cls(**{c.value: c in granted for c in Capability})

    def is_granted(self, capability: Capability) -> bool:
        return getattr(self, capability.value)

    @property
    def granted(self) -> list[Capability]:
        return [c for c in Capability if self.is_granted(c)]

    @property
    def denied(self) -> list[Capability]:
        return [c for c in Capability if not self.is_granted(c)]

    def covers(self, capabilities: Iterable[Capability]) -> bool:
        return all(self.is_granted(c) for c in capabilities)

    @property
    def all_granted(self) -> bool:
        return self.covers(Capability)


PermissionCallback = Callable[[PermissionResult], Awaitable[None]]


def _deliver(tasks: set[asyncio.Task], on_result: PermissionCallback, result: PermissionResult) -> None:
    """Run the result callback as a task on the running loop."""
    task = asyncio.get_running_loop().create_task(on_result(result))
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    task.add_done_callback(_log_failure)


def _log_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"[PERMISSIONS] Deferred action failed: {task.exception()}")


class PermissionGate(Protocol):
    """Protocol for permission providers."""

    def check_granted(self, capabilities: frozenset[Capability]) -> bool:
        """Return True if every capability is currently granted."""
        ...

    def request_grant(
        self, capabilities: frozenset[Capability], on_result: PermissionCallback
    ) -> None:
        """Request the capabilities and deliver the outcome to on_result later."""
        ...


class StaticPermissionGate:
    """In-memory gate whose grants are decided up front.

    request_grant() records the callback without resolving it. Call
    resolve() to deliver a result, or construct the gate with
    auto_resolve=True to deliver the configured grants on the event loop.
    """

    def __init__(
        self,
        granted: Iterable[Capability] = (),
        grant_on_request: Iterable[Capability] | None = None,
        auto_resolve: bool = False,
    ):
        """Initialize the gate.

        Args:
            granted: Capabilities granted from the start
            grant_on_request: Capabilities granted once a request resolves.
                              None means the request grants nothing new.
            auto_resolve: Resolve requests on the running event loop
        """
        self._granted: set[Capability] = set(granted)
        self._grant_on_request = set(grant_on_request or ())
        self._auto_resolve = auto_resolve
        self._callback: PermissionCallback | None = None
        self.requests: list[frozenset[Capability]] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def granted(self) -> frozenset[Capability]:
        return frozenset(self._granted)

    def check_granted(self, capabilities: frozenset[Capability]) -> bool:
        return set(capabilities) <= self._granted

    def request_grant(
        self, capabilities: frozenset[Capability], on_result: PermissionCallback
    ) -> None:
        logger.info(f"[PERMISSIONS] Requesting {sorted(c.value for c in capabilities)}")
        self.requests.append(frozenset(capabilities))
        self._callback = on_result

        if self._auto_resolve:
            self._granted |= self._grant_on_request
            callback, self._callback = self._callback, None
            _deliver(self._tasks, callback, PermissionResult.from_granted(self._granted))

    @property
    def has_pending_request(self) -> bool:
        return self._callback is not None

    async def resolve(self, granted: Iterable[Capability] | None = None) -> None:
        """Deliver the outcome of the outstanding request.

        Args:
            granted: Capabilities the user granted in this request. Defaults
                     to grant_on_request.
        """
        if self._callback is None:
            raise RuntimeError("No outstanding permission request to resolve")

        newly = set(self._grant_on_request if granted is None else granted)
        self._granted |= newly
        callback, self._callback = self._callback, None
        await callback(PermissionResult.from_granted(self._granted))


class LinuxPermissionGate:
    """Maps capabilities onto the privileges of the current Linux process.

    Location has no Linux counterpart and is always granted. Scanning and
    advertising through BlueZ need root or membership of the bluetooth group.
    A request cannot elevate privileges; it re-checks and reports.
    """

    def __init__(self, group: str = "bluetooth"):
        self._group = group
        self._tasks: set[asyncio.Task] = set()

    def _has_bluetooth_access(self) -> bool:
        if os.geteuid() == 0:
            return True
        try:
            gid = grp.getgrnam(self._group).gr_gid
        except KeyError:
            logger.debug(f"[PERMISSIONS] Group '{self._group}' does not exist")
            return False
        return gid in os.getgroups() or gid == os.getegid()

    def current(self) -> PermissionResult:
        bluetooth = self._has_bluetooth_access()
        return PermissionResult(
            fine_location=True,
            bluetooth_scan=bluetooth,
            bluetooth_advertise=bluetooth,
        )

    def check_granted(self, capabilities: frozenset[Capability]) -> bool:
        return self.current().covers(capabilities)

    def request_grant(
        self, capabilities: frozenset[Capability], on_result: PermissionCallback
    ) -> None:
        result = self.current()
        if not result.covers(capabilities):
            logger.warning(
                f"[PERMISSIONS] Run as root or join the '{self._group}' group "
                "to advertise via BlueZ"
            )
        _deliver(self._tasks, on_result, result)
