"""Display wake-lock providers used while kiosk mode is active."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Callable, Protocol, Sequence

logger = logging.getLogger(__name__)

PROCESS_EXIT_TIMEOUT_SECONDS = 2.0

ReleaseListener = Callable[["WakeLockHandle"], None]


class WakeLockHandle:
    """A held wake lock. Reports release whether requested or imposed by the host."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.released = False
        self._listeners: list[ReleaseListener] = []

    def add_release_listener(self, listener: ReleaseListener) -> None:
        self._listeners.append(listener)

    def mark_released(self) -> None:
        """Flag the lock as gone and notify listeners once."""
        if self.released:
            return
        self.released = True
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(self)
            except Exception as exc:
                logger.warning(f"Wake lock release listener failed: {exc}")

    async def wait_closed(self) -> None:
        """Wait until the host has let go of the lock. Immediate by default."""
        return None


class WakeLockProvider(Protocol):
    """Host capability that keeps the display from dimming or powering off."""

    async def acquire(self) -> WakeLockHandle | None:
        """Return a handle, or None when the host has no such capability."""
        ...

    def release(self, handle: WakeLockHandle) -> None:
        ...


class NullWakeLock:
    """Provider for hosts without a wake-lock capability."""

    async def acquire(self) -> WakeLockHandle | None:
        return None

    def release(self, handle: WakeLockHandle) -> None:
        handle.mark_released()


class _ProcessHandle(WakeLockHandle):
    def __init__(self, name: str, process: asyncio.subprocess.Process) -> None:
        super().__init__(name)
        self.process = process
        self.watcher: asyncio.Task[None] | None = None

    async def wait_closed(self, timeout: float = PROCESS_EXIT_TIMEOUT_SECONDS) -> None:
        if self.watcher is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self.watcher), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Wake lock {self.name} ignored termination; killing it")
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            await self.watcher


class SystemdInhibitWakeLock:
    """Hold an idle/sleep inhibitor through a long-running ``systemd-inhibit`` child.

    The lock lasts as long as the child process. If something else terminates
    it, the handle is marked released so callers can observe the revocation.
    """

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        who: str = "netsentinel",
        why: str = "Kiosk display active",
    ) -> None:
        if command is None:
            command = (
                "systemd-inhibit",
                "--what=idle:sleep",
                f"--who={who}",
                f"--why={why}",
                "--mode=block",
                "sleep",
                "infinity",
            )
        self._command = tuple(command)

    async def acquire(self) -> WakeLockHandle | None:
        if not self._command or shutil.which(self._command[0]) is None:
            logger.warning(
                f"Wake lock command {self._command[:1]} not found; display may sleep"
            )
            return None

        process = await asyncio.create_subprocess_exec(
            *self._command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        handle = _ProcessHandle(f"{self._command[0]}[{process.pid}]", process)
        handle.watcher = asyncio.create_task(self._watch(handle))
        logger.info(f"Acquired wake lock {handle.name}")
        return handle

    async def _watch(self, handle: _ProcessHandle) -> None:
        returncode = await handle.process.wait()
        if not handle.released:
            logger.info(f"Wake lock {handle.name} ended externally (exit {returncode})")
        handle.mark_released()

    def release(self, handle: WakeLockHandle) -> None:
        if isinstance(handle, _ProcessHandle) and handle.process.returncode is None:
            try:
                handle.process.terminate()
            except ProcessLookupError:
                pass
            logger.info(f"Released wake lock {handle.name}")
        handle.mark_released()


def build_wake_lock_provider(backend: str) -> WakeLockProvider:
    """Return the provider for a configured backend name."""
    if backend == "systemd":
        return SystemdInhibitWakeLock()
    if backend != "none":
        logger.warning(f"Unknown wake lock backend {backend!r}; wake lock disabled")
    return NullWakeLock()


__all__ = [
    "NullWakeLock",
    "SystemdInhibitWakeLock",
    "WakeLockHandle",
    "WakeLockProvider",
    "build_wake_lock_provider",
]
