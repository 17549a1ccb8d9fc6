"""Routes OS process signals onto the event bus."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable

from jobpulse.scheduler.events import EventBus, LifecycleSignal

logger = logging.getLogger(__name__)

TERMINATION_SIGNAL_NAMES = (
    "SIGHUP",
    "SIGINT",
    "SIGQUIT",
    "SIGILL",
    "SIGABRT",
    "SIGBUS",
    "SIGSEGV",
    "SIGTERM",
    "SIGWINCH",
)
REINITIALIZE_SIGNAL_NAME = "SIGUSR1"


def _resolve(names: tuple[str, ...]) -> list[signal.Signals]:
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class SignalRouter:
    """Publishes ``shutdown-requested`` / ``reinitialize-requested`` per delivered signal.

    No debouncing: every delivery publishes, even while a shutdown is running.
    """

    def __init__(self, bus: EventBus, loop: asyncio.AbstractEventLoop) -> None:
        self._bus = bus
        self._loop = loop
        self._installed: list[signal.Signals] = []

    @property
    def installed(self) -> list[signal.Signals]:
        return list(self._installed)

    def install(self) -> None:
        for signum in _resolve(TERMINATION_SIGNAL_NAMES):
            self._add(signum, self.on_termination)
        for signum in _resolve((REINITIALIZE_SIGNAL_NAME,)):
            self._add(signum, self.on_reinitialize)

    def uninstall(self) -> None:
        for signum in self._installed:
            self._loop.remove_signal_handler(signum)
        self._installed.clear()

    def on_termination(self, signum: signal.Signals) -> None:
        logger.info("Received %s; requesting shutdown", signum.name)
        self._bus.publish(LifecycleSignal.SHUTDOWN_REQUESTED, signum)

    def on_reinitialize(self, signum: signal.Signals) -> None:
        logger.info("Received %s; re-running initialization", signum.name)
        self._bus.publish(LifecycleSignal.REINITIALIZE_REQUESTED, signum)

    def _add(self, signum: signal.Signals, callback: Callable[[signal.Signals], None]) -> None:
        try:
            self._loop.add_signal_handler(signum, callback, signum)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread.
            logger.debug("Cannot route %s on this platform", signum.name)
            return
        self._installed.append(signum)
