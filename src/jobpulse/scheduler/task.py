"""The scheduling unit: one labelled target, its interval and run-state guard."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from jobpulse.config import TaskSpec
from jobpulse.errors import TargetUnreachableError, WorkerSpawnError
from jobpulse.http.invoker import InvokeResult, RequestInvoker
from jobpulse.scheduler.events import EventBus, LifecycleSignal, TaskOutcome
from jobpulse.scheduler.models import Frequency, TaskStatus, WorkerDescriptor

if TYPE_CHECKING:
    from jobpulse.scheduler.isolation import ProcessIsolationManager

logger = logging.getLogger(__name__)

EXIT_FATAL = 1


class Task:
    """A labelled request target driven by its frequency.

    Periodic tasks wait for ``initialization-complete`` and then re-arm their
    own timer on every run. The initialize task runs as soon as it is
    constructed and again on ``reinitialize-requested``. The shutdown task
    waits for ``shutdown-requested``.
    """

    def __init__(  # noqa: PLR0913
        self,
        spec: TaskSpec,
        *,
        bus: EventBus,
        loop: asyncio.AbstractEventLoop,
        invoker: RequestInvoker,
        terminate: Callable[[int], None],
        isolation: ProcessIsolationManager | None = None,
    ) -> None:
        self.spec = spec
        self._bus = bus
        self._loop = loop
        self._invoker = invoker
        self._terminate = terminate
        self._isolation = isolation
        self._status = TaskStatus.IDLE
        self._pending_timer: asyncio.TimerHandle | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._spawn: asyncio.Task[object] | None = None
        self._handed_off = False
        self._shutdown_started = False

        if self.is_initialize():
            bus.subscribe(LifecycleSignal.REINITIALIZE_REQUESTED, self._on_reinitialize_requested)
            self.run()
        elif self.is_shutdown():
            bus.subscribe(LifecycleSignal.SHUTDOWN_REQUESTED, self._on_shutdown_requested)
        else:
            bus.subscribe(LifecycleSignal.INITIALIZATION_COMPLETE, self._on_initialization_complete)

    @property
    def label(self) -> str:
        return self.spec.label

    @property
    def target(self) -> str:
        return self.spec.url

    @property
    def frequency(self) -> Frequency:
        return self.spec.frequency

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def pending_timer(self) -> asyncio.TimerHandle | None:
        return self._pending_timer

    @property
    def handed_off(self) -> bool:
        """True once the recurring cycle runs inside an isolated worker."""
        return self._handed_off

    def is_initialize(self) -> bool:
        return self.spec.is_initialize

    def is_shutdown(self) -> bool:
        return self.spec.is_shutdown

    def run(self) -> None:
        """Arm the next tick (periodic only), then issue a request unless one is in flight."""

        if self.frequency.is_periodic:
            self._arm(self.frequency.seconds)
        if self._status is TaskStatus.RUNNING:
            logger.warning("Task %s is still running; skipping this run", self.label)
            return
        self._advance(TaskStatus.RUNNING)
        logger.debug("Task %s requesting %s", self.label, self.target)
        self._in_flight = self._loop.create_task(self._execute(), name=f"jobpulse:{self.label}")
        self._in_flight.add_done_callback(self._on_request_done)

    def cancel(self) -> None:
        """Drop the pending timer and abandon an in-flight request or worker spawn."""

        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.cancel()
        if self._spawn is not None and not self._spawn.done():
            self._spawn.cancel()

    async def aclose(self) -> None:
        self.cancel()
        await self._invoker.aclose()

    def _arm(self, delay: float | None) -> None:
        if self._pending_timer is not None:
            self._pending_timer.cancel()
        self._pending_timer = self._loop.call_later(delay or 0, self.run)
        if self._status is TaskStatus.IDLE:
            self._advance(TaskStatus.SCHEDULED)

    def _advance(self, target: TaskStatus) -> None:
        self._status = self._status.advance(target)

    async def _execute(self) -> None:
        result = await self._invoker.get(self.target)
        self._advance(TaskStatus.SCHEDULED)
        self._report(result)

    def _report(self, result: InvokeResult) -> None:
        outcome = TaskOutcome(
            task=self,
            status_code=result.status_code,
            reason=result.reason,
            elapsed_seconds=result.elapsed_seconds,
        )
        if outcome.is_success:
            logger.info("Task %s succeeded in %.3fs", self.label, outcome.elapsed_seconds)
            self._bus.publish(LifecycleSignal.TASK_SUCCESS, outcome)
        else:
            logger.error(
                "Task %s failed: HTTP %s %s",
                self.label,
                outcome.status_code,
                outcome.reason,
            )
            self._bus.publish(LifecycleSignal.TASK_FAILURE, outcome)

    def _on_request_done(self, request: asyncio.Task[None]) -> None:
        if self._in_flight is request:
            self._in_flight = None
        if request.cancelled():
            return
        error = request.exception()
        if error is None:
            return
        if isinstance(error, TargetUnreachableError):
            logger.critical("Task %s: %s. Terminating.", self.label, error)
        else:
            logger.critical(
                "Task %s: unexpected error. Terminating.",
                self.label,
                exc_info=(type(error), error, error.__traceback__),
            )
        self._terminate(EXIT_FATAL)

    def _on_initialization_complete(self, _payload: object) -> None:
        if self._status is not TaskStatus.IDLE or self._handed_off:
            logger.debug("Task %s already started; ignoring repeated initialization", self.label)
            return
        if self.spec.dedicated_child and self._isolation is not None:
            self._hand_off(self._isolation)
            return
        if self.spec.start_delay:
            logger.info("Task %s starts in %ss", self.label, self.spec.start_delay)
            self._arm(self.spec.start_delay)
            return
        self.run()

    def _on_reinitialize_requested(self, _payload: object) -> None:
        logger.info("Re-running initialize task %s", self.label)
        self.run()

    def _on_shutdown_requested(self, _payload: object) -> None:
        if self._shutdown_started:
            logger.debug("Shutdown task %s already started; ignoring request", self.label)
            return
        self._shutdown_started = True
        self.run()

    def _hand_off(self, isolation: ProcessIsolationManager) -> None:
        self._handed_off = True
        descriptor = WorkerDescriptor(
            label=self.label,
            url=self.target,
            frequency_seconds=self.frequency.seconds or 0,
            host=isolation.host,
            port=isolation.port,
        )
        self._spawn = self._loop.create_task(
            isolation.spawn(descriptor),
            name=f"jobpulse:spawn:{self.label}",
        )
        self._spawn.add_done_callback(self._on_spawn_done)

    def _on_spawn_done(self, spawn: asyncio.Task[object]) -> None:
        if self._spawn is spawn:
            self._spawn = None
        if spawn.cancelled():
            return
        error = spawn.exception()
        if error is None:
            return
        if isinstance(error, WorkerSpawnError):
            logger.critical("Task %s: %s. Terminating.", self.label, error)
        else:
            logger.critical(
                "Task %s: worker spawn failed. Terminating.",
                self.label,
                exc_info=(type(error), error, error.__traceback__),
            )
        self._terminate(EXIT_FATAL)

    def __repr__(self) -> str:
        return (
            f"Task(label={self.label!r}, target={self.target!r}, "
            f"frequency={self.frequency}, status={self._status.value})"
        )
