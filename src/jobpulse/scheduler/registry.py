"""Builds every Task from validated configuration and wires the lifecycle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from jobpulse.config import TaskSpec, TasksConfig
from jobpulse.http.invoker import RequestInvoker
from jobpulse.scheduler.events import EventBus, LifecycleSignal, TaskOutcome
from jobpulse.scheduler.isolation import ProcessIsolationManager
from jobpulse.scheduler.task import Task

logger = logging.getLogger(__name__)

EXIT_OK = 0

InvokerFactory = Callable[[TaskSpec], RequestInvoker]


class TaskRegistry:
    """Owns the bus, the tasks and the process exit code.

    ``start()`` constructs the initialize task first (it fires immediately),
    then every other task. Without an initialize task the registry publishes
    ``initialization-complete`` itself once all tasks are subscribed. Without
    a shutdown task, ``shutdown-requested`` resolves the exit code directly.
    """

    def __init__(
        self,
        config: TasksConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        invoker_factory: InvokerFactory,
        isolation: ProcessIsolationManager | None = None,
        bus: EventBus | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.bus = bus or EventBus()
        self._loop = loop
        self._invoker_factory = invoker_factory
        self._isolation = isolation
        self._tasks: dict[str, Task] = {}
        self._exit_code: asyncio.Future[int] = loop.create_future()
        self._started = False

    @property
    def tasks(self) -> dict[str, Task]:
        return dict(self._tasks)

    @property
    def initialize_task(self) -> Task | None:
        return next((task for task in self._tasks.values() if task.is_initialize()), None)

    @property
    def shutdown_task(self) -> Task | None:
        return next((task for task in self._tasks.values() if task.is_shutdown()), None)

    @property
    def terminated(self) -> bool:
        return self._exit_code.done()

    def start(self) -> None:
        if self._started:
            raise RuntimeError("TaskRegistry.start() called twice")
        self._started = True

        self.bus.subscribe(LifecycleSignal.TASK_SUCCESS, self._on_task_success)
        self.bus.subscribe(LifecycleSignal.TASK_SUCCESS, self._on_task_finished)
        self.bus.subscribe(LifecycleSignal.TASK_FAILURE, self._on_task_finished)
        if self.config.shutdown is None:
            self.bus.subscribe(LifecycleSignal.SHUTDOWN_REQUESTED, self._on_shutdown_without_task)

        initialize = self.config.initialize
        if initialize is not None:
            self._build(initialize)
        for spec in self.config:
            if not spec.is_initialize:
                self._build(spec)

        logger.info(
            "Registered %d task(s): %s",
            len(self._tasks),
            ", ".join(repr(task) for task in self._tasks.values()) or "none",
        )
        if initialize is None:
            self.bus.publish(LifecycleSignal.INITIALIZATION_COMPLETE)

    def terminate(self, code: int) -> None:
        if self._exit_code.done():
            return
        logger.info("Terminating with exit code %d", code)
        self._exit_code.set_result(code)

    async def wait(self) -> int:
        return await self._exit_code

    async def aclose(self) -> None:
        for task in self._tasks.values():
            await task.aclose()

    def _build(self, spec: TaskSpec) -> Task:
        task = Task(
            spec,
            bus=self.bus,
            loop=self._loop,
            invoker=self._invoker_factory(spec),
            terminate=self.terminate,
            isolation=self._isolation,
        )
        self._tasks[spec.label] = task
        return task

    def _on_task_success(self, outcome: TaskOutcome) -> None:
        if outcome.task.is_initialize():
            logger.info("Initialization complete")
            self.bus.publish(LifecycleSignal.INITIALIZATION_COMPLETE)

    def _on_task_finished(self, outcome: TaskOutcome) -> None:
        if outcome.task.is_initialize() and not outcome.is_success:
            logger.warning("Initialization failed; periodic tasks wait for re-initialization")
        if outcome.task.is_shutdown():
            logger.info(
                "Shutdown task %s finished with HTTP %s",
                outcome.task.label,
                outcome.status_code,
            )
            self.terminate(EXIT_OK)

    def _on_shutdown_without_task(self, _payload: object) -> None:
        self.terminate(EXIT_OK)
