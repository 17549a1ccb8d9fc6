"""In-process publish/subscribe dispatcher for lifecycle signals."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from jobpulse.scheduler.task import Task

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class LifecycleSignal(str, Enum):
    """Named signals carried by the bus."""

    INITIALIZATION_COMPLETE = "initialization-complete"
    TASK_SUCCESS = "task-success"
    TASK_FAILURE = "task-failure"
    SHUTDOWN_REQUESTED = "shutdown-requested"
    REINITIALIZE_REQUESTED = "reinitialize-requested"


@dataclass(slots=True, frozen=True)
class TaskOutcome:
    """Payload of ``task-success`` / ``task-failure``."""

    task: Task
    status_code: int
    reason: str
    elapsed_seconds: float

    @property
    def is_success(self) -> bool:
        return self.status_code == 200


class EventBus:
    """Synchronous dispatcher: handlers run in registration order, in the caller's context."""

    def __init__(self) -> None:
        self._handlers: defaultdict[LifecycleSignal, list[Handler]] = defaultdict(list)

    def subscribe(self, signal: LifecycleSignal, handler: Handler) -> None:
        self._handlers[signal].append(handler)

    def publish(self, signal: LifecycleSignal, payload: Any = None) -> None:
        handlers = list(self._handlers.get(signal, ()))
        logger.debug("Publishing %s to %d handler(s)", signal.value, len(handlers))
        for handler in handlers:
            handler(payload)

    def subscriber_count(self, signal: LifecycleSignal) -> int:
        return len(self._handlers.get(signal, ()))
