"""Domain models for scheduled tasks and isolated workers."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from jobpulse.errors import ConfigError, IllegalTransitionError

INITIALIZE_KEYWORD = "initialize"
SHUTDOWN_KEYWORD = "shutdown"


class FrequencyKind(str, Enum):
    """How a task is triggered."""

    PERIODIC = "periodic"
    INITIALIZE = INITIALIZE_KEYWORD
    SHUTDOWN = SHUTDOWN_KEYWORD


@dataclass(slots=True, frozen=True)
class Frequency:
    """Repeat interval in seconds, or one of the two one-shot triggers."""

    kind: FrequencyKind
    seconds: int | None = None

    def __post_init__(self) -> None:
        if self.kind is FrequencyKind.PERIODIC:
            if self.seconds is None or self.seconds <= 0:
                raise ConfigError(
                    f"Periodic frequency must be a positive integer: {self.seconds!r}",
                )
        elif self.seconds is not None:
            raise ConfigError(f"{self.kind.value} frequency takes no interval")

    @classmethod
    def every(cls, seconds: int) -> Frequency:
        return cls(FrequencyKind.PERIODIC, seconds)

    @classmethod
    def initialize(cls) -> Frequency:
        return cls(FrequencyKind.INITIALIZE)

    @classmethod
    def shutdown(cls) -> Frequency:
        return cls(FrequencyKind.SHUTDOWN)

    @classmethod
    def parse(cls, raw: object) -> Frequency:
        """Build a frequency from a config value: int seconds, digit string or keyword."""

        if isinstance(raw, bool):
            raise ConfigError(f"Invalid frequency: {raw!r}")
        if isinstance(raw, int):
            return cls.every(raw)
        if isinstance(raw, str):
            token = raw.strip().lower()
            if token == INITIALIZE_KEYWORD:
                return cls.initialize()
            if token == SHUTDOWN_KEYWORD:
                return cls.shutdown()
            if token.isascii() and token.isdecimal():
                return cls.every(int(token))
        raise ConfigError(
            f"Invalid frequency: {raw!r}. Expected positive seconds, "
            f"{INITIALIZE_KEYWORD!r} or {SHUTDOWN_KEYWORD!r}.",
        )

    @property
    def is_periodic(self) -> bool:
        return self.kind is FrequencyKind.PERIODIC

    def __str__(self) -> str:
        if self.is_periodic:
            return f"every {self.seconds}s"
        return self.kind.value


class TaskStatus(str, Enum):
    """Per-task run-state guard."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"

    def can_become(self, target: TaskStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]

    def advance(self, target: TaskStatus) -> TaskStatus:
        """Return ``target`` if the move is legal, raise otherwise."""

        if not self.can_become(target):
            raise IllegalTransitionError(
                f"Illegal task status transition {self.value} -> {target.value}",
            )
        return target


_ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.IDLE: frozenset({TaskStatus.SCHEDULED, TaskStatus.RUNNING}),
    TaskStatus.SCHEDULED: frozenset({TaskStatus.RUNNING}),
    TaskStatus.RUNNING: frozenset({TaskStatus.SCHEDULED}),
}


@dataclass(slots=True, frozen=True)
class WorkerDescriptor:
    """Everything an isolated worker needs to run one periodic task."""

    label: str
    url: str
    frequency_seconds: int
    host: str
    port: int

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, payload: str) -> WorkerDescriptor:
        try:
            raw: Any = json.loads(payload)
        except json.JSONDecodeError as error:
            raise ConfigError(f"Worker descriptor is not valid JSON: {error}") from error
        if not isinstance(raw, dict):
            raise ConfigError("Worker descriptor must be a JSON object.")
        try:
            return cls(
                label=str(raw["label"]),
                url=str(raw["url"]),
                frequency_seconds=int(raw["frequency_seconds"]),
                host=str(raw["host"]),
                port=int(raw["port"]),
            )
        except KeyError as error:
            raise ConfigError(f"Worker descriptor is missing {error.args[0]!r}") from error
        except (TypeError, ValueError) as error:
            raise ConfigError(f"Worker descriptor has an invalid value: {error}") from error
