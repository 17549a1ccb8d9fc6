"""Runtime settings and validated task configuration."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jobpulse.errors import ConfigError
from jobpulse.scheduler.models import Frequency, FrequencyKind

DEFAULT_PORT = 80
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_WORKER_STOP_GRACE_SECONDS = 5.0

_URL_KEY = "url"
_FREQUENCY_KEY = "frequency"
_START_DELAY_KEY = "start-delay"
_DEDICATED_CHILD_KEY = "dedicated-child"
_KNOWN_KEYS = frozenset({_URL_KEY, _FREQUENCY_KEY, _START_DELAY_KEY, _DEDICATED_CHILD_KEY})


@dataclass(slots=True)
class ConnectionSettings:
    """Where requests are sent."""

    host: str = ""
    port: int = DEFAULT_PORT


@dataclass(slots=True)
class RunnerSettings:
    """Process-level runner settings."""

    config_path: Path | None = None
    pid_file: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    worker_stop_grace_seconds: float = DEFAULT_WORKER_STOP_GRACE_SECONDS


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    runner: RunnerSettings = field(default_factory=RunnerSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``JOBPULSE_*`` environment variables."""

        config_path = os.getenv("JOBPULSE_CONFIG", "").strip()
        pid_file = os.getenv("JOBPULSE_PID_FILE", "").strip()
        return cls(
            connection=ConnectionSettings(
                host=os.getenv("JOBPULSE_HOST", "").strip(),
                port=_env_int("JOBPULSE_PORT", DEFAULT_PORT),
            ),
            runner=RunnerSettings(
                config_path=Path(config_path) if config_path else None,
                pid_file=Path(pid_file) if pid_file else None,
                log_level=os.getenv("JOBPULSE_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper(),
                worker_stop_grace_seconds=_env_float(
                    "JOBPULSE_WORKER_STOP_GRACE_SECONDS",
                    DEFAULT_WORKER_STOP_GRACE_SECONDS,
                ),
            ),
        )

    def validate_for_run(self) -> Path:
        """Raise configuration error if the runner cannot start; return the task config path."""

        validate_connection(self.connection)
        config_path = self.runner.config_path
        if config_path is None:
            raise ConfigError(
                "A task config file is required. Set JOBPULSE_CONFIG or pass --config.",
            )
        if self.runner.worker_stop_grace_seconds < 0:
            raise ConfigError("JOBPULSE_WORKER_STOP_GRACE_SECONDS must be >= 0.")
        return config_path


def validate_connection(connection: ConnectionSettings) -> None:
    if not connection.host:
        raise ConfigError("A target host is required. Set JOBPULSE_HOST or pass --host.")
    if not 1 <= connection.port <= 65535:
        raise ConfigError(f"Invalid target port: {connection.port!r} (must be 1..65535)")


@dataclass(slots=True, frozen=True)
class TaskSpec:
    """One validated task entry."""

    label: str
    url: str
    frequency: Frequency
    start_delay: int = 0
    dedicated_child: bool = False

    @property
    def is_initialize(self) -> bool:
        return self.frequency.kind is FrequencyKind.INITIALIZE

    @property
    def is_shutdown(self) -> bool:
        return self.frequency.kind is FrequencyKind.SHUTDOWN


@dataclass(slots=True, frozen=True)
class TasksConfig:
    """Ordered set of task specs with unique labels."""

    specs: tuple[TaskSpec, ...] = ()

    def __iter__(self) -> Iterator[TaskSpec]:
        return iter(self.specs)

    def __len__(self) -> int:
        return len(self.specs)

    @property
    def initialize(self) -> TaskSpec | None:
        return next((spec for spec in self.specs if spec.is_initialize), None)

    @property
    def shutdown(self) -> TaskSpec | None:
        return next((spec for spec in self.specs if spec.is_shutdown), None)

    @property
    def periodic(self) -> tuple[TaskSpec, ...]:
        return tuple(spec for spec in self.specs if spec.frequency.is_periodic)

    def validate(self) -> None:
        """Enforce unique labels and at most one initialize / shutdown task."""

        seen: set[str] = set()
        for spec in self.specs:
            if spec.label in seen:
                raise ConfigError(f"Duplicate task label: {spec.label!r}")
            seen.add(spec.label)
        for kind in (FrequencyKind.INITIALIZE, FrequencyKind.SHUTDOWN):
            labels = [spec.label for spec in self.specs if spec.frequency.kind is kind]
            if len(labels) > 1:
                raise ConfigError(
                    f"At most one {kind.value} task is allowed, got {len(labels)}: "
                    + ", ".join(repr(label) for label in labels),
                )

    @classmethod
    def from_mapping(cls, raw: object) -> TasksConfig:
        """Validate a decoded ``{label: record}`` mapping."""

        if not isinstance(raw, Mapping):
            raise ConfigError("Task config must be an object mapping task labels to records.")
        specs = tuple(_parse_task(label, record) for label, record in raw.items())
        config = cls(specs=specs)
        config.validate()
        return config


def load_tasks_config(path: Path) -> TasksConfig:
    """Read and validate a JSON task config file."""

    try:
        text = path.read_text("utf-8")
    except OSError as error:
        raise ConfigError(f"Cannot read task config {str(path)!r}: {error}") from error
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as error:
        raise ConfigError(f"Task config {str(path)!r} is not valid JSON: {error}") from error
    return TasksConfig.from_mapping(raw)


def _parse_task(label: object, record: object) -> TaskSpec:
    if not isinstance(label, str) or not label.strip():
        raise ConfigError(f"Task labels must be non-empty strings, got {label!r}")
    if not isinstance(record, Mapping):
        raise ConfigError(f"Task {label!r}: record must be an object")

    unknown = sorted(set(record) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Task {label!r}: unknown key(s) " + ", ".join(map(repr, unknown)))

    url = record.get(_URL_KEY)
    if not isinstance(url, str) or not url.startswith("/"):
        raise ConfigError(
            f"Task {label!r}: {_URL_KEY!r} must be a path starting with '/', got {url!r}",
        )

    if _FREQUENCY_KEY not in record:
        raise ConfigError(f"Task {label!r}: {_FREQUENCY_KEY!r} is required")
    try:
        frequency = Frequency.parse(record[_FREQUENCY_KEY])
    except ConfigError as error:
        raise ConfigError(f"Task {label!r}: {error}") from error

    start_delay = _optional_int(label, record, _START_DELAY_KEY)
    dedicated_child = record.get(_DEDICATED_CHILD_KEY, False)
    if not isinstance(dedicated_child, bool):
        raise ConfigError(f"Task {label!r}: {_DEDICATED_CHILD_KEY!r} must be a boolean")

    if not frequency.is_periodic:
        for key in (_START_DELAY_KEY, _DEDICATED_CHILD_KEY):
            if key in record:
                raise ConfigError(f"Task {label!r}: {key!r} only applies to periodic tasks")

    return TaskSpec(
        label=label,
        url=url,
        frequency=frequency,
        start_delay=start_delay,
        dedicated_child=dedicated_child,
    )


def _optional_int(label: str, record: Mapping[str, Any], key: str) -> int:
    value = record.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Task {label!r}: {key!r} must be a non-negative integer, got {value!r}")
    return value


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigError(f"Invalid number for {name}: {value!r}") from error
