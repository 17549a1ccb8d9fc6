"""Exception hierarchy shared by the runner, the CLI and isolated workers."""

from __future__ import annotations


class JobPulseError(Exception):
    """Base class for runner errors."""


class ConfigError(JobPulseError, ValueError):
    """Settings or task configuration failed validation."""


class TargetUnreachableError(JobPulseError):
    """Connection-level failure reaching the configured target."""

    def __init__(self, message: str, *, host: str, port: int, path: str) -> None:
        super().__init__(message)
        self.host = host
        self.port = port
        self.path = path


class WorkerSpawnError(JobPulseError):
    """An isolated worker process could not be started."""

    def __init__(self, message: str, *, label: str) -> None:
        super().__init__(message)
        self.label = label


class IllegalTransitionError(JobPulseError, RuntimeError):
    """A task status change outside the allowed transition table."""
