"""Controllers for runner CLI commands."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from jobpulse.config import (
    ConnectionSettings,
    Settings,
    TasksConfig,
    load_tasks_config,
    validate_connection,
)
from jobpulse.errors import ConfigError
from jobpulse.logging_setup import setup_logging
from jobpulse.scheduler.isolation import ProcessIsolationManager
from jobpulse.scheduler.models import Frequency, WorkerDescriptor
from jobpulse.scheduler.runner import serve
from jobpulse.scheduler.worker import run_worker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for runner mode."""

    host: str | None
    port: int | None
    config_path: Path | None
    pid_file: Path | None
    log_level: str | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for single-task child mode."""

    host: str | None
    port: int | None
    label: str
    url: str
    frequency: int
    log_level: str | None


@dataclass(slots=True)
class CheckConfigCommand:
    """CLI input for task config validation."""

    config_path: Path | None


class RunnerCliController:
    """CLI controller for runner, worker and config checks."""

    def run(self, command: RunCommand) -> int:
        """Validate inputs, then serve until shutdown. Returns the exit code."""

        settings = _apply_overrides(Settings.from_env(), command)
        tasks = load_tasks_config(settings.validate_for_run())

        setup_logging(settings.runner.log_level)
        isolation = None
        if any(spec.dedicated_child for spec in tasks.periodic):
            isolation = ProcessIsolationManager(
                settings.connection.host,
                settings.connection.port,
                log_level=settings.runner.log_level,
                stop_grace_seconds=settings.runner.worker_stop_grace_seconds,
            )

        with _pid_file(settings.runner.pid_file):
            code = asyncio.run(serve(tasks, settings.connection, isolation=isolation))
        logger.info("Runner exited with code %d", code)
        return code

    def worker(self, command: WorkerCommand) -> int:
        """Run one periodic task directly, without a parent process."""

        env = Settings.from_env()
        connection = ConnectionSettings(
            host=command.host or env.connection.host,
            port=command.port or env.connection.port,
        )
        validate_connection(connection)
        if not command.url.startswith("/"):
            raise ConfigError(f"Task url must be a path starting with '/', got {command.url!r}")
        Frequency.every(command.frequency)

        setup_logging(command.log_level or env.runner.log_level)
        descriptor = WorkerDescriptor(
            label=command.label,
            url=command.url,
            frequency_seconds=command.frequency,
            host=connection.host,
            port=connection.port,
        )
        return asyncio.run(run_worker(descriptor))

    def check_config(self, command: CheckConfigCommand) -> Iterator[str]:
        """Validate a task config file, yielding one line per task."""

        config_path = command.config_path or Settings.from_env().runner.config_path
        if config_path is None:
            raise ConfigError(
                "A task config file is required. Set JOBPULSE_CONFIG or pass --config.",
            )
        tasks = load_tasks_config(config_path)
        yield f"{config_path}: {len(tasks)} task(s) OK"
        yield from _describe(tasks)


def _describe(tasks: TasksConfig) -> Iterator[str]:
    for spec in tasks:
        details = [str(spec.frequency)]
        if spec.start_delay:
            details.append(f"start delay {spec.start_delay}s")
        if spec.dedicated_child:
            details.append("dedicated child")
        yield f"  {spec.label}: GET {spec.url} ({', '.join(details)})"


def _apply_overrides(settings: Settings, command: RunCommand) -> Settings:
    connection = replace(
        settings.connection,
        host=command.host or settings.connection.host,
        port=command.port or settings.connection.port,
    )
    runner = replace(
        settings.runner,
        config_path=command.config_path or settings.runner.config_path,
        pid_file=command.pid_file or settings.runner.pid_file,
        log_level=(command.log_level or settings.runner.log_level).upper(),
    )
    return replace(settings, connection=connection, runner=runner)


@contextmanager
def _pid_file(path: Path | None) -> Iterator[None]:
    if path is None:
        yield
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{os.getpid()}\n", "utf-8")
    except OSError as error:
        raise ConfigError(f"Cannot write PID file {str(path)!r}: {error}") from error
    try:
        yield
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
