"""Isolated worker: runs one periodic task in its own process.

Started by :class:`ProcessIsolationManager` as ``python -m jobpulse.scheduler.worker``.
The first stdin line is a JSON :class:`WorkerDescriptor`; EOF on stdin afterwards
means the parent is gone.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import IO, Any

from jobpulse.config import ConnectionSettings, TaskSpec, TasksConfig
from jobpulse.errors import ConfigError
from jobpulse.logging_setup import setup_worker_logging
from jobpulse.scheduler.models import Frequency, WorkerDescriptor
from jobpulse.scheduler.registry import EXIT_OK, InvokerFactory, TaskRegistry
from jobpulse.scheduler.runner import serve

logger = logging.getLogger(__name__)

EXIT_BAD_DESCRIPTOR = 2


class _ParentWatch(asyncio.Protocol):
    """Terminates the registry when the parent's end of stdin closes."""

    def __init__(self, registry: TaskRegistry) -> None:
        self._registry = registry

    def data_received(self, data: bytes) -> None:
        logger.debug("Ignoring %d byte(s) on stdin", len(data))

    def eof_received(self) -> bool:
        logger.info("Parent process went away; exiting")
        self._registry.terminate(EXIT_OK)
        return False

    def connection_lost(self, exc: Exception | None) -> None:
        self._registry.terminate(EXIT_OK)


def single_task_config(descriptor: WorkerDescriptor) -> TasksConfig:
    """Periodic-only, no start delay, no further isolation."""

    return TasksConfig(
        specs=(
            TaskSpec(
                label=descriptor.label,
                url=descriptor.url,
                frequency=Frequency.every(descriptor.frequency_seconds),
            ),
        ),
    )


async def run_worker(
    descriptor: WorkerDescriptor,
    *,
    parent_pipe: IO[Any] | None = None,
    invoker_factory: InvokerFactory | None = None,
    install_signals: bool = True,
) -> int:
    """Run one task until a signal arrives or ``parent_pipe`` reaches EOF."""

    loop = asyncio.get_running_loop()
    transports: list[asyncio.BaseTransport] = []

    async def _watch_parent(registry: TaskRegistry) -> None:
        if parent_pipe is None:
            return
        transport, _ = await loop.connect_read_pipe(lambda: _ParentWatch(registry), parent_pipe)
        transports.append(transport)

    logger.info("Worker for task %s started (pid %d)", descriptor.label, os.getpid())
    try:
        return await serve(
            single_task_config(descriptor),
            ConnectionSettings(host=descriptor.host, port=descriptor.port),
            invoker_factory=invoker_factory,
            install_signals=install_signals,
            on_started=_watch_parent,
        )
    finally:
        for transport in transports:
            transport.close()


def main() -> int:
    setup_worker_logging(os.getenv("JOBPULSE_LOG_LEVEL", "INFO"))
    line = sys.stdin.readline()
    try:
        descriptor = WorkerDescriptor.from_json(line)
    except ConfigError as error:
        logger.critical("Invalid worker descriptor: %s", error)
        return EXIT_BAD_DESCRIPTOR
    return asyncio.run(run_worker(descriptor, parent_pipe=sys.stdin))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
