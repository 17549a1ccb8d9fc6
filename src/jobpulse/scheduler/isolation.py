"""Re-hosts a periodic task inside its own worker process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field

from jobpulse.errors import WorkerSpawnError
from jobpulse.scheduler.models import WorkerDescriptor

logger = logging.getLogger(__name__)

WORKER_MODULE = "jobpulse.scheduler.worker"
WORKER_LOGGER_PREFIX = "jobpulse.worker"


def default_worker_command() -> list[str]:
    return [sys.executable, "-m", WORKER_MODULE]


@dataclass(slots=True)
class WorkerHandle:
    """A live worker process and the tasks pumping its output."""

    descriptor: WorkerDescriptor
    process: asyncio.subprocess.Process
    pumps: list[asyncio.Task[None]] = field(default_factory=list)
    stopping: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


class ProcessIsolationManager:
    """Spawns one worker per dedicated task and ties its lifetime to ours.

    The descriptor travels over the worker's stdin, which then stays open:
    the worker exits when it sees EOF, so it cannot outlive this process.
    Worker stdout is logged at DEBUG, stderr at ERROR.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        log_level: str = "INFO",
        stop_grace_seconds: float = 5.0,
        command: Sequence[str] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._log_level = log_level
        self._stop_grace_seconds = stop_grace_seconds
        self._command = list(command) if command is not None else default_worker_command()
        self._workers: list[WorkerHandle] = []

    @property
    def workers(self) -> list[WorkerHandle]:
        return list(self._workers)

    async def spawn(self, descriptor: WorkerDescriptor) -> WorkerHandle:
        env = os.environ.copy()
        env["JOBPULSE_LOG_LEVEL"] = self._log_level
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as error:
            raise WorkerSpawnError(
                f"Cannot start worker for task {descriptor.label!r}: {error}",
                label=descriptor.label,
            ) from error

        stdin, stdout, stderr = process.stdin, process.stdout, process.stderr
        if stdin is None or stdout is None or stderr is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            raise WorkerSpawnError(
                f"Worker for task {descriptor.label!r} started without stdio pipes",
                label=descriptor.label,
            )

        handle = WorkerHandle(descriptor=descriptor, process=process)
        self._workers.append(handle)
        try:
            stdin.write(descriptor.to_json().encode("utf-8") + b"\n")
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as error:
            raise WorkerSpawnError(
                f"Worker for task {descriptor.label!r} exited before receiving its descriptor",
                label=descriptor.label,
            ) from error

        worker_logger = logging.getLogger(f"{WORKER_LOGGER_PREFIX}.{descriptor.label}")
        handle.pumps = [
            asyncio.create_task(_forward(stdout, worker_logger, logging.DEBUG)),
            asyncio.create_task(_forward(stderr, worker_logger, logging.ERROR)),
            asyncio.create_task(_report_exit(handle)),
        ]
        logger.info("Task %s handed off to worker pid %d", descriptor.label, process.pid)
        return handle

    async def terminate_all(self) -> None:
        """Stop every live worker: SIGTERM, then SIGKILL after the grace period."""

        for handle in self._workers:
            await self._terminate(handle)
        for handle in self._workers:
            for pump in handle.pumps:
                pump.cancel()
            await asyncio.gather(*handle.pumps, return_exceptions=True)
        self._workers.clear()

    async def _terminate(self, handle: WorkerHandle) -> None:
        process = handle.process
        handle.stopping = True
        if process.stdin is not None:
            process.stdin.close()
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._stop_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Worker %d for task %s ignored SIGTERM; killing",
                process.pid,
                handle.descriptor.label,
            )
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()


async def _forward(stream: asyncio.StreamReader, target: logging.Logger, level: int) -> None:
    while True:
        line = await stream.readline()
        if not line:
            return
        text = line.decode("utf-8", errors="replace").rstrip()
        if text:
            target.log(level, "%s", text)


async def _report_exit(handle: WorkerHandle) -> None:
    returncode = await handle.process.wait()
    if returncode == 0 or handle.stopping:
        logger.info("Worker %d for task %s exited", handle.pid, handle.descriptor.label)
    else:
        logger.error(
            "Worker %d for task %s exited with status %d",
            handle.pid,
            handle.descriptor.label,
            returncode,
        )
