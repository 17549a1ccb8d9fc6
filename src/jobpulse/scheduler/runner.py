"""Async entry point tying registry, signal router and isolated workers together."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from jobpulse.config import ConnectionSettings, TaskSpec, TasksConfig
from jobpulse.http.invoker import HttpInvoker, RequestInvoker
from jobpulse.scheduler.isolation import ProcessIsolationManager
from jobpulse.scheduler.registry import InvokerFactory, TaskRegistry
from jobpulse.scheduler.signals import SignalRouter

logger = logging.getLogger(__name__)


def http_invoker_factory(connection: ConnectionSettings) -> InvokerFactory:
    """One invoker per task; no connection is shared between tasks."""

    def _factory(_spec: TaskSpec) -> RequestInvoker:
        return HttpInvoker(connection.host, connection.port)

    return _factory


async def serve(  # noqa: PLR0913
    tasks: TasksConfig,
    connection: ConnectionSettings,
    *,
    invoker_factory: InvokerFactory | None = None,
    isolation: ProcessIsolationManager | None = None,
    install_signals: bool = True,
    on_started: Callable[[TaskRegistry], Awaitable[None]] | None = None,
) -> int:
    """Run the lifecycle until the registry resolves an exit code."""

    loop = asyncio.get_running_loop()
    registry = TaskRegistry(
        tasks,
        loop=loop,
        invoker_factory=invoker_factory or http_invoker_factory(connection),
        isolation=isolation,
    )
    router = SignalRouter(registry.bus, loop)
    if install_signals:
        router.install()
    logger.info("Runner targeting %s:%d", connection.host, connection.port)
    try:
        registry.start()
        if on_started is not None:
            await on_started(registry)
        return await registry.wait()
    finally:
        router.uninstall()
        if isolation is not None:
            await isolation.terminate_all()
        await registry.aclose()
