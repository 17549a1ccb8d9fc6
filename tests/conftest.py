"""Shared test fixtures."""

from __future__ import annotations

import asyncio

import pytest

from jobpulse.config import TaskSpec
from jobpulse.http.invoker import InvokeResult
from jobpulse.scheduler.events import EventBus, LifecycleSignal


class FakeInvoker:
    """Scriptable RequestInvoker: fixed status, optional error, optional gate."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.status_code = 200
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def get(self, path: str) -> InvokeResult:
        self.calls.append(path)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return InvokeResult(
            path=path,
            status_code=self.status_code,
            reason="OK" if self.status_code == 200 else "Error",
            elapsed_seconds=0.0,
        )

    async def aclose(self) -> None:
        self.closed = True


class FakeInvokerPool:
    """Invoker factory handing out one FakeInvoker per task label."""

    def __init__(self) -> None:
        self.invokers: dict[str, FakeInvoker] = {}

    def __getitem__(self, label: str) -> FakeInvoker:
        return self.invokers.setdefault(label, FakeInvoker())

    def __call__(self, spec: TaskSpec) -> FakeInvoker:
        return self[spec.label]


class SignalRecorder:
    """Bus subscriber remembering every delivery in order."""

    def __init__(self, bus: EventBus) -> None:
        self.received: list[tuple[LifecycleSignal, object]] = []
        for signal in LifecycleSignal:
            bus.subscribe(signal, self._handler_for(signal))

    def _handler_for(self, signal: LifecycleSignal):
        def _handler(payload: object) -> None:
            self.received.append((signal, payload))

        return _handler

    def signals(self) -> list[LifecycleSignal]:
        return [signal for signal, _ in self.received]


@pytest.fixture()
def invokers() -> FakeInvokerPool:
    return FakeInvokerPool()


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def recorder(bus: EventBus) -> SignalRecorder:
    return SignalRecorder(bus)


@pytest.fixture()
def settle():
    """Let pending callbacks and fake requests run to completion."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle
