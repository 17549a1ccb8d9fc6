from __future__ import annotations

import asyncio
import os

import allure
import pytest

from jobpulse.scheduler.models import Frequency, WorkerDescriptor
from jobpulse.scheduler.worker import run_worker, single_task_config

pytestmark = [
    allure.epic("Scheduling Engine"),
    allure.feature("Process Isolation"),
]

DESCRIPTOR = WorkerDescriptor(
    label="poll",
    url="/poll",
    frequency_seconds=5,
    host="127.0.0.1",
    port=8080,
)


def test_single_task_config_drops_delay_and_isolation() -> None:
    config = single_task_config(DESCRIPTOR)

    (spec,) = config.specs
    assert spec.label == "poll"
    assert spec.url == "/poll"
    assert spec.frequency == Frequency.every(5)
    assert spec.start_delay == 0
    assert not spec.dedicated_child
    assert config.initialize is None
    assert config.shutdown is None


@pytest.mark.asyncio
async def test_worker_exits_when_parent_pipe_closes(invokers) -> None:
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb") as parent_pipe:
        os.close(write_fd)

        code = await asyncio.wait_for(
            run_worker(
                DESCRIPTOR,
                parent_pipe=parent_pipe,
                invoker_factory=invokers,
                install_signals=False,
            ),
            timeout=5,
        )

    assert code == 0
    assert invokers["poll"].closed


@pytest.mark.asyncio
async def test_worker_runs_its_task_immediately(invokers) -> None:
    invokers["poll"].status_code = 500
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb") as parent_pipe:
        worker = asyncio.create_task(
            run_worker(
                DESCRIPTOR,
                parent_pipe=parent_pipe,
                invoker_factory=invokers,
                install_signals=False,
            ),
        )
        for _ in range(50):
            if invokers["poll"].calls:
                break
            await asyncio.sleep(0.01)
        assert not worker.done()
        os.close(write_fd)
        code = await asyncio.wait_for(worker, timeout=5)

    assert code == 0
    assert invokers["poll"].calls == ["/poll"]
