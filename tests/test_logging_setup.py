from __future__ import annotations

import logging
import sys
from collections.abc import Iterator

import allure
import pytest

from jobpulse.logging_setup import resolve_level, setup_logging, setup_worker_logging

pytestmark = [
    allure.epic("Runner CLI"),
    allure.feature("Logging"),
]


@pytest.fixture()
def restore_root_logger() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_resolve_level_accepts_names_and_numbers() -> None:
    assert resolve_level(" debug ") == logging.DEBUG
    assert resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError, match="Unknown log level"):
        resolve_level("chatty")


def test_setup_logging_replaces_root_handlers(restore_root_logger: logging.Logger) -> None:
    setup_logging("warning")
    setup_logging("debug")

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING


def test_worker_logging_splits_streams_by_level(
    restore_root_logger: logging.Logger,
    capsys: pytest.CaptureFixture[str],
) -> None:
    setup_worker_logging("DEBUG")
    streams = {handler.stream for handler in restore_root_logger.handlers}
    assert streams == {sys.stdout, sys.stderr}

    worker_logger = logging.getLogger("jobpulse.test.worker")
    worker_logger.info("routine progress")
    worker_logger.error("something broke")

    captured = capsys.readouterr()
    assert "routine progress" in captured.out
    assert "something broke" not in captured.out
    assert "something broke" in captured.err
    assert "routine progress" not in captured.err
