from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from jobpulse.config import (
    ConnectionSettings,
    RunnerSettings,
    Settings,
    TaskSpec,
    TasksConfig,
    load_tasks_config,
)
from jobpulse.errors import ConfigError
from jobpulse.scheduler.models import Frequency

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Task Config Validation"),
]


def test_from_mapping_builds_typed_specs() -> None:
    config = TasksConfig.from_mapping(
        {
            "init": {"url": "/init", "frequency": "initialize"},
            "poll": {"url": "/poll", "frequency": 5, "start-delay": 10, "dedicated-child": True},
            "cleanup": {"url": "/cleanup", "frequency": "shutdown"},
        },
    )

    assert len(config) == 3
    assert config.initialize == TaskSpec(
        label="init",
        url="/init",
        frequency=Frequency.initialize(),
    )
    assert config.shutdown is not None
    assert config.shutdown.label == "cleanup"
    assert config.periodic == (
        TaskSpec(
            label="poll",
            url="/poll",
            frequency=Frequency.every(5),
            start_delay=10,
            dedicated_child=True,
        ),
    )


def test_from_mapping_allows_missing_special_tasks() -> None:
    config = TasksConfig.from_mapping({"poll": {"url": "/poll", "frequency": "60"}})

    assert config.initialize is None
    assert config.shutdown is None
    assert config.periodic[0].frequency == Frequency.every(60)


def test_from_mapping_rejects_second_initialize_task() -> None:
    with pytest.raises(ConfigError, match="At most one initialize task"):
        TasksConfig.from_mapping(
            {
                "a": {"url": "/a", "frequency": "initialize"},
                "b": {"url": "/b", "frequency": "initialize"},
            },
        )


def test_from_mapping_rejects_second_shutdown_task() -> None:
    with pytest.raises(ConfigError, match="At most one shutdown task"):
        TasksConfig.from_mapping(
            {
                "a": {"url": "/a", "frequency": "shutdown"},
                "b": {"url": "/b", "frequency": "shutdown"},
            },
        )


def test_validate_rejects_duplicate_labels() -> None:
    spec = TaskSpec(label="poll", url="/poll", frequency=Frequency.every(5))

    with pytest.raises(ConfigError, match="Duplicate task label"):
        TasksConfig(specs=(spec, spec)).validate()


@pytest.mark.parametrize(
    ("record", "message"),
    [
        ({"frequency": 5}, "'url' must be a path"),
        ({"url": "poll", "frequency": 5}, "'url' must be a path"),
        ({"url": "/poll"}, "'frequency' is required"),
        ({"url": "/poll", "frequency": "weekly"}, "Invalid frequency"),
        ({"url": "/poll", "frequency": "\u00b2"}, "Invalid frequency"),
        ({"url": "/poll", "frequency": 5, "start-delay": -1}, "'start-delay' must be"),
        ({"url": "/poll", "frequency": 5, "dedicated-child": "yes"}, "must be a boolean"),
        ({"url": "/poll", "frequency": 5, "retries": 3}, "unknown key"),
        ({"url": "/init", "frequency": "initialize", "start-delay": 3}, "only applies to periodic"),
        (
            {"url": "/bye", "frequency": "shutdown", "dedicated-child": True},
            "only applies to periodic",
        ),
    ],
)
def test_from_mapping_rejects_invalid_records(record: dict[str, object], message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        TasksConfig.from_mapping({"job": record})


def test_from_mapping_rejects_non_object_root() -> None:
    with pytest.raises(ConfigError, match="must be an object"):
        TasksConfig.from_mapping(["poll"])


def test_load_tasks_config_reads_json_file(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps({"poll": {"url": "/poll", "frequency": 5}}), "utf-8")

    config = load_tasks_config(path)

    assert [spec.label for spec in config] == ["poll"]


def test_load_tasks_config_reports_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("{not json", "utf-8")

    with pytest.raises(ConfigError, match="not valid JSON"):
        load_tasks_config(path)


def test_load_tasks_config_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Cannot read task config"):
        load_tasks_config(tmp_path / "missing.json")


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("JOBPULSE_HOST", "api.internal")
    monkeypatch.setenv("JOBPULSE_PORT", "8080")
    monkeypatch.setenv("JOBPULSE_CONFIG", str(tmp_path / "tasks.json"))
    monkeypatch.setenv("JOBPULSE_LOG_LEVEL", "debug")
    monkeypatch.delenv("JOBPULSE_PID_FILE", raising=False)

    settings = Settings.from_env()

    assert settings.connection == ConnectionSettings(host="api.internal", port=8080)
    assert settings.runner.config_path == tmp_path / "tasks.json"
    assert settings.runner.pid_file is None
    assert settings.runner.log_level == "DEBUG"
    assert settings.validate_for_run() == tmp_path / "tasks.json"


def test_settings_from_env_rejects_non_numeric_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JOBPULSE_PORT", "http")

    with pytest.raises(ConfigError, match="JOBPULSE_PORT"):
        Settings.from_env()


def test_settings_from_env_rejects_non_numeric_grace_period(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("JOBPULSE_WORKER_STOP_GRACE_SECONDS", "soon")

    with pytest.raises(ConfigError, match="JOBPULSE_WORKER_STOP_GRACE_SECONDS"):
        Settings.from_env()


def test_validate_for_run_requires_host() -> None:
    settings = Settings(runner=RunnerSettings(config_path=Path("tasks.json")))

    with pytest.raises(ConfigError, match="target host is required"):
        settings.validate_for_run()


def test_validate_for_run_requires_config_path() -> None:
    settings = Settings(connection=ConnectionSettings(host="localhost"))

    with pytest.raises(ConfigError, match="task config file is required"):
        settings.validate_for_run()


def test_validate_for_run_rejects_out_of_range_port() -> None:
    settings = Settings(
        connection=ConnectionSettings(host="localhost", port=70000),
        runner=RunnerSettings(config_path=Path("tasks.json")),
    )

    with pytest.raises(ConfigError, match="Invalid target port"):
        settings.validate_for_run()
