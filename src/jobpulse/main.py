"""CLI entrypoint for jobpulse."""

import sys
from pathlib import Path

import rich_click as click

from jobpulse import __version__
from jobpulse.controllers import (
    CheckConfigCommand,
    RunCommand,
    RunnerCliController,
    WorkerCommand,
)
from jobpulse.errors import ConfigError

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@click.group()
@click.version_option(version=__version__, prog_name="jobpulse")
def jobpulse() -> None:
    """Recurring HTTP job runner."""


@jobpulse.command("run")
@click.option("--host", default=None, help="Target host. Defaults to JOBPULSE_HOST.")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65535),
    default=None,
    help="Target port. Defaults to JOBPULSE_PORT or 80.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="JSON task config. Defaults to JOBPULSE_CONFIG.",
)
@click.option(
    "--pid-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Write the runner PID here while it runs.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level. Defaults to JOBPULSE_LOG_LEVEL or INFO.",
)
def run(  # noqa: PLR0913
    host: str | None,
    port: int | None,
    config_path: Path | None,
    pid_file: Path | None,
    log_level: str | None,
) -> None:
    """Run every configured task until a termination signal arrives.

    Config maps task labels to records:

    `{"init": {"url": "/init", "frequency": "initialize"},
    "poll": {"url": "/poll", "frequency": 5}}`
    """

    try:
        code = RUNNER_CONTROLLER.run(
            RunCommand(
                host=host,
                port=port,
                config_path=config_path,
                pid_file=pid_file,
                log_level=log_level,
            ),
        )
    except ConfigError as error:
        raise click.ClickException(str(error)) from error
    sys.exit(code)


@jobpulse.command("worker")
@click.option("--host", default=None, help="Target host. Defaults to JOBPULSE_HOST.")
@click.option("--port", type=click.IntRange(min=1, max=65535), default=None, help="Target port.")
@click.option("--label", required=True, help="Task label.")
@click.option("--url", required=True, help="Path to request, for example /poll.")
@click.option(
    "--frequency",
    type=click.IntRange(min=1),
    required=True,
    help="Repeat interval in seconds.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level. Defaults to JOBPULSE_LOG_LEVEL or INFO.",
)
def worker(  # noqa: PLR0913
    host: str | None,
    port: int | None,
    label: str,
    url: str,
    frequency: int,
    log_level: str | None,
) -> None:
    """Run a single periodic task in the foreground."""

    try:
        code = RUNNER_CONTROLLER.worker(
            WorkerCommand(
                host=host,
                port=port,
                label=label,
                url=url,
                frequency=frequency,
                log_level=log_level,
            ),
        )
    except ConfigError as error:
        raise click.ClickException(str(error)) from error
    sys.exit(code)


@jobpulse.command("check-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="JSON task config. Defaults to JOBPULSE_CONFIG.",
)
def check_config(config_path: Path | None) -> None:
    """Validate a task config file without running anything."""

    try:
        _emit_lines(RUNNER_CONTROLLER.check_config(CheckConfigCommand(config_path=config_path)))
    except ConfigError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    jobpulse()
