"""hubsight CLI entry point."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click
import yaml
from click.core import ParameterSource

from hubsight.config import HubsightSettings, load_config
from hubsight.core.clock import ManualClock
from hubsight.core.logging import setup_logging
from hubsight.core.metrics import metrics_generate_latest
from hubsight.core.sink import LoggingSink
from hubsight.core.telemetry import init_tracing, shutdown_tracing
from hubsight.engine import ObservabilityEngine
from hubsight.models.validation import StudyType
from hubsight.replay import EventReplayer, ReplayError
from hubsight.validation.pricing import calculate_expected_pricing

logger = logging.getLogger(__name__)


def _given(ctx: click.Context, name: str) -> bool:
    return ctx.get_parameter_source(name) not in (None, ParameterSource.DEFAULT)


def _settings(config_path: str | None) -> HubsightSettings:
    """Load settings and reapply logging with any options the CLI left unset."""
    if config_path is None:
        settings = HubsightSettings()
    else:
        try:
            settings = load_config(config_path)
        except (FileNotFoundError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc

    root = click.get_current_context().find_root()
    observability = settings.observability
    level = root.params["log_level"] if _given(root, "log_level") else observability.log_level
    json_logs = root.params["json_logs"] if _given(root, "json_logs") else observability.json_logs
    setup_logging(level.upper(), json_output=json_logs)
    return settings


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=False, default=str))


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    envvar="HUBSIGHT_LOG_LEVEL",
    help="Overrides observability.log_level from the config.",
)
@click.option(
    "--json-logs",
    is_flag=True,
    default=False,
    help="Emit logs as JSON lines; overrides observability.json_logs.",
)
def cli(log_level: str, json_logs: bool) -> None:
    """hubsight observability engine CLI."""
    setup_logging(log_level.upper(), json_output=json_logs)


@cli.command("check-config")
@click.option("--config", "config_path", default=None, help="YAML config file.")
def check_config_command(config_path: str | None) -> None:
    """Validate the configuration and print the effective settings."""
    settings = _settings(config_path)
    click.echo(yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False), nl=False)


@cli.command("pricing")
@click.argument("study_type", type=click.Choice([member.value for member in StudyType]))
@click.argument("blocks_count", type=click.IntRange(min=0))
@click.option("--config", "config_path", default=None, help="YAML config file.")
def pricing_command(study_type: str, blocks_count: int, config_path: str | None) -> None:
    """Print the expected pricing for a study."""
    settings = _settings(config_path)
    expected = calculate_expected_pricing(
        settings.validation.pricing, StudyType(study_type), blocks_count
    )
    _echo_json(expected.model_dump(mode="json"))


@cli.command("replay")
@click.argument("events_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--config", "config_path", default=None, help="YAML config file.")
@click.option(
    "--start",
    "start_at",
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S"]),
    default=None,
    help="Replay clock start (UTC when no offset is given).",
)
@click.option(
    "--metrics", "show_metrics", is_flag=True, default=False, help="Print Prometheus metrics."
)
def replay_command(
    events_file: Path,
    config_path: str | None,
    start_at: datetime | None,
    show_metrics: bool,
) -> None:
    """Feed a JSON-lines event file into a fresh engine and print its summaries."""
    settings = _settings(config_path)
    if start_at is not None and start_at.tzinfo is None:
        start_at = start_at.replace(tzinfo=UTC)
    clock = ManualClock(start_at)

    if settings.telemetry.enabled:
        init_tracing(settings.telemetry)
    engine = ObservabilityEngine(settings, sink=LoggingSink(), clock=clock)
    replayer = EventReplayer(engine, clock)

    try:
        with events_file.open(encoding="utf-8") as handle:
            report = replayer.replay(handle)
        cycle = engine.run_analysis_cycle()
    except ReplayError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        if settings.telemetry.enabled:
            shutdown_tracing()

    _echo_json(
        {
            "replay": {
                "events": report.events,
                "invalidValidations": report.invalid_validations,
                "alerts": report.alerts,
                "analysisRuns": report.analysis_runs,
                "flows": report.flows,
                "journeys": report.journeys,
            },
            "validation": cycle.validation.model_dump(mode="json"),
            "flows": cycle.flows.model_dump(mode="json"),
            "performance": cycle.performance.model_dump(mode="json"),
        }
    )
    if show_metrics and settings.observability.metrics_enabled:
        click.echo(metrics_generate_latest().decode("utf-8"), nl=False)


__all__ = ["cli"]


if __name__ == "__main__":
    cli()
