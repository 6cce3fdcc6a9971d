"""signal-governor CLI: validate config and dry-run the pipeline.

Commands:
    validate        Validate governor.yaml, channels and the action catalog
    list-actions    Show the action templates in the catalog
    synthesize      Show the actions a signal + context would produce
    route           Show which channels an alert would be delivered to
"""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime
from typing import Any

import click
from pydantic import ValidationError

from signal_governor import __version__
from signal_governor.alerts.messages import build_alert
from signal_governor.catalog.loader import CatalogError
from signal_governor.config import ConfigError, GovernorConfig, load_config
from signal_governor.engine import Governor
from signal_governor.models import (
    AlertCategory,
    HealthStatus,
    Severity,
    Signal,
    SystemContext,
)

# --- Helpers ---


def _resolve_cfg(config_path: str | None) -> GovernorConfig:
    """Load the explicit config (errors are fatal) or auto-discover one."""
    if config_path is not None:
        try:
            return load_config(config_path)
        except ConfigError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    try:
        return load_config()
    except ConfigError:
        return GovernorConfig()


def _build_governor(cfg: GovernorConfig) -> Governor:
    """Build a dry-run governor that is closed when the command finishes."""
    try:
        governor = Governor(cfg, adapters={})
    except (ConfigError, CatalogError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.get_current_context().call_on_close(governor.close)
    return governor


def _parse_pairs(pairs: tuple[str, ...], numeric: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got '{pair}'")
        key, value = pair.split("=", 1)
        if numeric:
            try:
                result[key] = float(value)
            except ValueError as e:
                raise click.BadParameter(f"'{key}' needs a numeric value") from e
        else:
            result[key] = value
    return result


def _priority_badge(priority: str) -> str:
    color = {
        "low": "green", "medium": "yellow",
        "high": "red", "critical": "magenta",
    }.get(priority, "white")
    return click.style(f"[{priority}]", fg=color, bold=priority == "critical")


config_option = click.option(
    "--config", "config_path", default=None,
    help="Path to governor.yaml (default: auto-discover)",
)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Signal Governor: gated decisions and escalating alerts."""


# --- validate command ---


@cli.command()
@config_option
def validate(config_path: str | None) -> None:
    """Validate configuration, channels and catalog."""
    cfg = _resolve_cfg(config_path)
    governor = _build_governor(cfg)

    source = str(cfg.config_path) if cfg.config_path else "built-in defaults"
    click.echo(click.style("OK", fg="green") + f"  config: {source}")
    click.echo(
        click.style("OK", fg="green")
        + f"  catalog: {len(governor.catalog)} template(s), "
        + f"{len(governor.catalog.metric_map)} metric mapping(s)"
    )
    channels = governor.dispatcher.routing.channels
    click.echo(click.style("OK", fg="green") + f"  channels: {len(channels)} defined")

    warnings = 0
    for channel in channels:
        for rule in channel.routing_rules:
            if rule.channel_id != channel.id:
                warnings += 1
                click.echo(
                    click.style("WARN", fg="yellow")
                    + f"  rule '{rule.id}' on channel '{channel.id}' "
                    + f"targets '{rule.channel_id}' and will be ignored"
                )

    suffix = f" with {warnings} warning(s)" if warnings else ""
    click.echo(f"\nConfiguration valid{suffix}.")


# --- list-actions command ---


@cli.command("list-actions")
@config_option
@click.option("--category", default=None, help="Filter by action category")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def list_actions(config_path: str | None, category: str | None, json_output: bool) -> None:
    """Show all action templates."""
    governor = _build_governor(_resolve_cfg(config_path))
    templates = governor.catalog.templates
    if category:
        templates = [t for t in templates if t.category == category]
    templates.sort(key=lambda t: t.id)

    if json_output:
        click.echo(json.dumps([t.model_dump(mode="json") for t in templates], indent=2))
        return

    if not templates:
        click.echo("No actions found.")
        return
    for t in templates:
        approval = "  approval" if t.requires_human_approval else ""
        click.echo(
            f"  {t.id:<28} {str(t.category):<14} risk={t.base_risk:.2f}{approval}"
        )
    click.echo(f"\n{len(templates)} action(s) registered.")


# --- synthesize command ---


@cli.command()
@config_option
@click.option("--metric", default=None, help="Signal metric name")
@click.option("--value", type=float, default=0.0, help="Signal value")
@click.option(
    "--severity", type=click.Choice([s.value for s in Severity]), default="medium",
    help="Signal severity",
)
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=0.8,
              help="Signal confidence (0-1)")
@click.option(
    "--health", type=click.Choice([h.value for h in HealthStatus]), default="healthy",
    help="Overall system health",
)
@click.option("--cpu", type=float, default=0.0, help="CPU utilization (0-1)")
@click.option("--memory", type=float, default=0.0, help="Memory utilization (0-1)")
@click.option("--peak-hours", is_flag=True, help="Treat now as peak hours")
@click.option("--context-metric", "context_metrics", multiple=True,
              help="Context metric as key=value (repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def synthesize(
    config_path: str | None,
    metric: str | None,
    value: float,
    severity: str,
    confidence: float,
    health: str,
    cpu: float,
    memory: float,
    peak_hours: bool,
    context_metrics: tuple[str, ...],
    json_output: bool,
) -> None:
    """Show the actions a signal and system context would produce (dry run)."""
    governor = _build_governor(_resolve_cfg(config_path))

    try:
        signal = None
        if metric:
            signal = Signal(
                metric=metric,
                value=value,
                severity=Severity(severity),
                confidence=confidence,
                timestamp=datetime.now(tz=UTC),
            )
        context = SystemContext(
            health=HealthStatus(health),
            cpu=cpu,
            memory=memory,
            peak_hours=peak_hours,
            metrics=_parse_pairs(context_metrics, numeric=True),
        )
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        actions = governor.synthesizer.synthesize(signal, context)
    except CatalogError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps([a.model_dump(mode="json") for a in actions], indent=2))
        return

    if not actions:
        click.echo("No actions proposed.")
        return
    for a in actions:
        approval = click.style("  needs approval", fg="yellow") if a.requires_human_approval else ""
        click.echo(
            f"  {_priority_badge(str(a.priority))} {a.template_id:<26} "
            f"confidence={a.confidence:.2f} risk={a.risk_level}{approval}"
        )
    click.echo(f"\n{len(actions)} action(s) proposed.")


# --- route command ---


@cli.command()
@config_option
@click.option(
    "--severity", type=click.Choice([s.value for s in Severity]), required=True,
    help="Alert severity",
)
@click.option(
    "--category", type=click.Choice([c.value for c in AlertCategory]), required=True,
    help="Alert category",
)
@click.option("--source", default="cli", help="Alert source")
@click.option("--title", default="Test alert", help="Alert title")
@click.option("--meta", "metadata", multiple=True, help="Metadata as key=value (repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def route(
    config_path: str | None,
    severity: str,
    category: str,
    source: str,
    title: str,
    metadata: tuple[str, ...],
    json_output: bool,
) -> None:
    """Show which channels an alert would be routed to."""
    governor = _build_governor(_resolve_cfg(config_path))
    alert = build_alert(
        title=title,
        message=title,
        severity=severity,
        category=category,
        source=source,
        metadata=_parse_pairs(metadata),
    )
    channels = governor.dispatcher.routing.resolve_channels(alert)

    if json_output:
        click.echo(json.dumps({"channels": channels}, indent=2))
        return

    if not channels:
        click.echo("No channels matched.")
        return
    for channel_id in channels:
        click.echo(f"  {channel_id}")
    click.echo(f"\n{len(channels)} channel(s) matched.")


if __name__ == "__main__":
    cli()
