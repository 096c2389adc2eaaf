"""
footprints — CLI entrypoint.

Usage:
    python -m footprints.main --help
    python -m footprints.main install
    python -m footprints.main status
    python -m footprints.main rollback
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from footprints import __version__
from footprints.core.models.record import INSTALL_ORDER
from footprints.core.observability.logging_config import resolve_level, setup_logging

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}
_OUTCOME_ICONS = {
    "installed": ("✓", "green"),
    "ok": ("✓", "green"),
    "planned": ("→", "cyan"),
    "skipped": ("⊘", "white"),
    "degraded": ("⚠", "yellow"),
    "failed": ("✗", "red"),
}
_HEALTH_ICONS = {
    "installed_healthy": ("💚", "green"),
    "installed_drifted": ("🟡", "yellow"),
    "not_installed": ("⚪", "white"),
}
_COMPONENT_NAMES = [cid.value for cid in INSTALL_ORDER]


@click.group()
@click.version_option(version=__version__, prog_name="footprints")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to footprints.yml (default: auto-detect).",
)
@click.option(
    "--mock",
    is_flag=True,
    help="Mock the OS tools (xattr, launchctl, logger); their state is kept under "
    "<state_dir>/mock. Files still go to the configured paths.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """footprints — install, verify and roll back host footprints."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None

    setup_logging(level=resolve_level(level))


# ── Helpers ─────────────────────────────────────────────────────


def _fail(message: str, as_json: bool = False) -> None:
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def _controller(ctx: click.Context, as_json: bool = False):
    """Build the controller, exiting with code 1 on a config error."""
    from footprints.core.config.loader import ConfigError
    from footprints.core.use_cases.lifecycle import build_controller

    try:
        return build_controller(ctx.obj.get("config_path"), mock=ctx.obj.get("mock", False))
    except ConfigError as e:
        _fail(str(e), as_json)


def _run_operation(ctx: click.Context, operation: str, as_json: bool, **kwargs) -> None:
    """Run one controller operation and present its report."""
    from footprints.core.errors import PreconditionError

    controller = _controller(ctx, as_json)
    try:
        report = getattr(controller, operation)(**kwargs)
    except PreconditionError as e:
        _fail(str(e), as_json)
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if report.status != "ok":
            sys.exit(1)
        return

    mode_label = "[dry-run] " if report.dry_run else "[mock] " if ctx.obj.get("mock") else ""
    click.secho(f"\n⚡ {mode_label}{report.operation} — {report.operation_id}", fg="cyan", bold=True)
    if report.correlation_id:
        click.echo(f"   Correlation id: {report.correlation_id}")
    click.echo()

    for outcome in report.outcomes.values():
        icon, color = _OUTCOME_ICONS.get(outcome.status, ("?", "white"))
        click.secho(f"   {icon} {outcome.component_id.value}", fg=color, nl=False)
        click.echo(f"  {outcome.status}")
        if outcome.error:
            click.echo(f"     │ {outcome.error_kind}: {outcome.error}")
        for step in outcome.plan:
            click.echo(f"     │ {step}")
        if ctx.obj.get("verbose"):
            for resource in outcome.failed_resources:
                click.echo(f"     │ • {resource}")

    click.echo()
    if report.dry_run:
        click.secho(
            f"   Plan: {report.planned}/{report.total} component(s) would change, nothing was modified",
            fg="cyan",
            bold=True,
        )
        click.echo()
        return
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded ({report.duration_ms}ms)",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )
    click.echo()
    if report.status != "ok":
        sys.exit(1)


def _install_signal_handlers(stop: threading.Event) -> None:
    def _handler(signum, frame):
        stop.set()

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


def _host_loops(controller, components: list[str] | None = None) -> None:
    stop = threading.Event()
    _install_signal_handlers(stop)
    ran = controller.run_loops(stop, components)
    click.echo(f"Loops stopped: {', '.join(c.value for c in ran) or 'none'}")


# ── Lifecycle commands ──────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--component",
    "components",
    multiple=True,
    type=click.Choice(_COMPONENT_NAMES),
    help="Only this footprint (repeatable).",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without changing anything.")
@click.option("--run", "run_loops", is_flag=True, help="Keep running and host the background loops.")
@click.pass_context
def install(ctx: click.Context, as_json: bool, components: tuple[str, ...], dry_run: bool, run_loops: bool) -> None:
    """Install every footprint (idempotent; repairs drift).

    The log_injection and report_forgery loops only run while a process
    hosts them: pass --run, or start `footprints run` afterwards. The
    registered service task only runs `footprints reassert`.

    Examples:

        footprints install --dry-run

        footprints install --component tag --component service

        footprints install --run
    """
    selected = list(components) or None
    if dry_run or not run_loops:
        _run_operation(
            ctx, "install_all", as_json, start_loops=run_loops, components=selected, dry_run=dry_run,
        )
        return

    from footprints.core.errors import PreconditionError

    controller = _controller(ctx, as_json)
    try:
        report = controller.install_all(start_loops=False, components=selected)
    except PreconditionError as e:
        _fail(str(e), as_json)
        return
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.secho(f"Install {report.status} ({report.succeeded}/{report.total})", fg=_STATUS_COLORS[report.status])
    _host_loops(controller, selected)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--component",
    "components",
    multiple=True,
    type=click.Choice(_COMPONENT_NAMES),
    help="Only this footprint (repeatable).",
)
@click.pass_context
def status(ctx: click.Context, as_json: bool, components: tuple[str, ...]) -> None:
    """Show the health of every footprint."""
    controller = _controller(ctx, as_json)
    inspection = controller.inspect(list(components) or None)

    if as_json:
        click.echo(json.dumps(inspection.to_dict(), indent=2))
        return

    click.secho("\n📋 Footprints", fg="cyan", bold=True)
    if inspection.correlation_id:
        click.echo(f"   Correlation id: {inspection.correlation_id}")
    click.echo()
    for cid, health in inspection.health.items():
        icon, color = _HEALTH_ICONS.get(health.value, ("❔", "white"))
        click.secho(f"   {icon} {cid.value:<16}", fg=color, bold=True, nl=False)
        click.echo(f" {health.value}")
        if cid in inspection.drift:
            for missing in inspection.drift[cid].missing:
                click.echo(f"      missing: {missing}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--component",
    "components",
    multiple=True,
    type=click.Choice(_COMPONENT_NAMES),
    help="Only this footprint (repeatable).",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without changing anything.")
@click.pass_context
def rollback(ctx: click.Context, as_json: bool, components: tuple[str, ...], dry_run: bool) -> None:
    """Stop loops, restore snapshots and clear records (reverse order)."""
    _run_operation(ctx, "rollback_all", as_json, components=list(components) or None, dry_run=dry_run)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--component",
    "components",
    multiple=True,
    type=click.Choice(_COMPONENT_NAMES),
    help="Only this footprint (repeatable).",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without changing anything.")
@click.pass_context
def cleanup(ctx: click.Context, as_json: bool, components: tuple[str, ...], dry_run: bool) -> None:
    """Remove every footprint without restoring; discard snapshots."""
    _run_operation(ctx, "cleanup_all", as_json, components=list(components) or None, dry_run=dry_run)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reassert(ctx: click.Context, as_json: bool) -> None:
    """Repair drifted tag/service footprints (run by the registered task)."""
    _run_operation(ctx, "reassert", as_json)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Host the background loops until SIGTERM/SIGINT."""
    _host_loops(_controller(ctx))


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate footprints.yml."""
    from footprints.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.settings is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Config: {result.config_path or '(defaults)'}")
        click.echo(f"   State: {result.settings.state_dir}")
        click.echo(f"   Backups: {result.settings.backup_dir}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Register sub-command groups from footprints/ui/cli/ ─────────

from footprints.ui.cli.audit import audit
from footprints.ui.cli.reports import generate

cli.add_command(audit)
cli.add_command(generate)


if __name__ == "__main__":
    cli()
