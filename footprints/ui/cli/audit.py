"""
CLI commands for the audit ledger.

Thin wrappers over ``footprints.core.persistence.audit``.

Usage::

    footprints audit
    footprints audit -n 5 --json
"""

from __future__ import annotations

import json
import sys

import click


@click.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def audit(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show the most recent lifecycle operations."""
    from footprints.core.config.loader import ConfigError, load_settings
    from footprints.core.persistence.audit import AuditWriter

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    writer = AuditWriter(settings.audit_path)
    entries = writer.read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No audit entries yet.")
        return

    click.secho(f"\n📜 Audit ledger ({writer.entry_count()} entries, showing {len(entries)})", fg="cyan", bold=True)
    click.echo()
    colors = {"ok": "green", "partial": "yellow", "failed": "red"}
    for entry in entries:
        click.echo(f"   {entry.timestamp}  {entry.operation_type:<9} ", nl=False)
        click.secho(f"{entry.status:<8}", fg=colors.get(entry.status, "white"), nl=False)
        click.echo(f" {entry.components_succeeded}/{entry.components_total}  {entry.operation_id}")
        for err in entry.errors:
            click.echo(f"     │ {err}")
    click.echo()
