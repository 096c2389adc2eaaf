"""
CLI command for the synthetic report generator.

Usable without installing anything::

    footprints generate --seed 42
    footprints generate --seed 42 --json
"""

from __future__ import annotations

import json

import click


@click.command()
@click.option("--seed", type=int, default=None, help="Seed for a reproducible report.")
@click.option("--host", "probe", is_flag=True, help="Take header values from this host.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def generate(seed: int | None, probe: bool, as_json: bool) -> None:
    """Generate one synthetic crash report and print it."""
    from footprints.core.services.reports import check_document, generate as generate_report, render_report

    host = None
    if probe:
        from footprints.adapters.macos.host import probe_host

        host = probe_host()

    report = generate_report(seed=seed, host=host)

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    text = render_report(report)
    check_document(text)
    click.echo(text)
