"""
CLI: ``govgate config`` - configuration inspection.
"""

from __future__ import annotations

import json

import typer

from govgate.cli.utils import console, print_table

app = typer.Typer(no_args_is_help=True)


def _flatten(prefix: str, value: object, out: dict[str, object]) -> None:
    if isinstance(value, dict):
        for key, inner in value.items():
            _flatten(f"{prefix}__{key}" if prefix else key, inner, out)
    else:
        out[prefix] = value


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show current configuration with credentials masked."""
    from govgate.core.logging import redact
    from govgate.core.settings import GatewaySettings

    data = redact(GatewaySettings().model_dump())

    if format == "json":
        console.print_json(json.dumps(data, default=str))
        return

    flat: dict[str, object] = {}
    _flatten("", data, flat)
    if format == "env":
        for key, value in sorted(flat.items()):
            console.print(f"GOVGATE_{key.upper()}={'' if value is None else value}")
        return

    print_table("govgate settings", ["Setting", "Value"], sorted(flat.items()))


@app.command("providers")
def show_providers() -> None:
    """Show which providers are configured."""
    from govgate.core.settings import GatewaySettings

    settings = GatewaySettings()
    rows = []
    for name in ("vahan", "nic", "whitebooks_eway", "whitebooks_einvoice"):
        section = getattr(settings, name)
        rows.append((name, "[green]yes[/green]" if section.configured else "[red]no[/red]", section.url or "-"))
    print_table("Providers", ["Provider", "Configured", "URL"], rows)
