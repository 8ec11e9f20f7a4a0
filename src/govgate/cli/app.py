"""
Root Typer application for the govgate CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from govgate import __version__
from govgate.cli import config, usage
from govgate.cli.serve import serve

app = Typer(
    name="govgate",
    help="govgate: resilient gateway to VAHAN, NIC and Whitebooks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"govgate {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """govgate CLI: run the gateway and inspect its configuration and usage."""


app.command("serve")(serve)
app.add_typer(config.app, name="config", help="Configuration inspection.")
app.add_typer(usage.app, name="usage", help="Usage counters.")


if __name__ == "__main__":
    app()
