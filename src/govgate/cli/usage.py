"""
CLI: ``govgate usage`` - read usage counters from the configured database.
"""

from __future__ import annotations

import typer

from govgate.cli.utils import err_console, print_table

app = typer.Typer(no_args_is_help=True)


def _store():
    from govgate.core.orm import create_gateway_engine, gateway_session_factory
    from govgate.core.settings import GatewaySettings
    from govgate.core.usage import SqlUsageStore

    settings = GatewaySettings()
    if not settings.database_url:
        err_console.print("[red]GOVGATE_DATABASE_URL is not set; usage is only kept in memory.[/red]")
        raise typer.Exit(code=1)
    return SqlUsageStore(gateway_session_factory(create_gateway_engine(settings.database_url)))


@app.command("list")
def list_usage(
    tenant: str | None = typer.Option(None, "--tenant", "-t", help="Mine/tenant id"),
    year: int | None = typer.Option(None, "--year"),
    month: int | None = typer.Option(None, "--month"),
) -> None:
    """List counters per tenant, operation and month."""
    store = _store()
    counters = (
        store.stats_for_tenant(tenant, year=year, month=month)
        if tenant
        else store.all_stats(year=year, month=month)
    )
    print_table(
        "API usage",
        ["Tenant", "Operation", "Period", "Calls", "OK", "Failed", "Avg ms", "Last call"],
        (
            (c.tenant_id, c.operation, f"{c.year}-{c.month:02d}", c.count, c.success_count, c.failure_count,
             c.avg_response_ms, c.last_called_at.isoformat() if c.last_called_at else None)
            for c in counters
        ),
    )


@app.command("summary")
def usage_summary(
    year: int | None = typer.Option(None, "--year"),
    month: int | None = typer.Option(None, "--month"),
) -> None:
    """Roll counters up per tenant."""
    summary = _store().summary_by_tenant(year=year, month=month)
    print_table(
        "Usage by tenant",
        ["Tenant", "Calls", "OK", "Failed", "Avg ms"],
        ((t, s["total"], s["success"], s["failure"], s["avg_response_ms"]) for t, s in sorted(summary.items())),
    )
