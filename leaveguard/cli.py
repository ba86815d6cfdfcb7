"""Command-line interface for LeaveGuard."""

import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from leaveguard.config import load_settings

console = Console()


def _format_window(window_ms: int) -> str:
    """Render a window as the largest whole unit (``10s``, ``1h``)."""
    for unit, size in (("h", 3_600_000), ("m", 60_000), ("s", 1000)):
        if window_ms % size == 0:
            return f"{window_ms // size}{unit}"
    return f"{window_ms}ms"


@click.group()
def main() -> None:
    """Rate-limited leave-management API."""


@main.command()
def quotas() -> None:
    """Show the effective quota catalog.

    \b
    Defaults can be overridden with LEAVEGUARD_QUOTAS, e.g.:
        LEAVEGUARD_QUOTAS="create-leave-request=5000:3" leaveguard quotas
    """
    try:
        settings = load_settings()
    except ValueError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        sys.exit(1)

    table = Table(title="Rate-limit quotas")
    table.add_column("Category", style="cyan")
    table.add_column("Window", justify="right")
    table.add_column("Max requests", justify="right")
    for quota in settings.quotas.values():
        table.add_row(quota.category, _format_window(quota.window_ms), str(quota.max_requests))

    console.print(table)
    key_mode = "identifier" if settings.shared_key else "identifier + category"
    console.print(f"  [dim]Keyed by:[/dim] {key_mode}")
    console.print(f"  [dim]Reclaim every:[/dim] {settings.reclaim_interval:g}s")


@main.command()
@click.option("--host", default=None, help="Bind address (default: LEAVEGUARD_HOST or 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Port (default: LEAVEGUARD_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the API server with uvicorn."""
    try:
        settings = load_settings()
    except ValueError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from leaveguard.api import run_server
    run_server(host=host, port=port, reload=reload)
