"""mcpdd CLI entry point."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from mcpdd.monitor import Monitor

app = typer.Typer(
    name="mcpdd",
    help="mcpdd: uptime monitoring for remote MCP servers",
    no_args_is_help=True,
)
console = Console()

HEALTH_STYLES = {
    "healthy": "green",
    "degraded": "yellow",
    "unhealthy": "dark_orange",
    "down": "red",
    "unknown": "dim",
}

ICON_STYLES = {"green": "green", "yellow": "yellow", "orange": "dark_orange", "red": "red", "gray": "dim"}


def _styled(health: str) -> str:
    style = HEALTH_STYLES.get(health, "dim")
    return f"[{style}]{health}[/{style}]"


def _latency(value: Any) -> str:
    return f"{value}ms" if value is not None else "—"


def _load_monitor(path: Path | None = None) -> Monitor:
    from mcpdd.config.loader import load_config
    from mcpdd.monitor import Monitor

    try:
        config = load_config(path=path)
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    try:
        return Monitor.from_config(config)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Could not load catalog: {exc}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(3000, help="Bind port"),
    log_level: str = typer.Option("info", help="Logging level"),
) -> None:
    """Start the monitor and its HTTP API."""
    import uvicorn

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    console.print(f"[bold]mcpdd[/bold] starting on http://{host}:{port}")
    uvicorn.run("mcpdd.api.app:create_app", factory=True, host=host, port=port, reload=False)


@app.command()
def status(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .mcpdd.yaml"),
) -> None:
    """Run one probe cycle over the catalog and show every service."""
    monitor = _load_monitor(path)
    if not monitor.services:
        console.print("[yellow]No services in the catalog.[/yellow]")
        raise typer.Exit(1)

    asyncio.run(monitor.scheduler.run_cycle())
    snapshot = monitor.snapshot()

    table = Table(title="MCP Server Status")
    table.add_column("Service", style="bold")
    table.add_column("Endpoints", justify="right")
    table.add_column("Status")
    table.add_column("Icons")
    table.add_column("Latency", justify="right")

    for svc in snapshot["services"]:
        icons = " ".join(f"[{ICON_STYLES.get(c, 'dim')}]●[/]" for c in svc["health_icons"])
        table.add_row(
            svc["display_name"],
            str(svc["endpoint_count"]),
            _styled(svc["health"]),
            icons,
            _latency(svc["worst_latency_ms"]),
        )

    console.print(table)


@app.command()
def probe(
    service: str = typer.Argument(help="Registry name of the service to probe"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .mcpdd.yaml"),
) -> None:
    """Probe every endpoint of one service, without short-circuiting."""
    monitor = _load_monitor(path)
    detail = asyncio.run(monitor.probe_service(service))
    if detail is None:
        console.print(f"[red]Unknown service: {service}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]{detail['display_name']}[/bold] ({detail['identifier']}) {_styled(detail['health'])}")
    table = Table()
    table.add_column("Endpoint", style="bold")
    table.add_column("URL")
    table.add_column("Transport")
    table.add_column("Status")
    table.add_column("Auth")
    table.add_column("Latency", justify="right")
    table.add_column("Tools", justify="right")
    for ep in detail["endpoints"]:
        table.add_row(
            ep["label"],
            ep["url"],
            ep["transport"],
            _styled(ep["health"]),
            ep["auth"],
            _latency(ep["latency_ms"]),
            str(ep["tool_count"]) if ep["tool_count"] is not None else "—",
        )
        if ep["error"]:
            table.add_row("", f"[red]{ep['error']}[/red]", "", "", "", "", "")
    console.print(table)


config_app = typer.Typer(name="config", help="Configuration commands")
app.add_typer(config_app)


@config_app.command("validate")
def config_validate(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .mcpdd.yaml"),
) -> None:
    """Validate configuration file and the catalog it points to."""
    from urllib.parse import urlparse

    import yaml

    from mcpdd.catalog.loader import load_catalog
    from mcpdd.config.loader import load_config
    from mcpdd.events.emitter import EVENT_TYPES

    errors: list[str] = []
    try:
        config = load_config(path=path)
        console.print("[green]✓[/green] YAML parses correctly")
        console.print("[green]✓[/green] Pydantic validation passes")
    except FileNotFoundError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as exc:
        console.print(f"[red]✗ YAML parsing failed: {exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print("[green]✓[/green] YAML parses correctly")
        console.print(f"[red]✗ Pydantic validation failed: {exc}[/red]")
        raise typer.Exit(1)

    try:
        services = load_catalog(Path(config.catalog.path), Path(config.catalog.legacy_path))
    except (OSError, ValueError) as exc:
        errors.append(f"Catalog could not be loaded: {exc}")
        services = []
    else:
        console.print(f"[green]✓[/green] Catalog loads ({len(services)} services)")

    for service in services:
        for endpoint in service.endpoints:
            parsed = urlparse(endpoint.url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"Service '{service.identifier}': invalid endpoint URL '{endpoint.url}'")

    warnings: list[str] = []
    for i, wh in enumerate(config.webhooks):
        parsed = urlparse(wh.url)
        if not parsed.scheme or not parsed.netloc:
            errors.append(f"Webhook {i}: invalid URL '{wh.url}'")
        for evt in wh.events:
            if evt != "*" and evt not in EVENT_TYPES:
                warnings.append(f"Webhook {i}: unrecognized event type '{evt}'")

    if not errors:
        console.print("[green]✓[/green] All endpoint URLs are valid")
        if config.webhooks:
            console.print(f"[green]✓[/green] {len(config.webhooks)} webhook(s) configured")
        for w in warnings:
            console.print(f"[yellow]! {w}[/yellow]")
        console.print("\n[green bold]Configuration is valid.[/green bold]")
    else:
        for err in errors:
            console.print(f"[red]✗ {err}[/red]")
        console.print(f"\n[red bold]{len(errors)} validation error(s) found.[/red bold]")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .mcpdd.yaml"),
) -> None:
    """Print resolved configuration."""
    from mcpdd.config.loader import load_config

    try:
        config = load_config(path=path)
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]{config.mcpdd.name}[/bold] v{config.mcpdd.version}\n")

    console.print("[bold]Probe:[/bold]")
    console.print(f"  Interval: {config.probe.interval_seconds:g}s")
    console.print(f"  Timeout: {config.probe.timeout_seconds:g}s (close {config.probe.close_timeout_seconds:g}s)")
    console.print(f"  Max concurrent: {config.probe.max_concurrent}\n")

    console.print("[bold]History:[/bold]")
    console.print(f"  File: {config.history.path}")
    console.print(f"  Retention: {config.history.retention_hours:g}h")
    console.print(f"  Persist every: {config.history.persist_interval_seconds:g}s\n")

    console.print("[bold]Catalog:[/bold]")
    console.print(f"  {config.catalog.path} (legacy: {config.catalog.legacy_path})")

    if config.webhooks:
        console.print("\n[bold]Webhooks:[/bold]")
        for wh in config.webhooks:
            console.print(f"  {wh.url} (events: {', '.join(wh.events)})")


def main() -> None:
    app()
