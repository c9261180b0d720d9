"""chanproxy CLI — inspect a running proxy from the terminal."""

from __future__ import annotations

import json

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="chanproxy",
    help="chanproxy — LINE / Gmail / Discord channel proxy",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()

DEFAULT_URL = "http://localhost:3000"


def _get_client(base_url: str, api_key: str | None) -> httpx.Client:
    headers = {}
    if api_key:
        headers["X-API-Key"] = api_key
    return httpx.Client(base_url=base_url, headers=headers, timeout=30.0)


def _get_json(client: httpx.Client, path: str, base_url: str, params: dict | None = None) -> dict:
    try:
        resp = client.get(path, params=params)
        resp.raise_for_status()
    except httpx.ConnectError:
        console.print(f"[red]✗[/red] chanproxy is not running at {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        console.print(f"[red]Error {e.response.status_code}:[/red] {e.response.text}")
        raise typer.Exit(1)
    return resp.json()


def _state_style(state: str) -> str:
    return {"closed": "green", "half_open": "yellow", "open": "red"}.get(state, "white")


@app.command()
def health(
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="CHANPROXY_URL"),
    api_key: str = typer.Option("", "--api-key", "-k", envvar="CHANPROXY_API_KEY"),
    raw: bool = typer.Option(False, "--raw", help="Output raw JSON response"),
) -> None:
    """Show channel runtimes and circuit breaker states."""
    client = _get_client(base_url, api_key or None)
    data = _get_json(client, "/api/health", base_url)
    breakers = _get_json(client, "/api/health/circuit-breaker", base_url)

    if raw:
        console.print_json(json.dumps({"health": data, "breakers": breakers}, indent=2))
        return

    status_color = "green" if data.get("status") == "healthy" else "yellow"
    cache = data.get("cache", {})
    console.print(
        f"Status: [{status_color}]{data.get('status')}[/{status_color}]  "
        f"uptime {data.get('uptime_seconds', '?')}s  "
        f"cache {cache.get('size', '?')}/{cache.get('capacity', '?')}"
    )

    channels = Table(title="Channels", border_style="blue")
    channels.add_column("Channel", style="cyan")
    channels.add_column("Mode")
    channels.add_column("Enabled")
    channels.add_column("Running")
    channels.add_column("Last error", style="dim")
    for item in data.get("channels", []):
        channels.add_row(
            item["channel"],
            item["mode"],
            "yes" if item["enabled"] else "no",
            "[green]yes[/green]" if item["running"] else "[red]no[/red]",
            item.get("last_error") or "",
        )
    console.print(channels)

    table = Table(title="Circuit breakers", border_style="blue")
    table.add_column("Dependency", style="cyan")
    table.add_column("State")
    table.add_column("Successes", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Timeouts", justify="right")
    table.add_column("Rejects", justify="right")
    for name, status in breakers.get("circuitBreaker", {}).items():
        stats = status["stats"]
        style = _state_style(stats["state"])
        table.add_row(
            name,
            f"[{style}]{stats['state']}[/{style}]",
            str(stats["successes"]),
            str(stats["failures"]),
            str(stats["timeouts"]),
            str(stats["rejects"]),
        )
    console.print(table)


@app.command()
def inbox(
    channel: str = typer.Option("", "--channel", "-c", help="discord, gmail or line"),
    since: str = typer.Option("", "--since", "-s", help="ISO-8601 lower bound"),
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="CHANPROXY_URL"),
    api_key: str = typer.Option("", "--api-key", "-k", envvar="CHANPROXY_API_KEY"),
) -> None:
    """List cached messages, newest first."""
    client = _get_client(base_url, api_key or None)
    params = {key: value for key, value in {"channel": channel, "since": since}.items() if value}
    data = _get_json(client, "/api/messages", base_url, params=params)

    messages = data.get("messages", [])
    if not messages:
        console.print("[dim]No cached messages.[/dim]")
        return

    table = Table(title=f"Inbox ({len(messages)})", border_style="blue")
    table.add_column("When", style="dim")
    table.add_column("Channel", style="cyan")
    table.add_column("From")
    table.add_column("Content", max_width=60)
    for message in messages:
        marker = "● " if message.get("isUnread") else ""
        table.add_row(
            message["timestamp"][:19].replace("T", " "),
            message["channel"],
            message["from"],
            marker + message["content"],
        )
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host"),
    port: int = typer.Option(3000, "--port"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Start the chanproxy server (for development)."""
    import uvicorn

    console.print(Panel("Starting chanproxy server...", border_style="blue"))
    uvicorn.run(
        "chanproxy.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
