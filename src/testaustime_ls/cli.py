from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Optional

import typer

from testaustime_ls import server
from testaustime_ls.api import APIClient
from testaustime_ls.config import Settings, load_settings_file
from testaustime_ls.exceptions import AuthError

app = typer.Typer(add_completion=False)

_DEFAULT_TCP_HOST = "127.0.0.1"
_DEFAULT_TCP_PORT = 2087

ServerStarter = Callable[..., None]
DEFAULT_STARTER: ServerStarter = server.start


def _fallback_settings(config: Path | None) -> Settings:
    if config is None:
        return Settings()
    return load_settings_file(config)


def _serve(
    *,
    config: Path | None,
    tcp: bool,
    host: str,
    port: int,
    starter: ServerStarter | None = None,
) -> None:
    starter = starter or DEFAULT_STARTER
    fallback = _fallback_settings(config)
    if tcp:
        starter(lambda ls: ls.start_tcp(host, port), fallback_settings=fallback)
    else:
        starter(fallback_settings=fallback)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="TOML file with fallback settings."
    ),
    tcp: bool = typer.Option(False, "--tcp", help="Serve over TCP instead of stdio."),
    host: str = typer.Option(_DEFAULT_TCP_HOST, "--host"),
    port: int = typer.Option(_DEFAULT_TCP_PORT, "--port"),
) -> None:
    """Run the Testaustime language server (stdio by default)."""
    if ctx.invoked_subcommand is not None:
        return
    _serve(config=config, tcp=tcp, host=host, port=port)


@app.command()
def serve(
    config: Optional[Path] = typer.Option(
        None, "--config", help="TOML file with fallback settings."
    ),
    tcp: bool = typer.Option(False, "--tcp", help="Serve over TCP instead of stdio."),
    host: str = typer.Option(_DEFAULT_TCP_HOST, "--host"),
    port: int = typer.Option(_DEFAULT_TCP_PORT, "--port"),
) -> None:
    """Run the Testaustime language server."""
    _serve(config=config, tcp=tcp, host=host, port=port)


def _run_check(client: APIClient, api_key: str) -> str:
    me = asyncio.run(client.validate_api_key(api_key))
    return me.username


@app.command()
def check(
    api_key: str = typer.Option(..., "--api-key", help="Testaustime API key."),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
) -> None:
    """Validate an API key against the Testaustime API."""
    client = APIClient(api_key, base_url)
    try:
        username = _run_check(client, api_key)
    except AuthError as exc:
        typer.echo(f"Invalid API key: {exc.cause}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Authenticated as: {username}")


@app.command("init-options")
def init_options(
    api_key: Optional[str] = typer.Option(None, "--api-key"),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    debug_logs: Optional[bool] = typer.Option(None, "--debug-logs/--no-debug-logs"),
    config: Optional[Path] = typer.Option(
        None, "--config", help="TOML file to read unset values from."
    ),
) -> None:
    """Print the initializationOptions object for editor configuration."""
    settings = Settings(api_key=api_key, api_base_url=base_url, debug_logs=debug_logs)
    if config is not None:
        settings = settings.merged_over(load_settings_file(config))
    typer.echo(json.dumps(settings.to_init_options(), indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover
    app()  # pragma: no cover
