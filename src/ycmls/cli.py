from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from ycmls.config import validate_settings, ycmd_defaults
from ycmls.exceptions import ConfigurationError
from ycmls.logging_config import setup_logging

app = typer.Typer(add_completion=False)

DEFAULT_TCP_HOST = "127.0.0.1"
DEFAULT_TCP_PORT = 2087


@app.command("serve")
def serve(
    tcp: bool = typer.Option(False, "--tcp", help="Listen on TCP instead of stdio."),
    host: str = typer.Option(DEFAULT_TCP_HOST, "--host"),
    port: int = typer.Option(DEFAULT_TCP_PORT, "--port"),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file"),
) -> None:
    """Run the ycmd language server."""
    setup_logging(log_level, log_file)
    from ycmls.server import server, start

    if tcp:
        start(lambda: server.start_tcp(host, port))
    else:
        start()


@app.command("check-config")
def check_config(
    settings_path: Path = typer.Argument(..., help="JSON file with client settings."),
    root: Optional[Path] = typer.Option(
        None, "--root", help="Workspace root holding ycmls.toml defaults."
    ),
) -> None:
    """Validate client settings the way workspace/didChangeConfiguration does."""
    try:
        raw = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        typer.echo(f"Cannot read {settings_path}: {exc}", err=True)
        raise typer.Exit(code=2)
    try:
        settings = validate_settings(raw, ycmd_defaults(root) if root is not None else {})
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(settings.model_dump(), indent=2, sort_keys=True))
