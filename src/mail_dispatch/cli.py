# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the mail dispatch service.

Usage:
    mail-dispatch serve --port 8000
    mail-dispatch send-test someone@example.com
    mail-dispatch config
    mail-dispatch templates

All commands accept ``--config PATH`` to point at an INI file; otherwise
``MDS_CONFIG`` or ``config.ini`` is used, with environment fallbacks.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from .config_loader import DispatchSettings, load_settings
from .logger import configure_logging
from .notifications import NOTIFICATION_TEMPLATES, render_notification
from .providers import create_provider

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def _settings(ctx: click.Context) -> DispatchSettings:
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ValueError as exc:
        print_error(f"Invalid configuration: {exc}")
        sys.exit(1)


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Path to the INI configuration file.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None) -> None:
    """Rate-limited email dispatch service."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.option("--host", default=None, help="Bind address (overrides configuration).")
@click.option("--port", type=int, default=None, help="Bind port (overrides configuration).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from .server import build_app

    settings = _settings(ctx)
    configure_logging(settings.log_level)
    try:
        app = build_app(settings)
    except ValueError as exc:
        print_error(str(exc))
        sys.exit(1)
    uvicorn.run(
        app,
        host=host or settings.http_host,
        port=port or settings.http_port,
        log_level=settings.log_level.lower(),
    )


@main.command("send-test")
@click.argument("to")
@click.pass_context
def send_test(ctx: click.Context, to: str) -> None:
    """Send a test email directly through the configured provider."""
    settings = _settings(ctx)
    configure_logging(settings.log_level)

    async def _send() -> str | None:
        provider = create_provider(settings)
        try:
            return await provider.send(render_notification("test_email", to, {}, settings))
        finally:
            await provider.close()

    try:
        message_id = run_async(_send())
    except Exception as exc:
        print_error(f"Failed to send test email to {to}: {exc}")
        sys.exit(1)
    print_success(f"Test email sent to {to} (provider={settings.provider}, id={message_id or '-'})")


@main.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the resolved configuration with secrets masked."""
    settings = _settings(ctx)
    table = Table(title="Mail dispatch configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    data: dict[str, Any] = settings.as_dict()
    for key, value in data.items():
        table.add_row(key, "-" if value is None else str(value))
    table.add_row("inter_send_delay", f"{settings.inter_send_delay:.3f}s")
    console.print(table)


@main.command("templates")
def list_templates() -> None:
    """List notification templates with their sender and required parameters."""
    table = Table(title="Notification templates")
    table.add_column("Name", style="cyan")
    table.add_column("Sender")
    table.add_column("Required")
    table.add_column("Optional", style="dim")
    for template in NOTIFICATION_TEMPLATES.values():
        table.add_row(
            template.name,
            template.sender,
            ", ".join(template.required) or "-",
            ", ".join(template.optional) or "-",
        )
    console.print(table)


if __name__ == "__main__":
    main()
