"""CLI commands for forty-six."""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fortysix import __logo__, __version__
from fortysix.config.loader import get_config_path, load_config, load_file_config, save_config
from fortysix.config.schema import Config
from fortysix.errors import ConfigurationError

app = typer.Typer(
    name="forty-six",
    help=f"{__logo__} forty-six - WhatsApp AI bot",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} forty-six v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
) -> None:
    """forty-six - WhatsApp AI bot."""


def _setup_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _show_pairing_code(code: str, digits: str) -> None:
    console.print(
        Panel.fit(
            f"[bold yellow]{code}[/bold yellow]\n\n"
            "1. Open WhatsApp on your phone\n"
            "2. Go to Settings → Linked Devices\n"
            '3. Tap "Link a Device"\n'
            '4. Tap "Link with phone number instead"\n'
            f"5. Enter: [bold yellow]{code}[/bold yellow]\n\n"
            "[cyan]⏱️  Code expires in 60 seconds![/cyan]",
            title=f"📱 Pairing code for +{digits}",
            border_style="green",
        )
    )


def _show_qr(qr: str) -> None:
    console.print(
        Panel.fit(
            f"{qr}\n\nRender this payload as a QR code and scan it from "
            "WhatsApp → Linked Devices → Link a Device.",
            title="📷 QR login",
            border_style="cyan",
        )
    )


@app.command()
def onboard(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Initialize forty-six configuration and auth directory."""
    path = config_path or get_config_path()

    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if typer.confirm("Overwrite with defaults?"):
            save_config(Config.model_validate({}), path)
            console.print(f"[green]✓[/green] Config reset to defaults at {path}")
        else:
            save_config(load_file_config(path), path)
            console.print(f"[green]✓[/green] Config refreshed at {path} (existing values preserved)")
    else:
        save_config(Config.model_validate({}), path)
        console.print(f"[green]✓[/green] Created config at {path}")

    auth_dir = load_config(path).whatsapp.auth_path
    if not auth_dir.exists():
        auth_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"[green]✓[/green] Created auth directory at {auth_dir}")

    console.print(f"\n{__logo__} forty-six is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Set [cyan]ai.api_key[/cyan] and [cyan]whatsapp.phone_number[/cyan] in {path}")
    console.print("     (or GROQ_API_KEY / PHONE_NUMBER in the environment)")
    console.print("  2. Start the bridge and run: [cyan]forty-six run[/cyan]")


@app.command()
def run(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """Connect to WhatsApp and start answering messages."""
    from fortysix.bot.app import FortySixBot

    path = config_path or get_config_path()
    config = load_config(path)
    _setup_logging("DEBUG" if verbose else config.log_level)

    try:
        bot = FortySixBot(config, on_pairing_code=_show_pairing_code, on_qr=_show_qr)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        console.print(f"\nSet them in {path} or the environment.")
        console.print("Get a free API key: https://console.groq.com/keys")
        raise typer.Exit(1)

    async def _main() -> int:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, bot.stop)
            except NotImplementedError:
                pass
        return await bot.run()

    console.print(f"{__logo__} Starting {config.bot.name}...")
    exit_code = asyncio.run(_main())
    console.print("👋 Bye!")
    raise typer.Exit(exit_code)


@app.command()
def status(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Show configuration and stored login session."""
    from fortysix.auth.store import CredentialStore

    path = config_path or get_config_path()
    config = load_config(path)
    store = CredentialStore(config.whatsapp.auth_path)

    table = Table(title=f"{__logo__} forty-six status", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Config", f"{path} {'✓' if path.exists() else '(missing)'}")
    table.add_row("Model", config.ai.model)
    table.add_row("API key", "set" if config.ai.api_key else "[red]not set[/red]")
    table.add_row("Phone", config.whatsapp.phone_number or "[red]not set[/red]")
    table.add_row("Bridge", config.whatsapp.bridge_url)
    table.add_row("Auth dir", str(store.auth_dir))
    if store.exists():
        table.add_row("Session", store.session_label() or "(label not generated yet)")
    else:
        table.add_row("Session", "[yellow]no saved session, a pairing code will be requested[/yellow]")
    console.print(table)
