"""CLI commands for ZulipBot."""

import asyncio
import sys
from datetime import datetime

import httpx
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from zulipbot import __version__, __logo__

app = typer.Typer(
    name="zulipbot",
    help=f"{__logo__} ZulipBot - Zulip chat bridge for LLM agents",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} ZulipBot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """ZulipBot - Zulip chat bridge for LLM agents."""
    pass


# ============================================================================
# Onboard / Run
# ============================================================================


@app.command()
def onboard():
    """Create a default configuration file."""
    from zulipbot.config.loader import get_config_path, save_config
    from zulipbot.config.schema import Config

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("\nNext steps:")
    console.print("  1. Set channels.zulip.serverUrl, botEmail and apiKey")
    console.print("  2. Set providers.apiKey for your LLM provider")
    console.print("  3. Run: [cyan]zulipbot run[/cyan]")


@app.command()
def run(
    account: list[str] = typer.Option(None, "--account", "-a", help="Account id (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Connect the Zulip accounts and answer messages."""
    from zulipbot.config.loader import load_config
    from zulipbot.providers.litellm_provider import LiteLLMProvider
    from zulipbot.channels.manager import ChannelManager

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = load_config()

    provider = LiteLLMProvider(
        api_key=config.get_api_key(),
        api_base=config.get_api_base(),
        default_model=config.agents.defaults.model,
        fallback_models=config.providers.fallback_models,
        cooldown_seconds=config.providers.cooldown_seconds,
    )

    manager = ChannelManager(config, provider, account_ids=account or None)
    if not manager.enabled_channels:
        console.print("[red]Error: No Zulip account is enabled and configured.[/red]")
        console.print("Set channels.zulip.serverUrl, botEmail and apiKey in ~/.zulipbot/config.json")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting ZulipBot...")
    console.print(f"[green]✓[/green] Accounts: {', '.join(manager.enabled_channels)}")
    console.print(f"[green]✓[/green] Model: {config.agents.defaults.model}")

    async def _run():
        try:
            await manager.start_all()
        finally:
            await manager.stop_all()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """Show configured Zulip accounts."""
    from zulipbot.config.loader import get_config_path, get_data_dir, load_config
    from zulipbot.zulip.accounts import list_zulip_account_ids, resolve_zulip_account

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} ZulipBot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Data: {get_data_dir()}")
    console.print(f"Model: {config.agents.defaults.model}")
    console.print(f"LLM API key: {'[green]✓[/green]' if config.get_api_key() else '[dim]not set[/dim]'}\n")

    table = Table(title="Zulip Accounts")
    table.add_column("Account", style="cyan")
    table.add_column("Enabled", style="green")
    table.add_column("Configured", style="green")
    table.add_column("Server", style="yellow")
    table.add_column("Bot", style="blue")
    table.add_column("DM Policy")

    for account_id in list_zulip_account_ids(config):
        account = resolve_zulip_account(config, account_id)
        table.add_row(
            account_id,
            "✓" if account.enabled else "✗",
            "✓" if account.configured else "✗",
            account.server_url or "-",
            account.bot_email or "-",
            account.config.dm_policy,
        )

    console.print(table)


# ============================================================================
# Pairing
# ============================================================================


pairing_app = typer.Typer(help="Manage DM pairing requests")
app.add_typer(pairing_app, name="pairing")


def _pairing_store():
    from zulipbot.config.loader import load_config
    from zulipbot.security.pairing import PairingStore

    config = load_config()
    return PairingStore(
        config.pairing.store_path,
        channel="zulip",
        request_ttl_seconds=config.pairing.request_ttl_seconds,
    )


@pairing_app.command("list")
def pairing_list():
    """List pending pairing requests."""
    store = _pairing_store()
    requests = store.list_requests()

    if not requests:
        console.print("[dim]No pending pairing requests[/dim]")
        return

    table = Table(title="Pending Pairing Requests")
    table.add_column("Code", style="cyan")
    table.add_column("Sender", style="green")
    table.add_column("Name", style="yellow")
    table.add_column("Email", style="blue")
    table.add_column("Requested")

    for request in requests:
        table.add_row(
            request.code,
            request.id,
            request.meta.get("name", ""),
            request.meta.get("email", ""),
            datetime.fromtimestamp(request.created_at).strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@pairing_app.command("approve")
def pairing_approve(
    code: str = typer.Argument(..., help="Pairing code (or sender id)"),
):
    """Approve a pairing request and allow the sender to DM the bot."""
    store = _pairing_store()
    request = store.approve(code)

    if request:
        console.print(f"[green]✓[/green] Approved sender {request.id}")
    else:
        console.print(f"[red]✗[/red] No pending request for {code}")
        raise typer.Exit(1)


@pairing_app.command("allowed")
def pairing_allowed():
    """List senders approved through pairing."""
    entries = _pairing_store().read_allow_from()
    if not entries:
        console.print("[dim]No approved senders[/dim]")
        return
    for entry in entries:
        console.print(f"  {entry}")


@pairing_app.command("revoke")
def pairing_revoke(
    sender_id: str = typer.Argument(..., help="Sender id to remove"),
):
    """Remove a sender approved through pairing."""
    if _pairing_store().remove_allow_from(sender_id):
        console.print(f"[green]✓[/green] Revoked {sender_id}")
    else:
        console.print(f"[red]✗[/red] {sender_id} is not in the allow list")
        raise typer.Exit(1)


# ============================================================================
# Send
# ============================================================================


@app.command()
def send(
    text: str = typer.Argument("", help="Message text"),
    to: str = typer.Option(None, "--to", "-t", help="Target: stream:NAME:TOPIC, dm:USER_ID or a stream name"),
    session: str = typer.Option(None, "--session", "-s", help="Send to the last route of a session key"),
    account: str = typer.Option(None, "--account", "-a", help="Account id"),
    media: str = typer.Option(None, "--media", "-m", help="URL or path of a file to attach"),
):
    """Send a message from the bot."""
    from zulipbot.config.loader import load_config
    from zulipbot.channels.zulip import ZulipChannel

    if bool(to) == bool(session):
        console.print("[red]Error: pass exactly one of --to or --session[/red]")
        raise typer.Exit(1)

    config = load_config()
    channel = ZulipChannel(config, account)

    try:
        if session:
            message_id = asyncio.run(channel.send_to_session(session, text))
        else:
            message_id = asyncio.run(channel.send(to, text, media))
    except (ValueError, RuntimeError, httpx.HTTPError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Sent message {message_id} to {to or session}")


@app.command()
def sessions():
    """List sessions with a remembered delivery route."""
    from zulipbot.config.loader import load_config
    from zulipbot.session.store import SessionStore

    config = load_config()
    routes = SessionStore(config.session.store_path).list_sessions()

    if not routes:
        console.print("[dim]No sessions recorded yet[/dim]")
        return

    table = Table(title="Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Route", style="green")
    table.add_column("Account", style="yellow")

    for key, delivery in sorted(routes.items()):
        table.add_row(key, delivery.to, delivery.account_id)

    console.print(table)
