"""Subscription commands: activate, deactivate and list Graph subscriptions."""

import asyncio

import typer
from rich.table import Table

from src.config import WEBHOOK_URL
from src.errors import ConfigurationError, GraphApiError, PartialCreateError, SubscriptionCreateError
from src.webhook import wiring

from .shared import (
    console,
    graph_client,
    logger,
    registration_for,
    require_credentials,
    trigger_config,
)


def activate(
    webhook_url: str = typer.Option(WEBHOOK_URL, "--webhook-url", "-u", help="Public HTTPS base URL"),
    event: str | None = typer.Option(None, "--event", "-e", help="newTranscript | newUserTranscript"),
    watch_all: bool | None = typer.Option(
        None, "--watch-all/--single-meeting", help="Watch every meeting in the tenant"
    ),
    meeting_id: str | None = typer.Option(None, "--meeting-id", "-m", help="Meeting to watch"),
    user_id: str | None = typer.Option(None, "--user-id", help="Organizer to watch"),
) -> None:
    """Reuse live subscriptions for the webhook URL or create them."""
    log = logger.bind(command="activate")
    log.info("activate.start")
    require_credentials("activate")
    config = trigger_config(event, watch_all, meeting_id, user_id)

    async def _run() -> list[str]:
        async with graph_client() as client:
            registration = registration_for(client, webhook_url, config)
            if await registration.check_exists():
                console.print("[green]Existing subscriptions are live; nothing to create.[/green]")
            else:
                await registration.create()
                console.print("[green]Subscriptions created.[/green]")
            return await registration.stored_ids()

    try:
        ids = asyncio.run(_run())
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        log.error("activate.configuration_error", error=str(e))
        raise typer.Exit(2)
    except PartialCreateError as e:
        console.print(f"[red]{e}[/red]")
        console.print(f"[yellow]Stored partial ids: {', '.join(s.id for s in e.succeeded) or '(none)'}[/yellow]")
        log.error("activate.partial", error=str(e))
        raise typer.Exit(1)
    except SubscriptionCreateError as e:
        console.print(f"[red]{e}[/red]")
        log.error("activate.failed", error=str(e))
        raise typer.Exit(1)
    for sid in ids:
        console.print(f"  {sid}")
    log.info("activate.done", subscription_ids=ids)


def deactivate(
    webhook_url: str = typer.Option(WEBHOOK_URL, "--webhook-url", "-u", help="Public HTTPS base URL"),
) -> None:
    """Delete every stored subscription for the webhook URL."""
    log = logger.bind(command="deactivate")
    require_credentials("deactivate")

    async def _run() -> bool:
        async with graph_client() as client:
            registration = registration_for(client, webhook_url, trigger_config(None, None, None, None))
            return await registration.delete()

    if not asyncio.run(_run()):
        console.print("[red]Could not confirm deletion of all subscriptions; state kept for retry.[/red]")
        log.warning("deactivate.incomplete")
        raise typer.Exit(1)
    console.print("[green]Subscriptions deleted.[/green]")
    log.info("deactivate.done")


def subscriptions() -> None:
    """List subscriptions visible to the app registration."""
    log = logger.bind(command="subscriptions")
    require_credentials("subscriptions")

    async def _run():
        async with graph_client() as client:
            return await wiring.build_manager(client).list_subscriptions()

    try:
        items = asyncio.run(_run())
    except GraphApiError as e:
        console.print(f"[red]{e}[/red]")
        log.error("subscriptions.failed", error=str(e))
        raise typer.Exit(1)

    table = Table(title="Graph subscriptions")
    table.add_column("ID", style="cyan")
    table.add_column("Resource", style="green")
    table.add_column("Notification URL")
    table.add_column("Expires")
    for sub in items:
        table.add_row(sub.id, sub.resource, sub.notification_url, sub.expiration_date_time or "")
    console.print(table)
    log.info("subscriptions.done", count=len(items))
