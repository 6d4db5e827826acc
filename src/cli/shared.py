"""Shared CLI helpers: console, logger, credential check, Graph client and registration setup."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import typer
from rich.console import Console

from src.graph.client import GraphClient
from src.utils.logger import get_logger
from src.webhook import wiring
from src.webhook.registration import WebhookRegistration
from src.webhook.resources import TriggerConfig

console = Console()
logger = get_logger("teams_transcripts.cli")


def require_credentials(command: str) -> None:
    """Exit with a message when the app registration env vars are missing."""
    missing = wiring.missing_credentials()
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        logger.warning(f"{command}.missing_env", missing=missing)
        raise typer.Exit(1)


@asynccontextmanager
async def graph_client() -> AsyncIterator[GraphClient]:
    client = wiring.build_graph_client()
    try:
        yield client
    finally:
        await client.aclose()


def trigger_config(
    event: str | None,
    watch_all: bool | None,
    meeting_id: str | None,
    user_id: str | None,
) -> TriggerConfig:
    """Env-based trigger config with CLI overrides applied."""
    config = TriggerConfig.from_env()
    updates = {
        "event": event,
        "watch_all_meetings": watch_all,
        "meeting_id": meeting_id,
        "user_id": user_id,
    }
    return config.model_copy(update={k: v for k, v in updates.items() if v is not None})


def registration_for(
    client: GraphClient,
    webhook_url: str | None,
    config: TriggerConfig,
) -> WebhookRegistration:
    manager = wiring.build_manager(client)
    return wiring.build_registration(manager, webhook_base_url=webhook_url, config=config)
