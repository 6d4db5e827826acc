"""Build the Graph client, subscription manager and registration from configuration."""

import httpx

from src.auth import get_app_credential
from src.config import (
    AZURE_CLIENT_ID,
    AZURE_CLIENT_SECRET,
    AZURE_TENANT_ID,
    EVENT_FORWARD_URL,
    GRAPH_TIMEOUT_SECONDS,
    STATE_STORE_PATH,
    WEBHOOK_CLIENT_STATE,
    WEBHOOK_VERIFY_CLIENT_STATE,
    notification_url,
)
from src.graph.client import GraphClient
from src.utils.logger import get_logger
from src.webhook.controller import WebhookController
from src.webhook.dispatcher import EventDispatcher, log_event, make_forward_handler
from src.webhook.registration import WebhookRegistration
from src.webhook.resources import TriggerConfig
from src.webhook.state_store import JsonFileStateStore, SubscriptionStateStore
from src.webhook.subscription import SubscriptionManager

logger = get_logger("teams_transcripts.webhook.wiring")

REQUIRED_CREDENTIAL_ENV = ("AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET")


def missing_credentials() -> list[str]:
    values = {
        "AZURE_TENANT_ID": AZURE_TENANT_ID,
        "AZURE_CLIENT_ID": AZURE_CLIENT_ID,
        "AZURE_CLIENT_SECRET": AZURE_CLIENT_SECRET,
    }
    return [name for name in REQUIRED_CREDENTIAL_ENV if not values[name]]


def build_graph_client(http_client: httpx.AsyncClient | None = None) -> GraphClient:
    credential = get_app_credential(
        tenant_id=AZURE_TENANT_ID,
        client_id=AZURE_CLIENT_ID,
        client_secret=AZURE_CLIENT_SECRET,
    )
    logger.info("wiring.graph_client", tenant_id=AZURE_TENANT_ID[:8])
    return GraphClient(credential, http_client=http_client)


def build_manager(client: GraphClient) -> SubscriptionManager:
    return SubscriptionManager(client, client_state=WEBHOOK_CLIENT_STATE)


def build_registration(
    manager: SubscriptionManager,
    *,
    webhook_base_url: str | None = None,
    config: TriggerConfig | None = None,
    store: SubscriptionStateStore | None = None,
) -> WebhookRegistration:
    return WebhookRegistration(
        manager,
        store or JsonFileStateStore(STATE_STORE_PATH),
        config or TriggerConfig.from_env(),
        notification_url(webhook_base_url),
    )


def build_controller(manager: SubscriptionManager) -> WebhookController:
    return WebhookController(
        manager,
        client_state=WEBHOOK_CLIENT_STATE if WEBHOOK_VERIFY_CLIENT_STATE else None,
    )


def build_dispatcher(forward_client: httpx.AsyncClient | None = None) -> EventDispatcher:
    """Forward events to EVENT_FORWARD_URL when configured, otherwise log them."""
    if EVENT_FORWARD_URL:
        client = forward_client or httpx.AsyncClient(timeout=httpx.Timeout(GRAPH_TIMEOUT_SECONDS))
        return EventDispatcher(make_forward_handler(EVENT_FORWARD_URL, client))
    return EventDispatcher(log_event)
