"""FastAPI webhook server for Microsoft Graph transcript change notifications."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from src.config import (
    EVENT_FORWARD_URL,
    GRAPH_TIMEOUT_SECONDS,
    WEBHOOK_ACTIVATION_DELAY_SECONDS,
    WEBHOOK_PATH,
)
from src.errors import ConfigurationError, SubscriptionCreateError
from src.utils.logger import get_logger
from src.webhook import wiring
from src.webhook.controller import WebhookController
from src.webhook.dispatcher import EventDispatcher
from src.webhook.registration import WebhookRegistration

logger = get_logger("teams_transcripts.webhook.server")


def _setup_services(app: FastAPI, webhook_base_url: str | None) -> None:
    """Create Graph client, manager, controller and registration from configuration."""
    missing = wiring.missing_credentials()
    if missing:
        app.state.controller = None
        app.state.registration = None
        logger.warning("webhook.lifespan.no_credentials", missing=missing)
        return
    graph_http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(GRAPH_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
    )
    client = wiring.build_graph_client(http_client=graph_http_client)
    manager = wiring.build_manager(client)
    app.state._graph_http_client = graph_http_client
    app.state.controller = wiring.build_controller(manager)
    app.state.registration = wiring.build_registration(manager, webhook_base_url=webhook_base_url)


async def _activate(registration: WebhookRegistration | None, delay: float) -> None:
    """Activate after ``delay`` seconds.

    Graph validates the notification URL while creating a subscription, so
    this must run once the server accepts connections, not during startup.
    """
    if registration is None:
        logger.warning("webhook.lifespan.activate_skipped")
        return
    await asyncio.sleep(delay)
    try:
        await registration.activate()
        logger.info(
            "webhook.lifespan.activated",
            subscription_ids=await registration.stored_ids(),
        )
    except (ConfigurationError, SubscriptionCreateError) as e:
        # The listener stays up so a later activation can succeed
        logger.error("webhook.lifespan.activate_failed", error=str(e))


async def _cancel_activation(app: FastAPI) -> None:
    task: asyncio.Task[None] | None = getattr(app.state, "_activation_task", None)
    app.state._activation_task = None
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("webhook.lifespan.activate_cancelled")


async def _shutdown(app: FastAPI, deactivate: bool) -> None:
    await _cancel_activation(app)

    registration: WebhookRegistration | None = getattr(app.state, "registration", None)
    if deactivate and registration is not None:
        if not await registration.delete():
            logger.warning("webhook.lifespan.deactivate_incomplete")

    dispatcher: EventDispatcher | None = getattr(app.state, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.stop()

    for attr in ("_forward_http_client", "_graph_http_client"):
        client = getattr(app.state, attr, None)
        if client is not None:
            await client.aclose()
            setattr(app.state, attr, None)


@asynccontextmanager
async def _lifespan(
    app: FastAPI,
    create_services: bool,
    webhook_base_url: str | None,
    activate: bool,
    activation_delay: float,
    deactivate: bool,
):
    """Build services in the server's event loop when not injected; start dispatch workers."""
    if create_services:
        _setup_services(app, webhook_base_url)
    if getattr(app.state, "dispatcher", None) is None:
        forward_client = None
        if EVENT_FORWARD_URL:
            forward_client = httpx.AsyncClient(timeout=httpx.Timeout(GRAPH_TIMEOUT_SECONDS))
            app.state._forward_http_client = forward_client
        app.state.dispatcher = wiring.build_dispatcher(forward_client)
    app.state.dispatcher.start()

    app.state._activation_task = None
    if activate:
        # The socket only opens after startup returns
        app.state._activation_task = asyncio.create_task(
            _activate(getattr(app.state, "registration", None), activation_delay)
        )

    yield

    await _shutdown(app, deactivate)


def create_app(
    controller: WebhookController | None = None,
    dispatcher: EventDispatcher | None = None,
    registration: WebhookRegistration | None = None,
    *,
    webhook_base_url: str | None = None,
    activate_on_startup: bool = False,
    activation_delay: float = WEBHOOK_ACTIVATION_DELAY_SECONDS,
    deactivate_on_shutdown: bool = False,
) -> FastAPI:
    """
    Create FastAPI app. If controller is passed, use it (and the optional registration) as-is.
    Otherwise the lifespan builds Graph client, manager, controller and registration from env.
    """
    create_services = controller is None
    app = FastAPI(
        title="Teams Transcript Webhook",
        version="0.1.0",
        lifespan=lambda app: _lifespan(
            app,
            create_services=create_services,
            webhook_base_url=webhook_base_url,
            activate=activate_on_startup,
            activation_delay=activation_delay,
            deactivate=deactivate_on_shutdown,
        ),
    )
    app.state.controller = controller
    app.state.dispatcher = dispatcher
    app.state.registration = registration

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(f"{WEBHOOK_PATH}/subscriptions")
    async def stored_subscriptions(request: Request) -> dict[str, Any]:
        """Subscription ids persisted for this registration."""
        current: WebhookRegistration | None = getattr(request.app.state, "registration", None)
        if current is None:
            raise HTTPException(status_code=503, detail="Registration not configured")
        return {
            "webhook_url": current.webhook_url,
            "subscription_ids": await current.stored_ids(),
        }

    @app.api_route(WEBHOOK_PATH, methods=["GET", "POST"], response_model=None)
    async def notifications(request: Request) -> Response:
        # Subscription validation: Graph sends validationToken as query param
        validation_token = request.query_params.get("validationToken")
        if validation_token:
            return PlainTextResponse(
                content=validation_token,
                status_code=200,
                media_type="text/plain",
            )

        current: WebhookController | None = getattr(request.app.state, "controller", None)
        if current is None:
            logger.error("webhook.notifications.no_controller")
            return Response(status_code=503, content="Webhook not configured")

        try:
            body = await request.json()
        except ValueError as e:
            logger.warning("webhook.notifications.parse_error", error=str(e))
            raise HTTPException(status_code=400, detail="Request body must be JSON")

        try:
            outcome = await current.handle(None, body)
        except ValidationError as e:
            logger.warning("webhook.notifications.invalid_batch", error=str(e))
            raise HTTPException(status_code=400, detail="Invalid notification batch")
        queued = 0
        if outcome.events:
            queued = await request.app.state.dispatcher.submit(outcome.events)
        return JSONResponse(
            status_code=202,
            content={"status": "accepted", "events": queued, "dropped": outcome.dropped},
        )

    return app
