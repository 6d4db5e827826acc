"""Inbound webhook request handling: validation handshake, lifecycle renewal, change fan-out."""

from dataclasses import dataclass, field
from typing import Any

from src.utils.logger import BoundLogger, get_logger
from src.utils.tracing import get_tracer
from src.webhook.classifier import partition
from src.webhook.models import NotificationBatch, TriggerEvent
from src.webhook.subscription import SubscriptionManager


@dataclass
class WebhookOutcome:
    """Result of one inbound request.

    ``validation_token`` set means the request was a handshake and must be
    answered with the token verbatim. Otherwise ``events`` holds one item
    per change notification (possibly none); ``dropped`` counts change
    notifications rejected for a clientState mismatch.
    """

    validation_token: str | None = None
    events: list[TriggerEvent] = field(default_factory=list)
    renewed: dict[str, bool] = field(default_factory=dict)
    dropped: int = 0

    @property
    def is_validation(self) -> bool:
        return self.validation_token is not None


class WebhookController:
    """Per-request state machine for the Graph notification endpoint.

    Every change notification becomes one event, with one opt-in exception:
    when ``client_state`` is configured, a notification carrying a different
    non-empty clientState is dropped and counted in ``WebhookOutcome.dropped``.
    Notifications without a clientState are still accepted.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        *,
        client_state: str | None = None,
        logger: BoundLogger | None = None,
    ):
        self._manager = manager
        self._client_state = (client_state or "").strip() or None
        self._logger = logger or get_logger("teams_transcripts.webhook.controller")

    async def handle(self, validation_token: str | None, payload: Any) -> WebhookOutcome:
        if validation_token:
            self._logger.info("webhook.validation.handshake")
            return WebhookOutcome(validation_token=validation_token)

        batch = NotificationBatch.model_validate(payload if isinstance(payload, dict) else {})
        return await self.handle_batch(batch)

    async def handle_batch(self, batch: NotificationBatch) -> WebhookOutcome:
        with get_tracer().start_as_current_span(
            "webhook.notifications",
            attributes={"webhook.batch_size": len(batch.value)},
        ) as span:
            lifecycle, changes = partition(batch.value)

            renew_ids: list[str] = []
            for notification in lifecycle:
                self._logger.info(
                    "webhook.notifications.lifecycle",
                    subscription_id=notification.subscription_id,
                    lifecycle_event=notification.lifecycle_event or "expiration warning",
                )
                if not notification.subscription_id:
                    self._logger.warning("webhook.notifications.lifecycle_without_subscription")
                    continue
                renew_ids.append(notification.subscription_id)

            # Renewals finish before the response; Graph expects a prompt acknowledgment
            renewed: dict[str, bool] = {}
            if renew_ids:
                results = await self._manager.renew_many(renew_ids)
                renewed = {sid: sub is not None for sid, sub in results.items()}

            events: list[TriggerEvent] = []
            dropped = 0
            for notification in changes:
                if (
                    self._client_state
                    and notification.client_state
                    and notification.client_state != self._client_state
                ):
                    self._logger.warning(
                        "webhook.notifications.client_state_mismatch",
                        subscription_id=notification.subscription_id,
                    )
                    dropped += 1
                    continue
                events.append(TriggerEvent.from_change(notification))

            span.set_attribute("webhook.lifecycle_count", len(lifecycle))
            span.set_attribute("webhook.event_count", len(events))
            span.set_attribute("webhook.dropped_count", dropped)
            self._logger.info(
                "webhook.notifications.handled",
                lifecycle=len(lifecycle),
                changes=len(changes),
                events=len(events),
                dropped=dropped,
            )
            return WebhookOutcome(events=events, renewed=renewed, dropped=dropped)
