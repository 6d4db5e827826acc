"""Microsoft Graph subscription manager: create, renew, delete and verify webhook subscriptions."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Sequence

from src.config import (
    LIFECYCLE_URL_THRESHOLD_MINUTES,
    SUBSCRIPTION_EXPIRY_MARGIN_MINUTES,
    SUBSCRIPTION_LEASE_MINUTES,
    WEBHOOK_CLIENT_STATE,
)
from src.errors import GraphApiError, PartialCreateError, RenewalError, SubscriptionCreateError
from src.graph.client import GraphClient
from src.utils.logger import BoundLogger, get_logger
from src.utils.tasks import gather_settled
from src.utils.tracing import get_tracer
from src.webhook.models import (
    CreateSubscriptionBody,
    Subscription,
    VerificationResult,
    format_graph_datetime,
)

CHANGE_TYPE_CREATED = "created"
CLIENT_STATE_MAX_LENGTH = 128
SUBSCRIPTIONS_PATH = "/subscriptions"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_subscription_body(
    notification_url: str,
    resource: str,
    *,
    client_state: str | None,
    now: datetime,
    lease: timedelta = timedelta(minutes=SUBSCRIPTION_LEASE_MINUTES),
    lifecycle_threshold: timedelta = timedelta(minutes=LIFECYCLE_URL_THRESHOLD_MINUTES),
) -> CreateSubscriptionBody:
    """Body for POST /subscriptions.

    Graph requires a lifecycleNotificationUrl once the lease is longer than
    an hour; the webhook URL itself receives lifecycle notifications.
    """
    expiration = now + lease
    body = CreateSubscriptionBody(
        change_type=CHANGE_TYPE_CREATED,
        notification_url=notification_url,
        resource=resource,
        expiration_date_time=format_graph_datetime(expiration),
        client_state=client_state[:CLIENT_STATE_MAX_LENGTH] if client_state else None,
    )
    if expiration - now > lifecycle_threshold:
        body.lifecycle_notification_url = notification_url
    return body


class SubscriptionManager:
    """Owns every remote subscription call; shares one GraphClient."""

    def __init__(
        self,
        client: GraphClient,
        *,
        client_state: str | None = WEBHOOK_CLIENT_STATE,
        lease_minutes: int = SUBSCRIPTION_LEASE_MINUTES,
        lifecycle_threshold_minutes: int = LIFECYCLE_URL_THRESHOLD_MINUTES,
        expiry_margin_minutes: int = SUBSCRIPTION_EXPIRY_MARGIN_MINUTES,
        logger: BoundLogger | None = None,
        clock: Clock | None = None,
    ):
        self._client = client
        self._client_state = client_state
        self._lease = timedelta(minutes=lease_minutes)
        self._lifecycle_threshold = timedelta(minutes=lifecycle_threshold_minutes)
        self._expiry_margin = timedelta(minutes=expiry_margin_minutes)
        self._logger = logger or get_logger("teams_transcripts.webhook.subscription")
        self._clock = clock or _utcnow

    @property
    def client_state(self) -> str | None:
        return self._client_state

    async def create(self, notification_url: str, resource: str) -> Subscription:
        """Create one subscription (changeType=created). Raises SubscriptionCreateError."""
        body = build_subscription_body(
            notification_url,
            resource,
            client_state=self._client_state,
            now=self._clock(),
            lease=self._lease,
            lifecycle_threshold=self._lifecycle_threshold,
        )
        with get_tracer().start_as_current_span(
            "subscription.create",
            attributes={"subscription.resource": resource},
        ):
            try:
                data = await self._client.request("POST", SUBSCRIPTIONS_PATH, body.to_graph())
            except GraphApiError as e:
                self._logger.error(
                    "webhook.subscription.create_error",
                    resource=resource,
                    status_code=e.status_code,
                    error=str(e),
                )
                raise SubscriptionCreateError(
                    f"Failed to create subscription for {resource}: {e.message}",
                    resource=resource,
                ) from e
        if not isinstance(data, dict) or not data.get("id"):
            self._logger.error("webhook.subscription.create_no_id", resource=resource)
            raise SubscriptionCreateError(
                f"Graph returned no subscription id for {resource}",
                resource=resource,
            )
        subscription = Subscription.model_validate(data)
        self._logger.info(
            "webhook.subscription.created",
            subscription_id=subscription.id,
            resource=resource,
            expires=subscription.expiration_date_time,
            lifecycle_url=body.lifecycle_notification_url is not None,
        )
        return subscription

    async def create_for_resources(
        self,
        notification_url: str,
        resources: Sequence[str],
    ) -> list[Subscription]:
        """Create one subscription per resource, concurrently.

        Every creation runs to completion. If any fail, PartialCreateError
        carries the subscriptions that were created so they can be stored.
        """
        resources = list(resources)
        if len(resources) == 1:
            return [await self.create(notification_url, resources[0])]

        outcomes = await gather_settled(
            resources,
            lambda resource: self.create(notification_url, resource),
        )
        succeeded = [o.value for o in outcomes if o.ok]
        failures = {o.key: o.error for o in outcomes if not o.ok}
        if failures:
            self._logger.error(
                "webhook.subscription.partial_create",
                created=[s.id for s in succeeded],
                failed=sorted(failures),
            )
            raise PartialCreateError(succeeded, failures)
        return succeeded

    async def _extend(self, subscription_id: str, expiration: datetime) -> Any:
        try:
            return await self._client.request(
                "PATCH",
                f"{SUBSCRIPTIONS_PATH}/{subscription_id}",
                {"expirationDateTime": format_graph_datetime(expiration)},
            )
        except GraphApiError as e:
            raise RenewalError(subscription_id, str(e), status_code=e.status_code) from e

    async def renew(self, subscription_id: str) -> Subscription | None:
        """Extend the lease by the configured window. Never raises; returns None on failure."""
        expiration = self._clock() + self._lease
        with get_tracer().start_as_current_span(
            "subscription.renew",
            attributes={"subscription.id": subscription_id},
        ):
            try:
                data = await self._extend(subscription_id, expiration)
            except RenewalError as e:
                # A lapsed subscription only stops delivery; notification handling must go on
                self._logger.error(
                    "webhook.subscription.renew_error",
                    subscription_id=e.subscription_id,
                    status_code=e.status_code,
                    error=str(e),
                )
                return None
        if isinstance(data, dict) and data.get("id"):
            subscription = Subscription.model_validate(data)
        else:
            subscription = Subscription(id=subscription_id)
        self._logger.info(
            "webhook.subscription.renewed",
            subscription_id=subscription_id,
            expires=subscription.expiration_date_time or format_graph_datetime(expiration),
        )
        return subscription

    async def renew_many(self, subscription_ids: Iterable[str]) -> dict[str, Subscription | None]:
        """Renew concurrently and join; failed renewals map to None."""
        outcomes = await gather_settled(list(subscription_ids), self.renew)
        return {o.key: o.value for o in outcomes}

    async def delete(self, subscription_id: str) -> None:
        """Delete a subscription. Already-gone (404) counts as deleted; other errors propagate."""
        try:
            await self._client.request("DELETE", f"{SUBSCRIPTIONS_PATH}/{subscription_id}")
        except GraphApiError as e:
            if e.is_not_found:
                self._logger.info(
                    "webhook.subscription.already_gone",
                    subscription_id=subscription_id,
                )
                return
            self._logger.error(
                "webhook.subscription.delete_error",
                subscription_id=subscription_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise
        self._logger.info("webhook.subscription.deleted", subscription_id=subscription_id)

    async def list_subscriptions(self) -> list[Subscription]:
        """All subscriptions visible to the app, across every page."""
        items = await self._client.request_all_pages("value", "GET", SUBSCRIPTIONS_PATH)
        return [Subscription.model_validate(item) for item in items if item.get("id")]

    async def verify_existing(
        self,
        webhook_url: str,
        required_resources: Iterable[str],
    ) -> VerificationResult:
        """Check whether live subscriptions to ``webhook_url`` already cover every required resource.

        Only subscriptions with more than the safety margin left count as live.
        """
        now = self._clock()
        live: list[Subscription] = []
        for subscription in await self.list_subscriptions():
            if subscription.notification_url != webhook_url:
                continue
            expires_at = subscription.expires_at
            if expires_at is None or expires_at - now <= self._expiry_margin:
                continue
            live.append(subscription)

        subscribed = {s.resource for s in live}
        required = set(required_resources)
        valid = required.issubset(subscribed)
        self._logger.info(
            "webhook.subscription.verify",
            webhook_url=webhook_url,
            live=len(live),
            missing=sorted(required - subscribed),
            valid=valid,
        )
        return VerificationResult(valid=valid, matching_ids=[s.id for s in live])
