"""Activation hooks for one webhook registration: check_exists, create, delete."""

from src.errors import ConfigurationError, GraphApiError, PartialCreateError
from src.utils.logger import BoundLogger, get_logger
from src.utils.tasks import gather_settled
from src.webhook.resources import TriggerConfig, resolve_resource_paths
from src.webhook.state_store import SubscriptionStateStore
from src.webhook.subscription import SubscriptionManager


def validate_webhook_url(webhook_url: str | None) -> str:
    """Graph only delivers to TLS endpoints."""
    if not webhook_url or not webhook_url.startswith("https://"):
        raise ConfigurationError(
            "Invalid Notification URL",
            f'The webhook URL "{webhook_url}" is invalid. Microsoft Graph requires an HTTPS URL.',
        )
    return webhook_url


class WebhookRegistration:
    """Ties a webhook URL and trigger config to the subscriptions stored for it.

    The stored id set is keyed by ``key`` (the webhook URL unless given).
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        store: SubscriptionStateStore,
        config: TriggerConfig,
        webhook_url: str,
        *,
        key: str | None = None,
        logger: BoundLogger | None = None,
    ):
        self._manager = manager
        self._store = store
        self._config = config
        self._webhook_url = webhook_url
        self._key = key or webhook_url
        self._logger = (logger or get_logger("teams_transcripts.webhook.registration")).bind(
            registration=self._key,
        )

    @property
    def key(self) -> str:
        return self._key

    @property
    def webhook_url(self) -> str:
        return self._webhook_url

    async def stored_ids(self) -> list[str]:
        return await self._store.get_ids(self._key) or []

    async def check_exists(self) -> bool:
        """True when live subscriptions to this URL cover every required resource.

        On success the stored ids are replaced with the live server-side set.
        """
        try:
            required = resolve_resource_paths(self._config)
            result = await self._manager.verify_existing(self._webhook_url, required)
        except (ConfigurationError, GraphApiError) as e:
            self._logger.warning("webhook.registration.check_exists_error", error=str(e))
            return False
        if not result.valid:
            return False
        await self._store.set_ids(self._key, result.matching_ids)
        self._logger.info(
            "webhook.registration.exists",
            subscription_ids=result.matching_ids,
        )
        return True

    async def create(self) -> bool:
        """Create the subscriptions for the configured trigger and persist their ids.

        ConfigurationError is raised before any remote call. When only some
        resources could be subscribed, the created ids are still persisted
        and PartialCreateError is re-raised.
        """
        validate_webhook_url(self._webhook_url)
        resources = resolve_resource_paths(self._config)
        try:
            subscriptions = await self._manager.create_for_resources(self._webhook_url, resources)
        except PartialCreateError as e:
            partial_ids = [s.id for s in e.succeeded]
            await self._store.set_ids(self._key, partial_ids)
            self._logger.error(
                "webhook.registration.partial_create",
                subscription_ids=partial_ids,
                failed=sorted(e.failures),
            )
            raise
        subscription_ids = [s.id for s in subscriptions]
        await self._store.set_ids(self._key, subscription_ids)
        self._logger.info(
            "webhook.registration.created",
            subscription_ids=subscription_ids,
            resources=resources,
        )
        return True

    async def delete(self) -> bool:
        """Delete every stored subscription; clear local state only if all are gone.

        Returns False instead of raising so the caller can retry later.
        """
        stored = await self._store.get_ids(self._key)
        if stored is None:
            self._logger.info("webhook.registration.delete_nothing_stored")
            return False

        outcomes = await gather_settled(stored, self._manager.delete)
        failed = {o.key: str(o.error) for o in outcomes if not o.ok}
        if failed:
            self._logger.error(
                "webhook.registration.delete_incomplete",
                failed=failed,
                deleted=[o.key for o in outcomes if o.ok],
            )
            return False
        await self._store.clear(self._key)
        self._logger.info("webhook.registration.deleted", subscription_ids=stored)
        return True

    async def activate(self) -> bool:
        """Reuse live subscriptions when possible, otherwise create them."""
        if await self.check_exists():
            return True
        return await self.create()
