"""Error types for Graph calls and the subscription lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.webhook.models import Subscription


class GraphApiError(Exception):
    """Any failed Graph request: HTTP error status or transport fault (status_code None)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        method: str | None = None,
        url: str | None = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.method = method
        self.url = url
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.code:
            parts.append(f"code={self.code}")
        if self.method and self.url:
            parts.append(f"{self.method} {self.url}")
        return " ".join(parts)


class ConfigurationError(ValueError):
    """Invalid trigger configuration, detected before any remote call."""

    def __init__(self, message: str, description: str | None = None):
        super().__init__(message)
        self.message = message
        self.description = description

    def __str__(self) -> str:
        if self.description:
            return f"{self.message}: {self.description}"
        return self.message


class SubscriptionCreateError(Exception):
    """Graph refused to create a subscription. The underlying GraphApiError is __cause__."""

    def __init__(self, message: str, resource: str | None = None):
        super().__init__(message)
        self.resource = resource


class PartialCreateError(SubscriptionCreateError):
    """Some subscriptions of a multi-resource registration failed to create.

    ``succeeded`` holds the subscriptions that do exist server-side so they
    can still be persisted (and later torn down).
    """

    def __init__(
        self,
        succeeded: list[Subscription],
        failures: dict[str, BaseException],
    ):
        failed = ", ".join(sorted(failures))
        super().__init__(
            f"Failed to create {len(failures)} of {len(failures) + len(succeeded)} subscriptions ({failed})"
        )
        self.succeeded = succeeded
        self.failures = failures


class RenewalError(Exception):
    """A subscription could not be renewed. Logged by the manager, never propagated."""

    def __init__(self, subscription_id: str, message: str, status_code: int | None = None):
        super().__init__(f"Failed to renew subscription {subscription_id}: {message}")
        self.subscription_id = subscription_id
        self.status_code = status_code
