"""Pydantic models for Graph subscriptions and change-notification webhook payloads."""

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def format_graph_datetime(value: datetime) -> str:
    """UTC ISO 8601 with millisecond precision and a Z suffix, as Graph expects."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_graph_datetime(value: str) -> datetime:
    """Parse a Graph timestamp (Z suffix, 0-7 fractional digits) into an aware UTC datetime."""
    text = value.strip().replace("Z", "+00:00").replace("z", "+00:00")
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Subscription(BaseModel):
    """Graph subscription resource (subset we read back)."""

    id: str
    resource: str = ""
    change_type: str | None = Field(None, alias="changeType")
    notification_url: str = Field("", alias="notificationUrl")
    lifecycle_notification_url: str | None = Field(None, alias="lifecycleNotificationUrl")
    expiration_date_time: str | None = Field(None, alias="expirationDateTime")
    client_state: str | None = Field(None, alias="clientState")
    application_id: str | None = Field(None, alias="applicationId")
    creator_id: str | None = Field(None, alias="creatorId")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def expires_at(self) -> datetime | None:
        if not self.expiration_date_time:
            return None
        try:
            return parse_graph_datetime(self.expiration_date_time)
        except ValueError:
            return None


class CreateSubscriptionBody(BaseModel):
    """POST /subscriptions request body."""

    change_type: str = Field(..., alias="changeType")
    notification_url: str = Field(..., alias="notificationUrl")
    resource: str
    expiration_date_time: str = Field(..., alias="expirationDateTime")
    client_state: str | None = Field(None, alias="clientState")
    lifecycle_notification_url: str | None = Field(None, alias="lifecycleNotificationUrl")

    model_config = {"populate_by_name": True}

    def to_graph(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NotificationEnvelope(BaseModel):
    """One element of a webhook POST's ``value`` array.

    Graph uses this single shape for both lifecycle and change
    notifications; see src.webhook.classifier for telling them apart.
    """

    subscription_id: str | None = Field(None, alias="subscriptionId")
    client_state: str | None = Field(None, alias="clientState")
    change_type: str | None = Field(None, alias="changeType")
    resource: str | None = None
    subscription_expiration_date_time: str | None = Field(
        None, alias="subscriptionExpirationDateTime"
    )
    resource_data: dict[str, Any] | None = Field(None, alias="resourceData")
    tenant_id: str | None = Field(None, alias="tenantId")
    lifecycle_event: str | None = Field(None, alias="lifecycleEvent")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class NotificationBatch(BaseModel):
    """Request body of a Graph webhook POST: array of notifications in 'value'."""

    value: list[NotificationEnvelope] = Field(default_factory=list)


class LifecycleNotification(BaseModel):
    """Control-plane notification about a subscription itself (e.g. reauthorizationRequired)."""

    kind: Literal["lifecycle"] = "lifecycle"
    subscription_id: str | None = None
    lifecycle_event: str | None = None
    resource: str | None = None


class ChangeNotification(BaseModel):
    """Data-plane notification: a watched resource was created/updated/deleted."""

    kind: Literal["change"] = "change"
    subscription_id: str | None = None
    client_state: str | None = None
    change_type: str | None = None
    resource: str | None = None
    resource_data: dict[str, Any] = Field(default_factory=dict)
    tenant_id: str | None = None
    subscription_expiration_date_time: str | None = None


Notification = LifecycleNotification | ChangeNotification


class TriggerEvent(BaseModel):
    """Output item: one per change notification, each starting its own downstream execution."""

    subscription_id: str | None = Field(None, alias="subscriptionId")
    change_type: str | None = Field(None, alias="changeType")
    resource: str | None = None
    resource_data: dict[str, Any] = Field(default_factory=dict, alias="resourceData")
    tenant_id: str | None = Field(None, alias="tenantId")
    subscription_expiration_date_time: str | None = Field(
        None, alias="subscriptionExpirationDateTime"
    )

    model_config = {"populate_by_name": True}

    @classmethod
    def from_change(cls, notification: ChangeNotification) -> "TriggerEvent":
        return cls(
            subscription_id=notification.subscription_id,
            change_type=notification.change_type,
            resource=notification.resource,
            resource_data=dict(notification.resource_data),
            tenant_id=notification.tenant_id,
            subscription_expiration_date_time=notification.subscription_expiration_date_time,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class VerificationResult(BaseModel):
    """Outcome of checking existing subscriptions against the required resources."""

    valid: bool
    matching_ids: list[str] = Field(default_factory=list)
