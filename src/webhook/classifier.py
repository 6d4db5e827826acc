"""Split inbound Graph notifications into lifecycle and change notifications.

The wire format has no discriminator, so classification is structural. A
notification is a lifecycle notification if any of these hold, checked
cheapest first (different API versions populate different fields):

1. ``lifecycleEvent`` is non-empty,
2. ``resource`` starts with ``Subscriptions/``,
3. ``resourceData["@odata.type"]`` is the subscription entity type.
"""

from typing import Iterable

from src.webhook.models import (
    ChangeNotification,
    LifecycleNotification,
    Notification,
    NotificationEnvelope,
)

SUBSCRIPTION_RESOURCE_PREFIX = "Subscriptions/"
SUBSCRIPTION_ODATA_TYPE = "#Microsoft.Graph.subscription"
ODATA_TYPE_FIELD = "@odata.type"


def is_lifecycle_notification(envelope: NotificationEnvelope) -> bool:
    if envelope.lifecycle_event:
        return True
    if (envelope.resource or "").startswith(SUBSCRIPTION_RESOURCE_PREFIX):
        return True
    odata_type = (envelope.resource_data or {}).get(ODATA_TYPE_FIELD)
    return isinstance(odata_type, str) and odata_type.lower() == SUBSCRIPTION_ODATA_TYPE.lower()


def classify(envelope: NotificationEnvelope) -> Notification:
    """Turn a raw envelope into a tagged LifecycleNotification or ChangeNotification."""
    if is_lifecycle_notification(envelope):
        return LifecycleNotification(
            subscription_id=envelope.subscription_id,
            lifecycle_event=envelope.lifecycle_event,
            resource=envelope.resource,
        )
    return ChangeNotification(
        subscription_id=envelope.subscription_id,
        client_state=envelope.client_state,
        change_type=envelope.change_type,
        resource=envelope.resource,
        resource_data=dict(envelope.resource_data or {}),
        tenant_id=envelope.tenant_id,
        subscription_expiration_date_time=envelope.subscription_expiration_date_time,
    )


def partition(
    envelopes: Iterable[NotificationEnvelope],
) -> tuple[list[LifecycleNotification], list[ChangeNotification]]:
    """Classify a batch, keeping arrival order within each group."""
    lifecycle: list[LifecycleNotification] = []
    changes: list[ChangeNotification] = []
    for envelope in envelopes:
        notification = classify(envelope)
        if isinstance(notification, LifecycleNotification):
            lifecycle.append(notification)
        else:
            changes.append(notification)
    return lifecycle, changes
