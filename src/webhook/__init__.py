"""Webhook service for Microsoft Graph transcript change notifications."""

from src.webhook.classifier import classify, is_lifecycle_notification, partition
from src.webhook.controller import WebhookController, WebhookOutcome
from src.webhook.models import (
    ChangeNotification,
    LifecycleNotification,
    NotificationBatch,
    NotificationEnvelope,
    Subscription,
    TriggerEvent,
)
from src.webhook.registration import WebhookRegistration
from src.webhook.subscription import SubscriptionManager

__all__ = [
    "classify",
    "is_lifecycle_notification",
    "partition",
    "WebhookController",
    "WebhookOutcome",
    "ChangeNotification",
    "LifecycleNotification",
    "NotificationBatch",
    "NotificationEnvelope",
    "Subscription",
    "TriggerEvent",
    "WebhookRegistration",
    "SubscriptionManager",
]
