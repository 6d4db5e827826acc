"""Tests for WebhookController: handshake, lifecycle renewal and change fan-out."""

import asyncio
import sys
import unittest
from pathlib import Path

import httpx
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.webhook.controller import WebhookController
from src.webhook.subscription import SubscriptionManager
from tests.fakes import FIXED_NOW, FakeGraph, graph_error

TRANSCRIPT_RESOURCE = "communications/onlineMeetings/MSo1N2Y5/transcripts/t1"


def _controller(graph: FakeGraph, client_state: str | None = "secret") -> WebhookController:
    manager = SubscriptionManager(graph.client(), client_state="secret", clock=lambda: FIXED_NOW)
    return WebhookController(manager, client_state=client_state)


def _change(**overrides):
    notification = {
        "subscriptionId": "s2",
        "changeType": "created",
        "resource": TRANSCRIPT_RESOURCE,
        "resourceData": {"@odata.type": "#microsoft.graph.callTranscript", "id": "t1"},
        "tenantId": "tenant-1",
        "clientState": "secret",
        "subscriptionExpirationDateTime": "2026-03-03T01:48:00.000Z",
    }
    notification.update(overrides)
    return notification


class TestValidationHandshake(unittest.TestCase):
    def test_token_short_circuits(self):
        graph = FakeGraph()
        outcome = asyncio.run(_controller(graph).handle("abc123", {"value": [_change()]}))
        self.assertTrue(outcome.is_validation)
        self.assertEqual(outcome.validation_token, "abc123")
        self.assertEqual(outcome.events, [])
        self.assertEqual(graph.requests, [])

    def test_empty_token_is_not_handshake(self):
        outcome = asyncio.run(_controller(FakeGraph()).handle("", {"value": []}))
        self.assertFalse(outcome.is_validation)
        self.assertEqual(outcome.events, [])


class TestLifecycleNotifications(unittest.TestCase):
    def test_lifecycle_only_batch_renews_and_emits_nothing(self):
        graph = FakeGraph().add("PATCH", "/subscriptions/s1", httpx.Response(200, json={"id": "s1"}))
        payload = {
            "value": [
                {
                    "subscriptionId": "s1",
                    "resource": "Subscriptions/s1",
                    "lifecycleEvent": "reauthorizationRequired",
                }
            ]
        }

        outcome = asyncio.run(_controller(graph).handle(None, payload))
        self.assertEqual(outcome.events, [])
        self.assertEqual(outcome.renewed, {"s1": True})
        patches = graph.calls("PATCH")
        self.assertEqual(len(patches), 1)
        self.assertTrue(patches[0].url.path.endswith("/subscriptions/s1"))

    def test_renewal_failure_does_not_fail_request(self):
        graph = FakeGraph().add("PATCH", "/subscriptions/s1", graph_error(500))
        payload = {"value": [{"subscriptionId": "s1", "lifecycleEvent": "missed"}, _change()]}

        outcome = asyncio.run(_controller(graph).handle(None, payload))
        self.assertEqual(outcome.renewed, {"s1": False})
        self.assertEqual(len(outcome.events), 1)

    def test_lifecycle_without_subscription_id_is_skipped(self):
        graph = FakeGraph()
        payload = {"value": [{"resource": "Subscriptions/unknown", "lifecycleEvent": "missed"}]}

        outcome = asyncio.run(_controller(graph).handle(None, payload))
        self.assertEqual(outcome.renewed, {})
        self.assertEqual(graph.requests, [])


class TestChangeNotifications(unittest.TestCase):
    def test_single_change_emits_one_event_without_renewal(self):
        graph = FakeGraph()

        outcome = asyncio.run(_controller(graph).handle(None, {"value": [_change()]}))
        self.assertEqual(len(outcome.events), 1)
        event = outcome.events[0].to_json()
        self.assertEqual(event["subscriptionId"], "s2")
        self.assertEqual(event["changeType"], "created")
        self.assertEqual(event["resource"], TRANSCRIPT_RESOURCE)
        self.assertEqual(event["resourceData"]["id"], "t1")
        self.assertEqual(event["tenantId"], "tenant-1")
        self.assertEqual(event["subscriptionExpirationDateTime"], "2026-03-03T01:48:00.000Z")
        self.assertEqual(graph.calls("PATCH"), [])

    def test_duplicates_are_not_merged(self):
        outcome = asyncio.run(
            _controller(FakeGraph()).handle(None, {"value": [_change(), _change(), _change(subscriptionId="s3")]})
        )
        self.assertEqual([e.subscription_id for e in outcome.events], ["s2", "s2", "s3"])

    def test_mixed_batch(self):
        graph = FakeGraph().add("PATCH", "/subscriptions/s1", httpx.Response(204))
        payload = {
            "value": [
                _change(),
                {"subscriptionId": "s1", "resourceData": {"@odata.type": "#Microsoft.Graph.subscription"}},
            ]
        }

        outcome = asyncio.run(_controller(graph).handle(None, payload))
        self.assertEqual(len(outcome.events), 1)
        self.assertEqual(outcome.renewed, {"s1": True})

    def test_mismatched_client_state_dropped(self):
        outcome = asyncio.run(
            _controller(FakeGraph()).handle(None, {"value": [_change(clientState="forged"), _change()]})
        )
        self.assertEqual(len(outcome.events), 1)
        self.assertEqual(outcome.dropped, 1)

    def test_notification_without_client_state_accepted(self):
        outcome = asyncio.run(_controller(FakeGraph()).handle(None, {"value": [_change(clientState=None)]}))
        self.assertEqual(len(outcome.events), 1)
        self.assertEqual(outcome.dropped, 0)

    def test_client_state_not_checked_when_disabled(self):
        outcome = asyncio.run(
            _controller(FakeGraph(), client_state=None).handle(None, {"value": [_change(clientState="other")]})
        )
        self.assertEqual(len(outcome.events), 1)
        self.assertEqual(outcome.dropped, 0)

    def test_missing_value_is_empty_batch(self):
        outcome = asyncio.run(_controller(FakeGraph()).handle(None, {}))
        self.assertEqual(outcome.events, [])

    def test_malformed_value_raises_validation_error(self):
        with self.assertRaises(ValidationError):
            asyncio.run(_controller(FakeGraph()).handle(None, {"value": "nope"}))


if __name__ == "__main__":
    unittest.main()
