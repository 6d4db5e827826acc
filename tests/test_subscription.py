"""Tests for SubscriptionManager: lease policy, create/renew/delete and existing-subscription checks."""

import asyncio
import sys
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.errors import GraphApiError, PartialCreateError, SubscriptionCreateError
from src.webhook.models import format_graph_datetime, parse_graph_datetime
from src.webhook.subscription import SubscriptionManager, build_subscription_body
from tests.fakes import (
    FIXED_NOW,
    WEBHOOK_URL,
    FakeGraph,
    echo_created_subscription,
    graph_error,
    subscription_json,
)

ALL_TRANSCRIPTS = "communications/onlineMeetings/getAllTranscripts"


def _manager(graph: FakeGraph, **kwargs) -> SubscriptionManager:
    return SubscriptionManager(
        graph.client(),
        client_state=kwargs.pop("client_state", "secret"),
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


class TestLeasePolicy(unittest.TestCase):
    def test_default_lease_sets_lifecycle_url(self):
        body = build_subscription_body(
            WEBHOOK_URL,
            ALL_TRANSCRIPTS,
            client_state="secret",
            now=FIXED_NOW,
            lease=timedelta(minutes=1008),
        )
        data = body.to_graph()
        self.assertEqual(data["changeType"], "created")
        self.assertEqual(data["notificationUrl"], WEBHOOK_URL)
        self.assertEqual(data["resource"], ALL_TRANSCRIPTS)
        self.assertEqual(data["clientState"], "secret")
        self.assertEqual(data["lifecycleNotificationUrl"], WEBHOOK_URL)
        self.assertEqual(
            parse_graph_datetime(data["expirationDateTime"]),
            FIXED_NOW + timedelta(minutes=1008),
        )

    def test_lease_at_or_below_one_hour_omits_lifecycle_url(self):
        for minutes in (60, 45, 1):
            body = build_subscription_body(
                WEBHOOK_URL,
                ALL_TRANSCRIPTS,
                client_state="secret",
                now=FIXED_NOW,
                lease=timedelta(minutes=minutes),
            )
            self.assertNotIn("lifecycleNotificationUrl", body.to_graph(), minutes)

    def test_client_state_truncated(self):
        body = build_subscription_body(
            WEBHOOK_URL, ALL_TRANSCRIPTS, client_state="x" * 300, now=FIXED_NOW
        )
        self.assertEqual(len(body.client_state), 128)

    def test_graph_datetime_round_trip_formats(self):
        self.assertEqual(format_graph_datetime(FIXED_NOW), "2026-03-02T09:00:00.000Z")
        parsed = parse_graph_datetime("2026-03-02T09:00:00.1234567Z")
        self.assertEqual(parsed.microsecond, 123456)


class TestCreate(unittest.TestCase):
    def test_create_posts_body_and_returns_subscription(self):
        graph = FakeGraph().add("POST", "/subscriptions", echo_created_subscription())

        async def run():
            return await _manager(graph).create(WEBHOOK_URL, ALL_TRANSCRIPTS)

        sub = asyncio.run(run())
        self.assertEqual(sub.id, "sub-1")
        self.assertEqual(sub.resource, ALL_TRANSCRIPTS)
        sent = FakeGraph.body(graph.calls("POST", "/subscriptions")[0])
        self.assertEqual(sent["lifecycleNotificationUrl"], WEBHOOK_URL)
        self.assertEqual(sent["expirationDateTime"], "2026-03-03T01:48:00.000Z")

    def test_create_failure_wrapped(self):
        graph = FakeGraph().add(
            "POST", "/subscriptions", graph_error(400, "InvalidRequest", "bad resource")
        )

        async def run():
            await _manager(graph).create(WEBHOOK_URL, "bogus")

        with self.assertRaises(SubscriptionCreateError) as ctx:
            asyncio.run(run())
        self.assertEqual(ctx.exception.resource, "bogus")
        self.assertIsInstance(ctx.exception.__cause__, GraphApiError)

    def test_create_for_resources_runs_all(self):
        graph = FakeGraph().add("POST", "/subscriptions", echo_created_subscription())
        resources = ["users/u1/onlineMeetings/getAllTranscripts", "users/u2/onlineMeetings/getAllTranscripts"]

        async def run():
            return await _manager(graph).create_for_resources(WEBHOOK_URL, resources)

        subs = asyncio.run(run())
        self.assertEqual(sorted(s.resource for s in subs), sorted(resources))
        self.assertEqual(len(graph.calls("POST", "/subscriptions")), 2)

    def test_create_for_resources_keeps_partial_successes(self):
        def _respond(request):
            body = FakeGraph.body(request)
            if body["resource"] == "bad":
                return graph_error(403, "Forbidden", "no access")
            body["id"] = f"id-{body['resource']}"
            return httpx.Response(201, json=body)

        graph = FakeGraph().add("POST", "/subscriptions", _respond)

        async def run():
            await _manager(graph).create_for_resources(WEBHOOK_URL, ["good-1", "bad", "good-2"])

        with self.assertRaises(PartialCreateError) as ctx:
            asyncio.run(run())
        self.assertEqual([s.id for s in ctx.exception.succeeded], ["id-good-1", "id-good-2"])
        self.assertEqual(list(ctx.exception.failures), ["bad"])
        self.assertIsInstance(ctx.exception, SubscriptionCreateError)
        self.assertEqual(len(graph.calls("POST", "/subscriptions")), 3)


class TestRenew(unittest.TestCase):
    def test_renew_patches_expiration(self):
        expires = format_graph_datetime(FIXED_NOW + timedelta(minutes=1008))
        graph = FakeGraph().add(
            "PATCH",
            "/subscriptions/s1",
            httpx.Response(200, json=subscription_json("s1", ALL_TRANSCRIPTS, expires)),
        )

        async def run():
            return await _manager(graph).renew("s1")

        sub = asyncio.run(run())
        self.assertEqual(sub.id, "s1")
        self.assertEqual(FakeGraph.body(graph.requests[0]), {"expirationDateTime": expires})

    def test_renew_failure_returns_none(self):
        graph = FakeGraph().add("PATCH", "/subscriptions/s1", graph_error(500, "InternalServerError"))

        async def run():
            return await _manager(graph).renew("s1")

        self.assertIsNone(asyncio.run(run()))

    def test_renew_failure_logs_renewal_error(self):
        graph = FakeGraph().add("PATCH", "/subscriptions/s1", graph_error(503, "ServiceUnavailable", "try later"))
        logger = MagicMock()

        async def run():
            return await _manager(graph, logger=logger).renew("s1")

        self.assertIsNone(asyncio.run(run()))
        event, = logger.error.call_args.args
        fields = logger.error.call_args.kwargs
        self.assertEqual(event, "webhook.subscription.renew_error")
        self.assertEqual(fields["subscription_id"], "s1")
        self.assertEqual(fields["status_code"], 503)
        self.assertTrue(fields["error"].startswith("Failed to renew subscription s1: "))

    def test_renew_many_collects_each_outcome(self):
        graph = (
            FakeGraph()
            .add("PATCH", "/subscriptions/ok", httpx.Response(200, json={"id": "ok"}))
            .add("PATCH", "/subscriptions/gone", graph_error(404))
        )

        async def run():
            return await _manager(graph).renew_many(["ok", "gone"])

        results = asyncio.run(run())
        self.assertEqual(results["ok"].id, "ok")
        self.assertIsNone(results["gone"])


class TestDelete(unittest.TestCase):
    def test_delete_success(self):
        graph = FakeGraph().add("DELETE", "/subscriptions/s1", httpx.Response(204))
        asyncio.run(_manager(graph).delete("s1"))
        self.assertEqual(len(graph.calls("DELETE")), 1)

    def test_delete_not_found_is_success(self):
        graph = FakeGraph().add("DELETE", "/subscriptions/s1", graph_error(404, "ResourceNotFound"))
        asyncio.run(_manager(graph).delete("s1"))

    def test_delete_other_error_propagates(self):
        graph = FakeGraph().add("DELETE", "/subscriptions/s1", graph_error(503, "ServiceUnavailable"))
        with self.assertRaises(GraphApiError) as ctx:
            asyncio.run(_manager(graph).delete("s1"))
        self.assertEqual(ctx.exception.status_code, 503)


class TestVerifyExisting(unittest.TestCase):
    def _graph_with(self, *subs) -> FakeGraph:
        return FakeGraph().add("GET", "/subscriptions", httpx.Response(200, json={"value": list(subs)}))

    def _expires_in(self, minutes: float) -> str:
        return format_graph_datetime(FIXED_NOW + timedelta(minutes=minutes))

    def test_valid_when_live_subscription_covers_resources(self):
        graph = self._graph_with(
            subscription_json("s1", ALL_TRANSCRIPTS, self._expires_in(600)),
            subscription_json("other", ALL_TRANSCRIPTS, self._expires_in(600), "https://elsewhere/webhook"),
        )

        result = asyncio.run(_manager(graph).verify_existing(WEBHOOK_URL, [ALL_TRANSCRIPTS]))
        self.assertTrue(result.valid)
        self.assertEqual(result.matching_ids, ["s1"])

    def test_near_expiry_subscription_does_not_count(self):
        graph = self._graph_with(subscription_json("s1", ALL_TRANSCRIPTS, self._expires_in(3)))

        result = asyncio.run(_manager(graph).verify_existing(WEBHOOK_URL, [ALL_TRANSCRIPTS]))
        self.assertFalse(result.valid)
        self.assertEqual(result.matching_ids, [])

    def test_exactly_at_margin_does_not_count(self):
        graph = self._graph_with(subscription_json("s1", ALL_TRANSCRIPTS, self._expires_in(5)))
        result = asyncio.run(_manager(graph).verify_existing(WEBHOOK_URL, [ALL_TRANSCRIPTS]))
        self.assertFalse(result.valid)

    def test_missing_resource_is_invalid(self):
        graph = self._graph_with(subscription_json("s1", "users/u1/onlineMeetings/getAllTranscripts", self._expires_in(600)))
        result = asyncio.run(
            _manager(graph).verify_existing(
                WEBHOOK_URL,
                ["users/u1/onlineMeetings/getAllTranscripts", "users/u2/onlineMeetings/getAllTranscripts"],
            )
        )
        self.assertFalse(result.valid)
        self.assertEqual(result.matching_ids, ["s1"])


if __name__ == "__main__":
    unittest.main()
