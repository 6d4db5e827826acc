"""In-process fake of the Graph REST endpoints used by the tests (httpx.MockTransport)."""

import json
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from src.graph.client import GraphClient

BASE_URL = "https://graph.test/v1.0"
WEBHOOK_URL = "https://hooks.example.com/webhook"
FIXED_NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)

# Callables may be async; MockTransport awaits what they return
Responder = httpx.Response | Callable[[httpx.Request], Any]


def graph_error(status_code: int, code: str = "Error", message: str = "failed") -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"code": code, "message": message}})


class FakeGraph:
    """Routes (method, path) to queued responses; the last response repeats."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def add(self, method: str, path: str, *responses: Responder) -> "FakeGraph":
        self._routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def _handle(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/v1.0"):
            path = path[len("/v1.0"):]
        queue = self._routes.get((request.method, path))
        if not queue:
            return graph_error(404, "NotFound", f"no route for {request.method} {path}")
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(responder) and not isinstance(responder, httpx.Response):
            return responder(request)
        return responder

    def client(self, page_size: int = 100) -> GraphClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        return GraphClient(None, base_url=BASE_URL, http_client=http_client, page_size=page_size)

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        out = []
        for request in self.requests:
            if request.method != method:
                continue
            if path is not None and not request.url.path.endswith(path):
                continue
            out.append(request)
        return out

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


def subscription_json(
    sub_id: str,
    resource: str,
    expires: str,
    notification_url: str = WEBHOOK_URL,
) -> dict[str, Any]:
    return {
        "id": sub_id,
        "resource": resource,
        "changeType": "created",
        "notificationUrl": notification_url,
        "expirationDateTime": expires,
    }


def echo_created_subscription(prefix: str = "sub") -> Callable[[httpx.Request], httpx.Response]:
    """Responder that answers POST /subscriptions with the posted body plus an id."""
    counter = {"n": 0}

    def _respond(request: httpx.Request) -> httpx.Response:
        counter["n"] += 1
        body = json.loads(request.content)
        body["id"] = f"{prefix}-{counter['n']}"
        return httpx.Response(201, json=body)

    return _respond
