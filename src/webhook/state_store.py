"""Persistent store of subscription ids per webhook registration.

State survives restarts so teardown can delete every subscription a
registration created. Document layout::

    {"registrations": {"<key>": {"subscriptionIds": ["...", ...]}}}
"""

import asyncio
import json
from pathlib import Path
from typing import Protocol

from src.utils.logger import get_logger

logger = get_logger("teams_transcripts.webhook.state_store")


class SubscriptionStateStore(Protocol):
    """Read/write/clear the subscription ids owned by one registration key."""

    async def get_ids(self, key: str) -> list[str] | None:
        """Stored ids, or None when nothing was ever stored for ``key``."""
        ...

    async def set_ids(self, key: str, subscription_ids: list[str]) -> None:
        ...

    async def clear(self, key: str) -> None:
        ...


class InMemoryStateStore:
    """Process-local store (tests, single-shot CLI runs)."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._registrations: dict[str, list[str]] = {}

    async def get_ids(self, key: str) -> list[str] | None:
        async with self._lock:
            ids = self._registrations.get(key)
            return list(ids) if ids is not None else None

    async def set_ids(self, key: str, subscription_ids: list[str]) -> None:
        async with self._lock:
            self._registrations[key] = list(subscription_ids)

    async def clear(self, key: str) -> None:
        async with self._lock:
            self._registrations.pop(key, None)


class JsonFileStateStore:
    """Store backed by a JSON file, rewritten on every mutation."""

    def __init__(self, store_path: str | Path):
        self._store_path = Path(store_path)
        self._lock = asyncio.Lock()
        self._registrations: dict[str, list[str]] = {}
        self._load()

    def _load(self) -> None:
        """Load state from disk. No-op if file missing or invalid."""
        if not self._store_path.exists():
            return
        try:
            data = json.loads(self._store_path.read_text(encoding="utf-8"))
            registrations = data.get("registrations", {})
            self._registrations = {
                key: [str(i) for i in entry.get("subscriptionIds", [])]
                for key, entry in registrations.items()
                if isinstance(entry, dict)
            }
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(
                "state_store.load_error",
                path=str(self._store_path),
                error=str(e),
            )

    def _save(self) -> None:
        """Write state to disk. Caller should hold _lock."""
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "registrations": {
                key: {"subscriptionIds": ids} for key, ids in self._registrations.items()
            }
        }
        tmp_path = self._store_path.with_suffix(self._store_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self._store_path)

    async def get_ids(self, key: str) -> list[str] | None:
        async with self._lock:
            ids = self._registrations.get(key)
            return list(ids) if ids is not None else None

    async def set_ids(self, key: str, subscription_ids: list[str]) -> None:
        async with self._lock:
            self._registrations[key] = list(subscription_ids)
            self._save()
            logger.debug("state_store.set_ids", key=key, count=len(subscription_ids))

    async def clear(self, key: str) -> None:
        async with self._lock:
            if self._registrations.pop(key, None) is not None:
                self._save()
                logger.debug("state_store.clear", key=key)
