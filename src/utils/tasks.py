"""Concurrent fan-out that captures every member's outcome instead of failing fast."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

K = TypeVar("K")
T = TypeVar("T")


@dataclass
class Settled(Generic[K, T]):
    """Outcome of one task: either ``value`` or ``error`` is set."""

    key: K
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(
    keys: Iterable[K],
    func: Callable[[K], Awaitable[T]],
) -> list[Settled[K, T]]:
    """Run ``func(key)`` concurrently for every key and join.

    A failing member does not cancel its siblings; results come back in key order.
    Cancellation of the caller still propagates.
    """
    keys = list(keys)
    results: list[Any] = await asyncio.gather(
        *(func(key) for key in keys),
        return_exceptions=True,
    )
    settled: list[Settled[K, T]] = []
    for key, result in zip(keys, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            settled.append(Settled(key=key, error=result))
        else:
            settled.append(Settled(key=key, value=result))
    return settled
