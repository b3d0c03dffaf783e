"""
Runtime configuration that the operator may change while a crawl runs.
"""

import asyncio
import threading
from dataclasses import dataclass, field, replace
from typing import Generic, List, Tuple, TypeVar

from .filter import CrawlFilter
from ..utils.config import ConfigError

T = TypeVar('T')


@dataclass(frozen=True)
class RuntimeConfig:
    """Snapshot of the settings that can change mid-crawl."""
    concurrency_limit: int = 5
    filter: CrawlFilter = field(default_factory=CrawlFilter)

    def __post_init__(self):
        if not isinstance(self.concurrency_limit, int) or self.concurrency_limit < 1:
            raise ConfigError(
                f"concurrency_limit must be a positive integer, got {self.concurrency_limit!r}"
            )

    def with_concurrency_limit(self, limit: int) -> 'RuntimeConfig':
        return replace(self, concurrency_limit=limit)

    def with_filter(self, crawl_filter: CrawlFilter) -> 'RuntimeConfig':
        return replace(self, filter=crawl_filter)


def _resolve(waiter: asyncio.Future, value):
    if not waiter.done():
        waiter.set_result(value)


class ConfigChannel(Generic[T]):
    """
    Single-slot value with publish/subscribe semantics.

    ``current()`` never blocks and returns the latest published value.
    ``next_change()`` suspends until the next ``publish()`` and returns exactly
    the value that call published. One ``publish()`` wakes every pending
    waiter. Values are swapped whole, so they should be immutable.

    ``publish()`` may be called from any thread; waiters are resumed on the
    event loop they are waiting in.
    """

    def __init__(self, initial: T):
        self._lock = threading.Lock()
        self._value = initial
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    def current(self) -> T:
        with self._lock:
            return self._value

    def publish(self, value: T):
        with self._lock:
            self._value = value
            waiters, self._waiters = self._waiters, []

        for loop, waiter in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(_resolve, waiter, value)

    async def next_change(self) -> T:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        entry = (loop, waiter)
        with self._lock:
            self._waiters.append(entry)

        try:
            return await waiter
        finally:
            if not waiter.done() or waiter.cancelled():
                with self._lock:
                    if entry in self._waiters:
                        self._waiters.remove(entry)
