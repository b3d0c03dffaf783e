import asyncio
import threading

import pytest

from waper.crawler.filter import CrawlFilter
from waper.crawler.runtime import ConfigChannel, RuntimeConfig
from waper.utils.config import ConfigError


def test_runtime_config_rejects_non_positive_limit():
    with pytest.raises(ConfigError):
        RuntimeConfig(concurrency_limit=0)
    with pytest.raises(ConfigError):
        RuntimeConfig(concurrency_limit=-3)


def test_runtime_config_updates_return_new_snapshots():
    config = RuntimeConfig(concurrency_limit=2, filter=CrawlFilter(whitelist=("a",)))

    raised = config.with_concurrency_limit(8)
    refiltered = config.with_filter(config.filter.blacklist_all())

    assert raised.concurrency_limit == 8
    assert raised.filter is config.filter
    assert refiltered.filter.blacklist == (".*",)
    assert refiltered.concurrency_limit == 2
    assert config.concurrency_limit == 2


async def test_current_returns_latest_published_value():
    channel = ConfigChannel(1)
    assert channel.current() == 1

    channel.publish(2)
    channel.publish(3)

    assert channel.current() == 3


async def test_publish_wakes_every_pending_waiter_with_the_published_value():
    channel = ConfigChannel(RuntimeConfig(concurrency_limit=1))
    waiters = [asyncio.create_task(channel.next_change()) for _ in range(5)]
    await asyncio.sleep(0)

    new_config = RuntimeConfig(concurrency_limit=7)
    channel.publish(new_config)
    results = await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)

    assert all(result is new_config for result in results)


async def test_next_change_waits_for_a_publish_after_the_call():
    channel = ConfigChannel("old")
    channel.publish("before")

    waiter = asyncio.create_task(channel.next_change())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    channel.publish("after")
    assert await asyncio.wait_for(waiter, timeout=1) == "after"


async def test_cancelled_waiter_is_forgotten():
    channel = ConfigChannel(0)
    waiter = asyncio.create_task(channel.next_change())
    await asyncio.sleep(0)

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert channel._waiters == []
    channel.publish(1)
    assert channel.current() == 1


async def test_publish_from_another_thread_wakes_waiter():
    channel = ConfigChannel(0)
    waiter = asyncio.create_task(channel.next_change())
    await asyncio.sleep(0)

    thread = threading.Thread(target=channel.publish, args=(42,))
    thread.start()
    thread.join()

    assert await asyncio.wait_for(waiter, timeout=1) == 42
