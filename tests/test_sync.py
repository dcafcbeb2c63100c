import asyncio

import pytest

from ledger.sync import (
    ASSETS_COLLECTION,
    ChangeEvent,
    ChangeFeed,
    SubscriptionClosed,
    FeedUnavailableError,
    SyncLoop,
    fingerprint,
)
from conftest import T0, later, wait_until


class FakeSource:
    """fetch_all over an in-memory list, counting calls."""

    def __init__(self, assets):
        self.assets = list(assets)
        self.calls = 0
        self.fail = False

    async def fetch_all(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("store down")
        return list(self.assets)


def test_fingerprint_changes_with_any_updated_at(make_asset):
    assets = [make_asset("a"), make_asset("b")]
    moved = [make_asset("a"), make_asset("b", updated_at=later(T0))]
    assert fingerprint(assets) == fingerprint(list(assets))
    assert fingerprint(assets) != fingerprint(moved)
    assert fingerprint([]) == ""


@pytest.mark.anyio
async def test_subscription_filters_by_collection():
    feed = ChangeFeed()
    subscription = feed.subscribe(ASSETS_COLLECTION, events={"update"})

    feed.publish(ChangeEvent("users", "update", "1"))
    feed.publish(ChangeEvent(ASSETS_COLLECTION, "delete", "A-1"))
    feed.publish(ChangeEvent(ASSETS_COLLECTION, "update", "A-2"))

    assert (await subscription.receive(timeout=0.1)).record_id == "A-2"
    assert await subscription.receive(timeout=0.01) is None


@pytest.mark.anyio
async def test_close_is_idempotent_and_unsubscribes():
    feed = ChangeFeed()
    subscription = feed.subscribe(ASSETS_COLLECTION)
    assert feed.subscriber_count == 1

    subscription.close()
    subscription.close()

    assert feed.subscriber_count == 0
    assert not subscription.established
    with pytest.raises(SubscriptionClosed):
        await subscription.receive(timeout=0.01)


@pytest.mark.anyio
async def test_feed_failure_wakes_receivers():
    feed = ChangeFeed()
    subscription = feed.subscribe(ASSETS_COLLECTION)

    feed.fail("connection reset")

    with pytest.raises(SubscriptionClosed) as exc_info:
        await subscription.receive(timeout=1.0)
    assert "connection reset" in str(exc_info.value)
    assert feed.subscriber_count == 0


def test_unavailable_feed_refuses_subscriptions():
    feed = ChangeFeed()
    feed.available = False
    with pytest.raises(FeedUnavailableError):
        feed.subscribe(ASSETS_COLLECTION)


@pytest.mark.anyio
async def test_loop_delivers_initial_set_and_pushed_changes(make_asset):
    source = FakeSource([make_asset("a")])
    feed = ChangeFeed()
    seen = []
    loop = SyncLoop(source.fetch_all, feed, seen.append, poll_interval=10, receive_timeout=0.01)

    loop.start()
    await wait_until(lambda: loop.mode == "push" and feed.subscriber_count == 1)
    assert [[asset.id for asset in batch] for batch in seen] == [["a"]]

    source.assets.append(make_asset("b", updated_at=later(T0)))
    feed.publish(ChangeEvent(ASSETS_COLLECTION, "update", "b"))
    await wait_until(lambda: len(seen) == 2)

    await loop.stop()
    assert [asset.id for asset in seen[-1]] == ["a", "b"]
    assert feed.subscriber_count == 0
    assert not loop.running


@pytest.mark.anyio
async def test_loop_skips_unchanged_sets(make_asset):
    source = FakeSource([make_asset("a")])
    feed = ChangeFeed()
    seen = []
    loop = SyncLoop(source.fetch_all, feed, seen.append, poll_interval=10, receive_timeout=0.01)

    loop.start()
    await wait_until(lambda: loop.mode == "push")
    feed.publish(ChangeEvent(ASSETS_COLLECTION, "update", "a"))
    await wait_until(lambda: source.calls == 2)
    await loop.stop()

    assert len(seen) == 1


@pytest.mark.anyio
async def test_loop_polls_while_feed_is_unavailable(make_asset):
    source = FakeSource([make_asset("a")])
    feed = ChangeFeed()
    feed.available = False
    seen = []
    loop = SyncLoop(source.fetch_all, feed, seen.append, poll_interval=0.01, receive_timeout=0.01)

    loop.start()
    await wait_until(lambda: source.calls >= 3)
    assert loop.mode == "poll"

    source.assets = [make_asset("a", updated_at=later(T0))]
    await wait_until(lambda: len(seen) == 2)

    # Once the feed is back the loop switches to push
    feed.available = True
    await wait_until(lambda: loop.mode == "push")
    await loop.stop()


@pytest.mark.anyio
async def test_loop_recovers_after_subscription_failure(make_asset):
    source = FakeSource([make_asset("a")])
    feed = ChangeFeed()
    seen = []
    loop = SyncLoop(source.fetch_all, feed, seen.append, poll_interval=0.01, receive_timeout=0.01)

    loop.start()
    await wait_until(lambda: loop.mode == "push" and feed.subscriber_count == 1)
    calls_before = source.calls

    feed.fail("dropped")

    # One poll cycle, then a fresh subscription
    await wait_until(lambda: source.calls > calls_before and feed.subscriber_count == 1)
    await loop.stop()


@pytest.mark.anyio
async def test_fetch_failure_keeps_loop_alive(make_asset):
    source = FakeSource([make_asset("a")])
    source.fail = True
    feed = ChangeFeed()
    feed.available = False
    seen = []
    loop = SyncLoop(source.fetch_all, feed, seen.append, poll_interval=0.01)

    loop.start()
    await wait_until(lambda: source.calls >= 2)
    assert seen == []

    source.fail = False
    await wait_until(lambda: len(seen) == 1)
    await loop.stop()


@pytest.mark.anyio
async def test_async_on_change(make_asset):
    source = FakeSource([make_asset("a")])
    delivered = asyncio.Event()

    async def on_change(assets):
        delivered.set()

    loop = SyncLoop(source.fetch_all, ChangeFeed(), on_change, poll_interval=10, receive_timeout=0.01)
    assert await loop.refresh()
    assert delivered.is_set()
    assert not await loop.refresh()
