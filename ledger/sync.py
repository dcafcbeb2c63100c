# ledger/sync.py
"""
Change notification and the synchronization loop.

ChangeFeed is the push channel: writers publish ChangeEvents, readers hold a
Subscription and await `receive(timeout)`. SyncLoop keeps a consumer's view
fresh: it listens on a subscription and re-fetches the whole set on every
notification, and polls at a fixed interval whenever no subscription is
established. The loop is a single task, so push and poll never run at the
same time.
"""
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from ledger.models import Asset

logger = logging.getLogger(__name__)

ASSETS_COLLECTION = "assets"
ALL_EVENTS = frozenset({"insert", "update", "delete"})


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    event: str
    record_id: str | None = None


class SubscriptionClosed(Exception):
    """The subscription was closed or the channel failed."""
    pass


class FeedUnavailableError(Exception):
    """The change feed cannot accept subscriptions right now."""
    pass


_CLOSED = object()


class Subscription:
    def __init__(self, feed: "ChangeFeed", collection: str, events: frozenset[str]):
        self._feed = feed
        self.collection = collection
        self.events = events
        self._queue: asyncio.Queue = asyncio.Queue()
        self._error: str | None = None
        self.established = True
        self.closed = False

    def _matches(self, event: ChangeEvent) -> bool:
        return event.collection == self.collection and event.event in self.events

    def _deliver(self, event: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def _fail(self, reason: str) -> None:
        self._error = reason
        self.established = False
        self._queue.put_nowait(_CLOSED)

    async def receive(self, timeout: float) -> ChangeEvent | None:
        """
        Next change notification, or None if nothing arrived within `timeout`.

        Raises:
            SubscriptionClosed: the subscription was closed or failed
        """
        if self.closed:
            raise SubscriptionClosed("Subscription is closed")
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            raise SubscriptionClosed(self._error or "Subscription is closed")
        return item

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.established = False
        self._feed._remove(self)
        self._queue.put_nowait(_CLOSED)


class ChangeFeed:
    """In-process publish/subscribe channel for record changes."""

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self.available = True

    def subscribe(self, collection: str, events: Iterable[str] = ALL_EVENTS) -> Subscription:
        if not self.available:
            raise FeedUnavailableError("Change feed is unavailable")
        subscription = Subscription(self, collection, frozenset(events))
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s (%d active)", collection, len(self._subscriptions))
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription._matches(event):
                subscription._deliver(event)

    def fail(self, reason: str) -> None:
        """Drop every active subscription with an error."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription._fail(reason)

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


def fingerprint(assets: list[Asset]) -> str:
    """Concatenated updated_at values; changes whenever any record is rewritten."""
    return "|".join(asset.updated_at.isoformat() for asset in assets)


class SyncLoop:
    """
    Keep a view of the asset set in sync with the store.

    `on_change` is called with the full set whenever its fingerprint differs
    from the last one delivered, including once after the first fetch.
    """

    def __init__(
        self,
        fetch_all: Callable[[], Awaitable[list[Asset]]],
        feed: ChangeFeed,
        on_change: Callable[[list[Asset]], object],
        poll_interval: float = 5.0,
        receive_timeout: float = 1.0,
        collection: str = ASSETS_COLLECTION,
    ):
        self.fetch_all = fetch_all
        self.feed = feed
        self.on_change = on_change
        self.poll_interval = poll_interval
        self.receive_timeout = receive_timeout
        self.collection = collection

        self.mode: str | None = None  # "push" or "poll" while running
        self._fingerprint: str | None = None
        self._subscription: Subscription | None = None
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop polling and release the subscription."""
        self._stop_event.set()
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None:
            await self._task
            self._task = None
        self.mode = None

    async def run(self) -> None:
        await self.refresh()
        while not self._stop_event.is_set():
            subscription = self._try_subscribe()
            if subscription is None:
                await self._poll_once()
                continue

            self._subscription = subscription
            try:
                await self._consume(subscription)
            except SubscriptionClosed as exc:
                if self._stop_event.is_set():
                    break
                logger.warning("Change subscription lost (%s); polling resumes", exc)
                await self._poll_once()
            finally:
                subscription.close()
                self._subscription = None

    def _try_subscribe(self) -> Subscription | None:
        try:
            return self.feed.subscribe(self.collection)
        except FeedUnavailableError:
            logger.debug("Change feed unavailable, polling every %.2fs", self.poll_interval)
            return None

    async def _consume(self, subscription: Subscription) -> None:
        self.mode = "push"
        while not self._stop_event.is_set():
            event = await subscription.receive(timeout=self.receive_timeout)
            if event is None:
                continue
            logger.debug("Change notification: %s %s", event.event, event.record_id)
            await self.refresh()

    async def _poll_once(self) -> None:
        self.mode = "poll"
        try:
            await asyncio.wait_for(self._stop_event.wait(), self.poll_interval)
        except asyncio.TimeoutError:
            await self.refresh()

    async def refresh(self) -> bool:
        """Fetch the set; deliver it if the fingerprint moved. Returns True if delivered."""
        try:
            assets = await self.fetch_all()
        except Exception:
            logger.exception("Sync fetch failed")
            return False

        current = fingerprint(assets)
        if current == self._fingerprint:
            return False
        self._fingerprint = current

        result = self.on_change(assets)
        if inspect.isawaitable(result):
            await result
        return True
