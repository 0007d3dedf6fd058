"""Change feed: pushes every ledger commit to live subscribers.

Each subscription owns a bounded buffer. Publishing never waits: when a
buffer overflows its pending events are replaced by a single resync marker,
which the subscriber receives as a fresh full snapshot. Delivery is
therefore at-least-once and gap-free, and applying events by order id is
idempotent.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple
from uuid import uuid4

from .ledger_store import LedgerStore, OrderRecord
from .logging import log_event


logger = logging.getLogger(__name__)

_RESYNC = object()
_CLOSED = object()


@dataclass(frozen=True)
class FeedEvent:
    seq: int
    kind: str  # "snapshot" | "created" | "paid_changed"
    record: Optional[OrderRecord] = None
    records: Tuple[OrderRecord, ...] = ()

    def to_dict(self) -> dict:
        data = {"seq": self.seq, "kind": self.kind}
        if self.kind == "snapshot":
            data["orders"] = [r.to_dict() for r in self.records]
        else:
            data["order"] = self.record.to_dict() if self.record else None
        return data


class Subscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(
        self,
        feed: "ChangeFeed",
        buffer_size: int,
        callback: Optional[Callable[[FeedEvent], None]] = None,
    ) -> None:
        self.id = uuid4().hex
        self.snapshot_seq = 0
        self._feed = feed
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max(1, buffer_size))
        self._lock = threading.Lock()
        self._closed = False
        self._callback = callback
        self._thread: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: FeedEvent) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._queue.put_nowait(event)
            except queue.Full:
                self._drain()
                self._queue.put_nowait(_RESYNC)
                log_event("warning", "feed.resync", subscription_id=self.id, seq=event.seq)

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def get(self, timeout: Optional[float] = None) -> Optional[FeedEvent]:
        """Next event, or None on timeout or once the subscription is closed."""
        if self._closed:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED or self._closed:
            return None
        if item is _RESYNC:
            return self._feed._resync_event()
        return item

    def __iter__(self) -> Iterator[FeedEvent]:
        while not self._closed:
            event = self.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        self._feed.unsubscribe(self)

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _start(self) -> None:
        self._thread = threading.Thread(
            target=self._dispatch, name=f"feed-{self.id[:8]}", daemon=True
        )
        self._thread.start()

    def _dispatch(self) -> None:
        while True:
            event = self.get()
            if event is None:
                return
            try:
                self._callback(event)
            except Exception:
                logger.exception("feed subscriber %s failed on seq %s", self.id, event.seq)
                log_event("error", "feed.subscriber_failed", subscription_id=self.id, seq=event.seq)

    def _shutdown(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._drain()
            # wake a blocked reader; the queue was just emptied
            self._queue.put_nowait(_CLOSED)
        return True


class ChangeFeed:
    """In-process broadcast of ledger commits."""

    def __init__(self, store: LedgerStore, buffer_size: int = 256) -> None:
        self._store = store
        self._buffer_size = buffer_size
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Subscription] = {}
        store.add_listener(self._publish)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(
        self, callback: Optional[Callable[[FeedEvent], None]] = None
    ) -> Tuple[Subscription, Tuple[OrderRecord, ...]]:
        """Register a subscriber and return it with the initial snapshot.

        Every commit after the snapshot is delivered, none before it. With a
        ``callback`` a daemon thread delivers events; otherwise read them
        with :meth:`Subscription.get` or by iterating the subscription.
        """
        sub = Subscription(self, self._buffer_size, callback)
        with self._store.quiesce() as seq:
            records = self._store.snapshot()
            sub.snapshot_seq = seq
            with self._lock:
                self._subscriptions[sub.id] = sub
        if callback is not None:
            sub._start()
        log_event("info", "feed.subscribed", subscription_id=sub.id, seq=seq, orders=len(records))
        return sub, records

    def unsubscribe(self, sub: Subscription) -> None:
        """Stop deliveries to ``sub``. Idempotent, callable from any thread."""
        with self._lock:
            self._subscriptions.pop(sub.id, None)
        if sub._shutdown():
            log_event("info", "feed.unsubscribed", subscription_id=sub.id)

    def close(self) -> None:
        self._store.remove_listener(self._publish)
        with self._lock:
            subs = list(self._subscriptions.values())
        for sub in subs:
            self.unsubscribe(sub)

    def _publish(self, seq: int, kind: str, record: OrderRecord) -> None:
        event = FeedEvent(seq=seq, kind=kind, record=record)
        with self._lock:
            subs = list(self._subscriptions.values())
        for sub in subs:
            sub._offer(event)

    def _resync_event(self) -> FeedEvent:
        with self._store.quiesce() as seq:
            records = self._store.snapshot()
        return FeedEvent(seq=seq, kind="snapshot", records=records)
