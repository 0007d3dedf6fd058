"""Latest rendered state of a live dashboard.

Holds no authoritative data: records are replaced wholesale by snapshot
events and upserted by id for every other event.
"""

import threading
from typing import Dict, Iterable, List, Optional

from .aggregator import OrderSummary, aggregate
from .change_feed import ChangeFeed, FeedEvent, Subscription
from .ledger_store import OrderRecord


class DashboardView:
    def __init__(self, records: Iterable[OrderRecord] = (), unit_price: int = 25):
        self._unit_price = unit_price
        self._lock = threading.Lock()
        self._records: Dict[str, OrderRecord] = {r.id: r for r in records}
        self._subscription: Optional[Subscription] = None
        self.last_seq = 0

    @classmethod
    def attach(cls, feed: ChangeFeed, unit_price: int) -> "DashboardView":
        view = cls(unit_price=unit_price)
        # events wait on the lock until the initial snapshot is in place
        with view._lock:
            sub, records = feed.subscribe(callback=view.apply)
            view._records = {r.id: r for r in records}
            view.last_seq = sub.snapshot_seq
            view._subscription = sub
        return view

    def apply(self, event: FeedEvent) -> None:
        with self._lock:
            if event.kind == "snapshot":
                self._records = {r.id: r for r in event.records}
            elif event.record is not None:
                self._records[event.record.id] = event.record
            self.last_seq = max(self.last_seq, event.seq)

    def records(self) -> List[OrderRecord]:
        with self._lock:
            rows = list(self._records.values())
        rows.sort(key=lambda r: (r.created_at, r.seq), reverse=True)
        return rows

    def summary(self) -> OrderSummary:
        return aggregate(self.records(), self._unit_price)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
