from .ledger_store import LedgerStore, OrderRecord


class ToggleService:
    """Flips an order's paid flag from the caller's point of view.

    The caller passes the value it currently displays and the negation of
    that value is written. Two callers acting on the same stale value both
    end up writing the same flag instead of flipping it back. Callers should
    re-read the record (or wait for the feed) to learn the stored value.
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    def toggle(self, order_id: str, current_paid: bool) -> OrderRecord:
        return self._store.set_paid(order_id, not bool(current_paid))
