"""Ledger store: the single owned collection of order records.

Records are created once and only their ``paid`` flag changes afterwards.
Every successful commit is handed to the registered listeners (the change
feed) while the store-wide commit lock is still held, so listeners observe
commits in the order they became durable. Listeners must not block.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..db.session import SessionFactory
from ..errors import NotFoundError, StoreUnavailableError
from ..models.order import SIZES, OrderRow
from ..utils.validators import clean_text, validate_order_fields
from .logging import log_event


logger = logging.getLogger(__name__)

Listener = Callable[[int, str, "OrderRecord"], None]


@dataclass(frozen=True)
class OrderDraft:
    """Unvalidated order input as typed into the form."""

    name: Any = ""
    sizes: Mapping[str, Any] = field(default_factory=dict)
    brand_request: Any = ""
    notes: Any = ""

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "OrderDraft":
        payload = payload or {}
        sizes = payload.get("sizes") or {}
        if not isinstance(sizes, Mapping):
            sizes = {}
        return cls(
            name=payload.get("name", ""),
            sizes=dict(sizes),
            brand_request=payload.get("brandRequest", payload.get("brand_request", "")),
            notes=payload.get("notes", ""),
        )

    def to_dict(self) -> dict:
        return {
            "name": "" if self.name is None else str(self.name),
            "sizes": dict(self.sizes),
            "brandRequest": "" if self.brand_request is None else str(self.brand_request),
            "notes": "" if self.notes is None else str(self.notes),
        }


@dataclass(frozen=True)
class OrderRecord:
    id: str
    seq: int
    name: str
    sizes: Dict[str, int]
    brand_request: str
    notes: str
    total_items: int
    paid: bool
    created_at: int
    submitter_ref: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sizes": dict(self.sizes),
            "brandRequest": self.brand_request,
            "notes": self.notes,
            "totalItems": self.total_items,
            "isPaid": self.paid,
            "timestamp": self.created_at,
            "userId": self.submitter_ref,
        }


def _to_record(row: OrderRow) -> OrderRecord:
    stored = row.sizes or {}
    return OrderRecord(
        id=row.id,
        seq=row.seq,
        name=row.name,
        sizes={s: int(stored.get(s, 0)) for s in SIZES},
        brand_request=row.brand_request or "",
        notes=row.notes or "",
        total_items=row.total_items,
        paid=bool(row.paid),
        created_at=row.created_at,
        submitter_ref=row.submitter_ref,
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


class LedgerStore:
    """Order records backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory: SessionFactory, clock: Callable[[], int] = _now_ms):
        self._session_factory = session_factory
        self._clock = clock
        self._commit_lock = threading.RLock()
        self._locks_guard = threading.Lock()
        self._record_locks: Dict[str, list] = {}
        self._listeners: List[Listener] = []
        self._commit_seq = 0
        self._last_created_at, self._last_seq = self._load_high_water()

    def _load_high_water(self) -> Tuple[int, int]:
        try:
            with self._session_factory() as session:
                created_at, seq = session.query(
                    func.max(OrderRow.created_at), func.max(OrderRow.seq)
                ).one()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("order store is not reachable") from exc
        return created_at or 0, seq or 0

    # -------------------- listeners --------------------

    def add_listener(self, listener: Listener) -> None:
        with self._commit_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._commit_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @contextmanager
    def quiesce(self) -> Iterator[int]:
        """Hold off commits; yields the sequence number of the last commit."""
        with self._commit_lock:
            yield self._commit_seq

    @property
    def commit_seq(self) -> int:
        return self._commit_seq

    def _notify(self, kind: str, record: OrderRecord) -> int:
        # caller holds the commit lock
        self._commit_seq += 1
        for listener in list(self._listeners):
            try:
                listener(self._commit_seq, kind, record)
            except Exception:
                logger.exception("ledger listener failed for commit %s", self._commit_seq)
        return self._commit_seq

    def _commit_and_notify(self, session, kind: str, record: OrderRecord) -> int:
        # only the commit itself and the hand-off are sequenced store-wide
        with self._commit_lock:
            session.commit()
            return self._notify(kind, record)

    @contextmanager
    def _record_lock(self, order_id: str) -> Iterator[None]:
        """Serialize writers of one record; the entry is dropped once unused."""
        with self._locks_guard:
            entry = self._record_locks.get(order_id)
            if entry is None:
                entry = self._record_locks[order_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._record_locks[order_id]

    # -------------------- writes --------------------

    def create(self, draft: OrderDraft, submitter_ref: str) -> OrderRecord:
        """Validate, commit and announce a new order."""
        name, sizes, total_items = validate_order_fields(draft.name, draft.sizes)
        with self._commit_lock:
            created_at = max(self._clock(), self._last_created_at)
            seq = self._last_seq + 1
            self._last_created_at, self._last_seq = created_at, seq
        row = OrderRow(
            id=uuid.uuid4().hex,
            seq=seq,
            name=name,
            sizes=sizes,
            brand_request=clean_text(draft.brand_request),
            notes=clean_text(draft.notes),
            total_items=total_items,
            paid=False,
            created_at=created_at,
            submitter_ref=submitter_ref,
        )
        record = _to_record(row)
        try:
            with self._session_factory() as session:
                session.add(row)
                session.flush()
                commit = self._commit_and_notify(session, "created", record)
        except SQLAlchemyError as exc:
            log_event("error", "store.unavailable", op="create", error=str(exc))
            raise StoreUnavailableError("Failed to submit order. Please try again.") from exc
        log_event(
            "info",
            "order.created",
            order_id=record.id,
            total_items=record.total_items,
            commit_seq=commit,
        )
        return record

    def set_paid(self, order_id: str, paid: bool) -> OrderRecord:
        """Replace the ``paid`` flag of one order."""
        return self._write_paid(order_id, lambda _current: bool(paid))

    def flip_paid(self, order_id: str) -> OrderRecord:
        """Negate the stored ``paid`` flag in one step."""
        return self._write_paid(order_id, lambda current: not current)

    def _write_paid(self, order_id: str, decide: Callable[[bool], bool]) -> OrderRecord:
        if not order_id:
            raise NotFoundError(order_id)
        with self._record_lock(order_id):
            try:
                with self._session_factory() as session:
                    row = session.get(OrderRow, order_id)
                    if row is None:
                        raise NotFoundError(order_id)
                    before = bool(row.paid)
                    row.paid = decide(before)
                    session.flush()
                    record = _to_record(row)
                    commit = self._commit_and_notify(session, "paid_changed", record)
            except SQLAlchemyError as exc:
                log_event("error", "store.unavailable", op="set_paid", order_id=order_id, error=str(exc))
                raise StoreUnavailableError("Failed to update paid status.") from exc
        log_event(
            "info",
            "order.paid_changed",
            order_id=order_id,
            paid=record.paid,
            was_paid=before,
            commit_seq=commit,
        )
        return record

    # -------------------- reads --------------------

    def get(self, order_id: str) -> OrderRecord:
        try:
            with self._session_factory() as session:
                row = session.get(OrderRow, order_id) if order_id else None
                if row is None:
                    raise NotFoundError(order_id)
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("order store is not reachable") from exc

    def snapshot(self) -> Tuple[OrderRecord, ...]:
        """All records, newest first (ties broken by insertion order)."""
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(OrderRow)
                    .order_by(OrderRow.created_at.desc(), OrderRow.seq.desc())
                    .all()
                )
                return tuple(_to_record(r) for r in rows)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("order store is not reachable") from exc

    def count(self) -> int:
        try:
            with self._session_factory() as session:
                return session.query(func.count(OrderRow.id)).scalar() or 0
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("order store is not reachable") from exc
