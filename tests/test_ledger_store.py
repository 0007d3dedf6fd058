import threading
import time
from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError

from common.errors import NotFoundError, StoreUnavailableError, ValidationError
from common.services.ledger_store import LedgerStore, OrderDraft


class FlakySessionFactory:
    """Wraps a session factory and fails on demand like a lost database."""

    def __init__(self, inner):
        self._inner = inner
        self.broken = False

    @contextmanager
    def __call__(self):
        if self.broken:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        with self._inner() as session:
            yield session


class SlowOnceSessionFactory:
    """Stalls the next session it opens until released."""

    def __init__(self, inner):
        self._inner = inner
        self.armed = False
        self.entered = threading.Event()
        self.release = threading.Event()

    @contextmanager
    def __call__(self):
        if self.armed:
            self.armed = False
            self.entered.set()
            self.release.wait(5)
        with self._inner() as session:
            yield session


class TestCreate:
    def test_total_items_matches_sizes(self, store, make_draft):
        record = store.create(make_draft("  Alice  ", S=2, M=1, XXL=4), "ref-1")
        assert record.name == "Alice"
        assert record.total_items == sum(record.sizes.values()) == 7
        assert record.paid is False
        assert record.submitter_ref == "ref-1"
        assert set(record.sizes) == {"S", "M", "L", "XL", "XXL"}

    def test_optional_text_trimmed(self, store, make_draft):
        record = store.create(make_draft("Bo", brand_request="  gildan ", notes=" fast ", L=1), "r")
        assert record.brand_request == "gildan"
        assert record.notes == "fast"

    @pytest.mark.parametrize(
        "draft, field",
        [
            (OrderDraft(name="   ", sizes={"S": 1}), "name"),
            (OrderDraft(name="Zed", sizes={}), "sizes"),
            (OrderDraft(name="Zed", sizes={"S": -4, "M": 0}), "sizes"),
            (OrderDraft(name="Big", sizes={"S": 10**30}), "sizes"),
        ],
    )
    def test_rejected_drafts_are_not_stored(self, store, draft, field):
        with pytest.raises(ValidationError) as exc:
            store.create(draft, "ref")
        assert exc.value.field == field
        assert store.snapshot() == ()
        assert store.count() == 0

    def test_ids_unique(self, store, make_draft):
        ids = {store.create(make_draft(f"N{i}", S=1), "r").id for i in range(20)}
        assert len(ids) == 20

    def test_round_trip_through_lookup(self, store, make_draft):
        created = store.create(make_draft("Look", XL=2), "r")
        assert store.get(created.id) == created

    def test_get_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            store.get("missing")


class TestOrdering:
    def test_snapshot_newest_first(self, session_factory, make_draft):
        ticks = iter([1000, 2000, 3000])
        store = LedgerStore(session_factory, clock=lambda: next(ticks))
        a = store.create(make_draft("A", S=1), "r")
        b = store.create(make_draft("B", S=1), "r")
        c = store.create(make_draft("C", S=1), "r")
        assert [r.id for r in store.snapshot()] == [c.id, b.id, a.id]

    def test_ties_broken_by_insertion_order(self, session_factory, make_draft):
        store = LedgerStore(session_factory, clock=lambda: 5000)
        first = store.create(make_draft("First", S=1), "r")
        second = store.create(make_draft("Second", S=1), "r")
        assert first.created_at == second.created_at
        assert [r.id for r in store.snapshot()] == [second.id, first.id]

    def test_created_at_never_goes_backwards(self, session_factory, make_draft):
        ticks = iter([9000, 4000, 7000])
        store = LedgerStore(session_factory, clock=lambda: next(ticks))
        stamps = [store.create(make_draft(f"T{i}", M=1), "r").created_at for i in range(3)]
        assert stamps == sorted(stamps)
        assert stamps == [9000, 9000, 9000]

    def test_reopened_store_continues_sequence(self, session_factory, make_draft):
        first = LedgerStore(session_factory, clock=lambda: 8000)
        old = first.create(make_draft("Old", S=1), "r")
        reopened = LedgerStore(session_factory, clock=lambda: 10)
        new = reopened.create(make_draft("New", S=1), "r")
        assert new.created_at >= old.created_at
        assert new.seq > old.seq
        assert reopened.snapshot()[0].id == new.id


class TestPaid:
    def test_set_paid_changes_only_paid(self, store, make_draft):
        created = store.create(make_draft("Pay", S=1, notes="n"), "r")
        updated = store.set_paid(created.id, True)
        assert updated.paid is True
        assert updated.total_items == created.total_items
        assert updated.sizes == created.sizes
        assert updated.created_at == created.created_at
        assert updated.notes == created.notes
        assert store.get(created.id).paid is True

    def test_set_paid_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            store.set_paid("nope", True)
        with pytest.raises(NotFoundError):
            store.set_paid("", True)

    def test_concurrent_flips_lose_no_updates(self, store, make_draft):
        record = store.create(make_draft("Race", S=1), "r")
        flips_per_thread, threads = 5, 8
        barrier = threading.Barrier(threads)

        def worker():
            barrier.wait()
            for _ in range(flips_per_thread):
                store.flip_paid(record.id)

        pool = [threading.Thread(target=worker) for _ in range(threads)]
        for t in pool:
            t.start()
        for t in pool:
            t.join()

        total = flips_per_thread * threads
        assert store.get(record.id).paid is bool(total % 2)

    def test_odd_number_of_flips(self, store, make_draft):
        record = store.create(make_draft("Odd", S=1), "r")
        for _ in range(3):
            store.flip_paid(record.id)
        assert store.get(record.id).paid is True

    def test_different_records_toggle_independently(self, store, make_draft):
        records = [store.create(make_draft(f"R{i}", S=1), "r") for i in range(6)]

        pool = [threading.Thread(target=store.set_paid, args=(r.id, True)) for r in records]
        for t in pool:
            t.start()
        for t in pool:
            t.join()

        assert all(r.paid for r in store.snapshot())

    def test_record_locks_released_after_use(self, store, make_draft):
        record = store.create(make_draft("Lk", S=1), "r")
        for i in range(50):
            with pytest.raises(NotFoundError):
                store.set_paid(f"missing-{i}", True)
        store.flip_paid(record.id)
        store.set_paid(record.id, False)
        assert store._record_locks == {}

    def test_slow_write_does_not_hold_up_other_records(self, session_factory, make_draft):
        slow = SlowOnceSessionFactory(session_factory)
        store = LedgerStore(slow)
        a = store.create(make_draft("A", S=1), "r")
        b = store.create(make_draft("B", S=1), "r")

        slow.armed = True
        stalled = threading.Thread(target=store.set_paid, args=(a.id, True))
        stalled.start()
        try:
            assert slow.entered.wait(2)
            started = time.monotonic()
            assert store.set_paid(b.id, True).paid is True
            assert time.monotonic() - started < 0.3
        finally:
            slow.release.set()
            stalled.join(2)
        assert store.get(a.id).paid is True


class TestUnavailable:
    def test_create_failure_surfaces_and_stores_nothing(self, session_factory, make_draft):
        flaky = FlakySessionFactory(session_factory)
        store = LedgerStore(flaky)
        seen = []
        store.add_listener(lambda seq, kind, record: seen.append(kind))

        flaky.broken = True
        with pytest.raises(StoreUnavailableError):
            store.create(make_draft("Lost", S=1), "r")
        assert seen == []

        flaky.broken = False
        assert store.snapshot() == ()
        store.create(make_draft("Kept", S=1), "r")
        assert seen == ["created"]

    def test_set_paid_failure(self, session_factory, make_draft):
        flaky = FlakySessionFactory(session_factory)
        store = LedgerStore(flaky)
        record = store.create(make_draft("X", S=1), "r")
        flaky.broken = True
        with pytest.raises(StoreUnavailableError):
            store.set_paid(record.id, True)
        flaky.broken = False
        assert store.get(record.id).paid is False

    def test_unavailable_is_not_retryable(self):
        assert StoreUnavailableError("x").retryable is False


class TestListeners:
    def test_failing_listener_does_not_fail_commit(self, store, make_draft):
        calls = []

        def boom(seq, kind, record):
            raise RuntimeError("listener down")

        store.add_listener(boom)
        store.add_listener(lambda seq, kind, record: calls.append((seq, kind)))
        record = store.create(make_draft("Safe", S=1), "r")
        store.set_paid(record.id, True)
        assert calls == [(1, "created"), (2, "paid_changed")]

    def test_quiesce_reports_last_commit(self, store, make_draft):
        with store.quiesce() as seq:
            assert seq == 0
        store.create(make_draft("Q", S=1), "r")
        with store.quiesce() as seq:
            assert seq == 1 == store.commit_seq
