import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from seating_planner.db import SqlArrangementTable, init_db, make_engine
from seating_planner.models import ArrangementData, Guest, Seat, Table, utc_now
from seating_planner.realtime import ArrangementChannel
from seating_planner.store import ArrangementStore, BackendUnavailable, UnavailableTable


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def sample_data(guest_on_first_seat=None):
    return ArrangementData(
        tables=[Table(id="T1", name="Table 1", seat_count=2)],
        seats=[
            Seat(id="T1-seat-0", table_id="T1", position=0, guest_id=guest_on_first_seat),
            Seat(id="T1-seat-1", table_id="T1", position=1),
        ],
        guests=[Guest(id="g1", name="Ann"), Guest(id="g2", name="Ben")],
    )


def memory_table() -> SqlArrangementTable:
    engine = make_engine("sqlite://")
    init_db(engine)
    return SqlArrangementTable(engine)


class _BrokenTable:
    available = True

    def latest(self):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    get = recent = latest

    def update(self, *args, **kwargs):
        raise OperationalError("UPDATE", {}, Exception("connection refused"))

    insert = delete = update


class TestArrangementStore(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.table = memory_table()
        self.events = []
        channel = ArrangementChannel()
        channel.subscribe(self.events.append)
        self.store = ArrangementStore(self.table, clock=self.clock, channel=channel)

    def test_fetch_latest_empty(self):
        self.assertIsNone(self.store.fetch_latest())

    def test_save_creates_then_overwrites_single_row(self):
        self.assertTrue(self.store.save(sample_data()))
        first = self.store.fetch_latest()
        self.assertEqual(first.version, 1)
        self.assertEqual(first.name, "Wedding Seating Chart")

        self.assertTrue(self.store.save(sample_data("g1"), silent=True))
        second = self.store.fetch_latest()
        self.assertEqual(second.id, first.id)
        self.assertEqual(second.version, 2)
        self.assertGreater(second.updated_at, first.updated_at)
        self.assertEqual(second.data.seats[0].guest_id, "g1")
        self.assertEqual(len(self.table.recent()), 1)
        self.assertEqual([e.version for e in self.events], [1, 2])

    def test_save_with_version_applies_and_increments(self):
        self.store.save(sample_data())
        current = self.store.fetch_latest()
        res = self.store.save_with_version(sample_data("g2"), current.id, current.version)
        self.assertTrue(res.success)
        self.assertFalse(res.conflict)
        self.assertEqual(res.latest.version, current.version + 1)
        self.assertEqual(self.store.fetch_latest().data.seats[0].guest_id, "g2")

    def test_stale_version_conflicts_without_writing(self):
        self.store.save(sample_data())
        current = self.store.fetch_latest()
        self.store.save_with_version(sample_data("g1"), current.id, current.version)
        events_before = len(self.events)

        res = self.store.save_with_version(sample_data("g2"), current.id, current.version)
        self.assertFalse(res.success)
        self.assertTrue(res.conflict)
        self.assertEqual(res.latest.version, current.version + 1)
        self.assertEqual(res.latest.data.seats[0].guest_id, "g1")
        self.assertEqual(self.store.fetch_latest().data.seats[0].guest_id, "g1")
        self.assertEqual(len(self.events), events_before)

    def test_unknown_id_is_a_conflict(self):
        self.store.save(sample_data())
        res = self.store.save_with_version(sample_data(), "missing", 1)
        self.assertTrue(res.conflict)
        self.assertIsNotNone(res.latest)

    def test_prunes_beyond_retention(self):
        ids = [self.table.insert(name=f"old {i}", data={}, now=self.clock())["id"] for i in range(12)]
        self.assertTrue(self.store.save(sample_data()))
        remaining = [r["id"] for r in self.table.recent()]
        self.assertEqual(len(remaining), 10)
        # the newest row was updated in place; the two oldest are gone
        self.assertEqual(remaining[0], ids[-1])
        self.assertNotIn(ids[0], remaining)
        self.assertNotIn(ids[1], remaining)

    def test_list_recent(self):
        self.store.save(sample_data())
        summaries = self.store.list_recent(5)
        self.assertEqual(len(summaries), 1)
        self.assertEqual(summaries[0].version, 1)

    def test_malformed_row_reads_as_absent(self):
        self.table.insert(name="bad", data={"tables": [{"id": "x"}]}, now=self.clock())
        self.assertIsNone(self.store.fetch_latest())


class TestStoreFailures(unittest.TestCase):
    def test_unavailable_variant(self):
        store = ArrangementStore(UnavailableTable("offline"))
        self.assertFalse(store.available)
        self.assertIsNone(store.fetch_latest())
        self.assertFalse(store.save(sample_data()))
        res = store.save_with_version(sample_data(), "id", 1)
        self.assertEqual((res.success, res.conflict, res.latest), (False, False, None))
        self.assertEqual(store.list_recent(), [])
        with self.assertRaises(BackendUnavailable):
            UnavailableTable("offline").latest()

    def test_database_errors_are_swallowed(self):
        store = ArrangementStore(_BrokenTable())
        self.assertTrue(store.available)
        self.assertIsNone(store.fetch_latest())
        self.assertFalse(store.save(sample_data(), silent=True))
        self.assertFalse(store.save_with_version(sample_data(), "id", 1).success)
        self.assertIsInstance(store.last_error, OperationalError)

    def test_last_error_clears_after_a_good_fetch(self):
        store = ArrangementStore(_BrokenTable())
        store.fetch_latest()
        self.assertIsNotNone(store.last_error)
        store.table = memory_table()
        store.fetch_latest()
        self.assertIsNone(store.last_error)


class TestDefaultClock(unittest.TestCase):
    def test_writes_with_real_clock(self):
        store = ArrangementStore(memory_table())
        self.assertTrue(store.save(sample_data()))
        first = store.fetch_latest()
        self.assertEqual(first.version, 1)
        res = store.save_with_version(sample_data("g1"), first.id, first.version)
        self.assertTrue(res.success)
        self.assertEqual(res.latest.version, 2)
        self.assertGreaterEqual(res.latest.updated_at, first.updated_at)

    def test_utc_now_is_timezone_aware(self):
        self.assertEqual(utc_now().utcoffset(), timedelta(0))


if __name__ == "__main__":
    unittest.main()
