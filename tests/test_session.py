import json
import tempfile
import unittest
from pathlib import Path

from seating_planner.config import load_settings
from seating_planner.editor import SeatingEditor
from seating_planner.models import ArrangementData, Guest
from seating_planner.notifications import NotificationLog, Severity
from seating_planner.realtime import ArrangementChannel
from seating_planner.session import AutoSaver, EditorSession
from seating_planner.storage import LocalCache
from seating_planner.store import ArrangementStore, UnavailableTable

from tests.test_store import FakeClock, _BrokenTable, memory_table


GUESTS = ["Ann Lee", "Ben Ito", "Cara Diaz"]


def _session(store, cache=None):
    log = NotificationLog()
    session = EditorSession(SeatingEditor(notifier=log), store, cache, guest_names=GUESTS)
    return session, log


class TestLoad(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.cache_path = Path(self.tmp.name) / "seating_arrangement.json"
        self.store = ArrangementStore(memory_table(), clock=FakeClock())

    def tearDown(self):
        self.tmp.cleanup()

    def test_default_when_nothing_saved(self):
        session, log = _session(self.store, LocalCache(self.cache_path))
        self.assertEqual(session.load(), "default")
        self.assertEqual([g.id for g in session.editor.data.guests], ["guest-0", "guest-1", "guest-2"])
        self.assertEqual(session.editor.data.tables, [])
        self.assertEqual(log.items, [])

    def test_remote_wins(self):
        first, _ = _session(self.store)
        first.load()
        first.editor.add_table(table_id="T1", seat_count=2)
        self.assertTrue(first.save())

        second, log = _session(self.store, LocalCache(self.cache_path))
        self.assertEqual(second.load(), "remote")
        self.assertEqual(second.version, 1)
        self.assertEqual(second.arrangement_id, first.arrangement_id)
        self.assertFalse(second.dirty)
        self.assertEqual(log.titles(Severity.success), ["Arrangement loaded"])

    def test_cache_with_legacy_keys_when_offline(self):
        self.cache_path.write_text(
            json.dumps(
                {
                    "tables": [{"id": "T1", "name": "Old", "seats": 2, "type": "rectangle"}],
                    "seats": [
                        {"id": "T1-seat-0", "tableId": "T1", "index": 0, "guestId": "guest-9"},
                        {"id": "T1-seat-1", "tableId": "T1", "index": 1},
                    ],
                    "guests": [{"id": "guest-9", "name": "Zed Cole"}, {"id": "guest-1", "name": "Renamed"}],
                }
            ),
            encoding="utf-8",
        )
        session, log = _session(ArrangementStore(UnavailableTable()), LocalCache(self.cache_path))
        self.assertEqual(session.load(), "cache")
        data = session.editor.data
        self.assertEqual(data.table("T1").seat_count, 2)
        self.assertEqual(data.seat_of("guest-9").id, "T1-seat-0")
        self.assertEqual([g.id for g in data.guests], ["guest-9", "guest-1", "guest-0", "guest-2"])
        self.assertEqual(data.guest("guest-1").name, "Renamed")
        self.assertEqual(log.titles(Severity.warning), ["Cloud storage unavailable"])
        self.assertIsNone(session.arrangement_id)

    def test_failing_database_warns_and_uses_cache(self):
        LocalCache(self.cache_path).save(ArrangementData(guests=[Guest(id="guest-0", name="Ann Lee")]))
        session, log = _session(ArrangementStore(_BrokenTable()), LocalCache(self.cache_path))
        with self.assertLogs("seating_planner.store", level="ERROR"):
            self.assertEqual(session.load(), "cache")
        self.assertEqual(log.titles(Severity.warning), ["Cloud storage unavailable"])

    def test_malformed_cache_is_dropped(self):
        self.cache_path.write_text("{not json", encoding="utf-8")
        session, log = _session(self.store, LocalCache(self.cache_path))
        with self.assertLogs("seating_planner.session", level="ERROR"):
            self.assertEqual(session.load(), "default")
        self.assertFalse(self.cache_path.exists())
        self.assertEqual(log.titles(Severity.error), ["Error loading saved data"])
        self.assertEqual(len(session.editor.data.guests), 3)


class TestSave(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = ArrangementStore(memory_table(), clock=FakeClock())

    def tearDown(self):
        self.tmp.cleanup()

    def test_nothing_to_save_without_tables(self):
        cache = LocalCache(Path(self.tmp.name) / "cache.json")
        session, _ = _session(self.store, cache)
        session.load()
        self.assertFalse(session.save())
        # the local copy is still written
        self.assertTrue(cache.exists())
        self.assertIsNone(self.store.fetch_latest())

    def test_first_save_sets_baseline_then_versioned(self):
        session, log = _session(self.store)
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        self.assertTrue(session.dirty)
        self.assertTrue(session.save())
        self.assertEqual(session.version, 1)
        self.assertFalse(session.dirty)

        session.editor.assign("guest-0", "T1-seat-0")
        self.assertTrue(session.save())
        self.assertEqual(session.version, 2)
        self.assertEqual(self.store.fetch_latest().data.seat("T1-seat-0").guest_id, "guest-0")
        self.assertEqual(log.titles(Severity.success).count("Arrangement saved"), 2)

    def test_conflict_discards_local_changes(self):
        a, _ = _session(self.store)
        a.load()
        a.editor.add_table(table_id="T1", seat_count=2)
        a.save()
        b, b_log = _session(self.store)
        b.load()

        a.editor.assign("guest-0", "T1-seat-0")
        self.assertTrue(a.save())

        b.editor.assign("guest-1", "T1-seat-0")
        self.assertFalse(b.save())
        self.assertIn("Seating chart was updated by another device", b_log.titles(Severity.warning))
        self.assertEqual(b.version, 2)
        self.assertEqual(b.editor.data.seat("T1-seat-0").guest_id, "guest-0")
        self.assertFalse(b.dirty)
        self.assertEqual(self.store.fetch_latest().data.seat("T1-seat-0").guest_id, "guest-0")

    def test_force_save_overwrites(self):
        a, _ = _session(self.store)
        a.load()
        a.editor.add_table(table_id="T1", seat_count=2)
        a.save()
        b, _ = _session(self.store)
        b.load()
        a.editor.assign("guest-0", "T1-seat-0")
        a.save()

        b.editor.assign("guest-2", "T1-seat-1")
        self.assertTrue(b.force_save())
        latest = self.store.fetch_latest()
        self.assertEqual(latest.version, 3)
        self.assertIsNone(latest.data.seat("T1-seat-0").guest_id)
        self.assertEqual(b.version, 3)

    def test_failed_save_reports_error(self):
        session, log = _session(ArrangementStore(UnavailableTable()))
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        self.assertFalse(session.save())
        self.assertEqual(log.titles(Severity.error), ["Error saving arrangement"])
        self.assertTrue(session.dirty)

    def test_cache_written_when_remote_save_fails(self):
        cache = LocalCache(Path(self.tmp.name) / "cache.json")
        session, _ = _session(ArrangementStore(UnavailableTable()), cache)
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        session.editor.assign("guest-0", "T1-seat-0")
        self.assertFalse(session.save())
        self.assertEqual(cache.load().seat("T1-seat-0").guest_id, "guest-0")

    def test_force_save_writes_cache(self):
        cache = LocalCache(Path(self.tmp.name) / "cache.json")
        session, _ = _session(self.store, cache)
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        session.editor.assign("guest-1", "T1-seat-1")
        self.assertTrue(session.force_save())
        self.assertEqual(cache.load().seat("T1-seat-1").guest_id, "guest-1")
        self.assertEqual(session.version, 1)

    def test_force_save_skips_remote_without_tables(self):
        cache = LocalCache(Path(self.tmp.name) / "cache.json")
        session, log = _session(self.store, cache)
        session.load()
        self.assertFalse(session.force_save())
        self.assertTrue(cache.exists())
        self.assertIsNone(self.store.fetch_latest())
        self.assertEqual(log.items, [])


class TestAssign(unittest.TestCase):
    def setUp(self):
        self.store = ArrangementStore(memory_table(), clock=FakeClock())

    def test_no_arrangement(self):
        session, log = _session(self.store)
        session.load()
        res = session.assign("T1-seat-0", "guest-0")
        self.assertFalse(res.success)
        self.assertEqual(log.titles(Severity.error), ["No seating arrangement found"])

    def test_assign_swap_and_clear(self):
        session, _ = _session(self.store)
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        session.save()

        self.assertTrue(session.assign("T1-seat-0", "guest-0").success)
        self.assertTrue(session.assign("T1-seat-1", "guest-1").success)
        res = session.assign("T1-seat-1", "guest-0")
        self.assertTrue(res.success)
        self.assertEqual(res.latest.version, 4)
        stored = self.store.fetch_latest().data
        self.assertEqual(stored.seat("T1-seat-1").guest_id, "guest-0")
        self.assertEqual(stored.seat("T1-seat-0").guest_id, "guest-1")

        self.assertTrue(session.assign("T1-seat-0", None).success)
        self.assertIsNone(self.store.fetch_latest().data.seat("T1-seat-0").guest_id)

    def test_stale_assign_reloads(self):
        a, _ = _session(self.store)
        a.load()
        a.editor.add_table(table_id="T1", seat_count=2)
        a.save()
        b, b_log = _session(self.store)
        b.load()
        a.assign("T1-seat-0", "guest-0")

        res = b.assign("T1-seat-1", "guest-1")
        self.assertTrue(res.conflict)
        self.assertEqual(b.editor.data.seat("T1-seat-0").guest_id, "guest-0")
        self.assertIsNone(self.store.fetch_latest().data.seat("T1-seat-1").guest_id)
        self.assertIn("Seating chart was updated by another device", b_log.titles())


class TestRealtime(unittest.TestCase):
    def setUp(self):
        self.channel = ArrangementChannel()
        self.store = ArrangementStore(memory_table(), clock=FakeClock(), channel=self.channel)
        self.a, self.a_log = _session(self.store)
        self.a.load()
        self.a.editor.add_table(table_id="T1", seat_count=2)
        self.a.save()
        self.b, self.b_log = _session(self.store)
        self.b.load()
        self.b.connect(self.channel)

    def tearDown(self):
        self.b.disconnect()

    def test_remote_update_applied(self):
        self.a.editor.assign("guest-0", "T1-seat-0")
        self.a.save()
        self.assertEqual(self.b.version, 2)
        self.assertEqual(self.b.editor.data.seat("T1-seat-0").guest_id, "guest-0")
        self.assertIn("Seating arrangement updated", self.b_log.titles(Severity.info))

    def test_remote_update_over_local_changes_warns(self):
        self.b.editor.assign("guest-2", "T1-seat-1")
        self.a.editor.assign("guest-0", "T1-seat-0")
        self.a.save()
        self.assertIsNone(self.b.editor.data.seat("T1-seat-1").guest_id)
        self.assertIn("Local changes discarded", self.b_log.titles(Severity.warning))

    def test_own_save_is_not_reapplied(self):
        self.b.editor.assign("guest-1", "T1-seat-1")
        self.b_log.clear()
        self.assertTrue(self.b.save())
        self.assertEqual(self.b.version, 2)
        self.assertNotIn("Seating arrangement updated", self.b_log.titles())

    def test_disconnect_stops_updates(self):
        self.b.disconnect()
        self.a.editor.assign("guest-0", "T1-seat-0")
        self.a.save()
        self.assertEqual(self.b.version, 1)


class TestAutoSaver(unittest.TestCase):
    def test_poll_saves_on_interval(self):
        now = [0.0]
        session, log = _session(ArrangementStore(memory_table(), clock=FakeClock()))
        session.load()
        saver = AutoSaver(session, interval=30, clock=lambda: now[0])

        now[0] = 10
        self.assertFalse(saver.poll())
        now[0] = 31
        # no tables yet
        self.assertFalse(saver.poll())

        session.editor.add_table(table_id="T1", seat_count=2)
        now[0] = 45
        self.assertFalse(saver.due())
        now[0] = 62
        self.assertTrue(saver.poll())
        self.assertFalse(saver.saving)
        self.assertEqual(session.version, 1)
        # silent saves do not notify
        self.assertEqual(log.items, [])

    def test_interval_from_settings(self):
        now = [0.0]
        session, _ = _session(ArrangementStore(memory_table(), clock=FakeClock()))
        session.load()
        session.editor.add_table(table_id="T1", seat_count=2)
        settings = load_settings({"SEATING_AUTOSAVE_SECONDS": "5"})
        saver = AutoSaver.from_settings(session, settings, clock=lambda: now[0])
        self.assertEqual(saver.interval, 5.0)
        now[0] = 4
        self.assertFalse(saver.poll())
        now[0] = 5
        self.assertTrue(saver.poll())


if __name__ == "__main__":
    unittest.main()
