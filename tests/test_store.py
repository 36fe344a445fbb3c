from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from sleeptracker import STORAGE_KEY, LoadResult, SleepEntry, SleepStore


def _entry(i: int, day: str = "2026-10-16", duration: int = 420) -> SleepEntry:
    return SleepEntry(id=f"id-{i}", date=day, sleep_time="23:00", wake_time="06:00", duration=duration)


class TestSleepStore(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.path = self.tmp / "data" / "sleep_history.json"
        self.store = SleepStore(self.path)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _write_raw(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(text, encoding="utf-8")

    def test_missing_file_is_empty_without_error(self) -> None:
        self.assertEqual(self.store.load(), LoadResult([], None))

    def test_round_trip_keeps_entries_and_order(self) -> None:
        entries = [_entry(1, "2026-10-16"), _entry(2, "2026-10-14", 390), _entry(3, "2026-10-16", 0)]
        self.assertTrue(self.store.save(entries))

        result = SleepStore(self.path).load()
        self.assertIsNone(result.error)
        self.assertEqual(result.entries, entries)

    def test_layout_is_single_key_with_camel_case_records(self) -> None:
        self.store.save([_entry(1)])
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(list(data.keys()), [STORAGE_KEY])
        self.assertEqual(
            data[STORAGE_KEY],
            [{"id": "id-1", "date": "2026-10-16", "sleepTime": "23:00", "wakeTime": "06:00", "duration": 420}],
        )

    def test_save_rewrites_everything(self) -> None:
        self.store.save([_entry(1), _entry(2)])
        self.store.save([_entry(3)])
        self.assertEqual(self.store.load().entries, [_entry(3)])
        self.assertFalse(self.path.with_name(self.path.name + ".tmp").exists())

    def test_reads_browser_style_records(self) -> None:
        self._write_raw(json.dumps({STORAGE_KEY: [
            {"id": "1760659200000", "date": "2026-10-16", "sleepTime": "22:00", "wakeTime": "06:00", "duration": 480},
        ]}))
        result = self.store.load()
        self.assertIsNone(result.error)
        self.assertEqual(result.entries[0].id, "1760659200000")
        self.assertEqual(result.entries[0].duration, 480)

    def test_missing_key_is_empty_without_error(self) -> None:
        self._write_raw(json.dumps({"somethingElse": []}))
        self.assertEqual(self.store.load(), LoadResult([], None))

    def test_corrupt_data_is_treated_as_empty(self) -> None:
        good = {"id": "a", "date": "2026-10-16", "sleepTime": "22:00", "wakeTime": "06:00", "duration": 480}
        cases = {
            "bad json": "{not json",
            "not an object": json.dumps([good]),
            "not a list": json.dumps({STORAGE_KEY: {"a": 1}}),
            "missing field": json.dumps({STORAGE_KEY: [{k: v for k, v in good.items() if k != "wakeTime"}]}),
            "negative duration": json.dumps({STORAGE_KEY: [dict(good, duration=-5)]}),
            "bool duration": json.dumps({STORAGE_KEY: [dict(good, duration=True)]}),
            "null duration": json.dumps({STORAGE_KEY: [dict(good, duration=None)]}),
            "bad date": json.dumps({STORAGE_KEY: [dict(good, date="16/10/2026")]}),
            "unpadded date": json.dumps({STORAGE_KEY: [dict(good, date="2026-10-5")]}),
            "record not an object": json.dumps({STORAGE_KEY: [good, "x"]}),
        }
        for name, text in cases.items():
            with self.subTest(case=name):
                self._write_raw(text)
                with self.assertLogs("sleeptracker", level="WARNING"):
                    result = self.store.load()
                self.assertEqual(result.entries, [])
                self.assertIsInstance(result.error, str)

    def test_write_failure_is_logged_not_raised(self) -> None:
        blocker = self.tmp / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = SleepStore(blocker / "sleep_history.json")

        with self.assertLogs("sleeptracker", level="ERROR"):
            self.assertFalse(store.save([_entry(1)]))

    def test_failed_replace_leaves_no_temp_file(self) -> None:
        with patch("sleeptracker.os.replace", side_effect=OSError("disk full")):
            with self.assertLogs("sleeptracker", level="ERROR"):
                self.assertFalse(self.store.save([_entry(1)]))
        self.assertFalse(self.path.with_name(self.path.name + ".tmp").exists())
        self.assertFalse(self.path.exists())

    def test_clear_removes_data(self) -> None:
        self.store.save([_entry(1)])
        self.assertTrue(self.store.clear())
        self.assertFalse(self.path.exists())
        self.assertEqual(self.store.load(), LoadResult([], None))

    def test_clear_without_data_is_fine(self) -> None:
        self.assertTrue(self.store.clear())


if __name__ == "__main__":
    unittest.main()
