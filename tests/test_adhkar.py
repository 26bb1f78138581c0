from __future__ import annotations

from datetime import date
import json
from pathlib import Path
import tempfile
import unittest

from barakah.adhkar import AdhkarLibrary, AdhkarProgressStore, DEFAULT_ADHKAR


class AdhkarLibraryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "adhkar.json"

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_seeded_with_builtin_adhkar(self) -> None:
        library = AdhkarLibrary(self.path)
        self.assertEqual([item.dhikr_id for item in library.all()], [item.dhikr_id for item in DEFAULT_ADHKAR])
        self.assertEqual(library.get("tasbih").repetitions, 33)
        self.assertEqual([item.dhikr_id for item in library.by_category("evening")], ["evening-protection"])

    def test_add_update_remove_persist(self) -> None:
        library = AdhkarLibrary(self.path)
        added = library.add(
            title_en="Istighfar",
            text_ar="أَسْتَغْفِرُ اللَّهَ",
            text_en="I seek forgiveness from Allah",
            category="general",
            repetitions=100,
        )
        library.update(added.dhikr_id, repetitions=70)
        library.update("tasbih", published=False)

        reloaded = AdhkarLibrary(self.path)
        self.assertEqual(reloaded.get(added.dhikr_id).repetitions, 70)
        self.assertNotIn("tasbih", [item.dhikr_id for item in reloaded.all()])

        self.assertTrue(reloaded.remove(added.dhikr_id))
        self.assertFalse(reloaded.remove(added.dhikr_id))
        with self.assertRaises(KeyError):
            AdhkarLibrary(self.path).get(added.dhikr_id)

    def test_file_without_adhkar_table_uses_builtin_set(self) -> None:
        for payload in ([], {"adhkar": {"tasbih": 33}}, "tasbih"):
            with self.subTest(payload=payload):
                self.path.write_text(json.dumps(payload), encoding="utf-8")
                with self.assertLogs("barakah.adhkar", level="WARNING"):
                    library = AdhkarLibrary(self.path)
                self.assertEqual(
                    [item.dhikr_id for item in library.all()], [item.dhikr_id for item in DEFAULT_ADHKAR]
                )

    def test_rejects_unknown_category(self) -> None:
        library = AdhkarLibrary(self.path)
        with self.assertRaises(ValueError):
            library.add(title_en="x", text_ar="x", text_en="x", category="noon")
        with self.assertRaises(ValueError):
            library.update("tasbih", category="noon")


class AdhkarProgressStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "progress.json"
        self.library = AdhkarLibrary(Path(self.tmpdir.name) / "adhkar.json")
        self.day = date(2024, 3, 11)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_increment_completes_at_repetitions(self) -> None:
        store = AdhkarProgressStore(self.path)
        protection = self.library.get("evening-protection")

        store.increment(self.day, protection)
        store.increment(self.day, protection)
        self.assertFalse(store.is_completed(self.day, "evening-protection"))

        progress = store.increment(self.day, protection)
        self.assertTrue(progress.completed)
        self.assertIsNotNone(progress.completed_at)

        # counting past the target is clamped
        self.assertEqual(store.increment(self.day, protection, step=5).count, 3)

    def test_progress_is_per_day(self) -> None:
        store = AdhkarProgressStore(self.path)
        tasbih = self.library.get("tasbih")
        store.increment(self.day, tasbih, step=10)

        self.assertEqual(store.count(self.day, "tasbih"), 10)
        self.assertEqual(store.count(date(2024, 3, 12), "tasbih"), 0)

    def test_persists_and_resets(self) -> None:
        store = AdhkarProgressStore(self.path)
        store.increment(self.day, self.library.get("ayat-al-kursi"))

        reloaded = AdhkarProgressStore(self.path)
        self.assertTrue(reloaded.is_completed(self.day, "ayat-al-kursi"))
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertIn("2024-03-11", raw["days"])

        reloaded.reset(self.day, "ayat-al-kursi")
        self.assertEqual(AdhkarProgressStore(self.path).count(self.day, "ayat-al-kursi"), 0)

    def test_day_summary(self) -> None:
        store = AdhkarProgressStore(self.path)
        store.increment(self.day, self.library.get("ayat-al-kursi"))
        store.increment(self.day, self.library.get("tasbih"), step=3)

        summary = store.day_summary(self.day, self.library.all())

        self.assertEqual(summary.total, 3)
        self.assertEqual(summary.completed, 1)
        counts = {status.dhikr.dhikr_id: status.count for status in summary.items}
        self.assertEqual(counts, {"ayat-al-kursi": 1, "tasbih": 3, "evening-protection": 0})

    def test_prune_drops_old_days(self) -> None:
        store = AdhkarProgressStore(self.path)
        tasbih = self.library.get("tasbih")
        store.increment(date(2024, 1, 1), tasbih)
        store.increment(self.day, tasbih)

        store.prune(keep_days=30, today=date(2024, 3, 20))

        self.assertEqual(store.count(date(2024, 1, 1), "tasbih"), 0)
        self.assertEqual(store.count(self.day, "tasbih"), 1)

    def test_corrupt_file_starts_empty(self) -> None:
        self.path.write_text("[broken", encoding="utf-8")
        store = AdhkarProgressStore(self.path)
        self.assertEqual(store.count(self.day, "tasbih"), 0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
