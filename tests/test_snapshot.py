import json
import unittest
from datetime import timezone

from storage.schema import FinalResult, ProgressSnapshot

from qcmtrainer.app.session_manager import QuizSession
from qcmtrainer.app.flow_registry import make_session

from tests.common import four_single, make_spec, question, started


class ProgressSnapshotTests(unittest.TestCase):
    def test_round_trip_through_json(self) -> None:
        records = [question("A"), question(["B", "C"]), question("D"), question("A")]
        session = started(records, flow="exam", total_time=900)
        session.answer("A")
        session.next()
        session.answer("B")
        session.answer("C")
        session.next()
        for _ in range(15):
            session.tick()

        doc = session.snapshot().to_doc()
        self.assertEqual(
            set(doc), {"currentQuestion", "selectedAnswers", "timeLeft", "revealed", "savedAt"}
        )
        stored = json.loads(json.dumps(doc))
        del session

        spec = make_spec(records, flow="exam", total_time=900)
        restored = QuizSession.restore(spec, stored)
        self.assertEqual(restored.current, 2)
        self.assertEqual(restored.selections(), {0: frozenset({"A"}), 1: frozenset({"B", "C"})})
        self.assertEqual(restored.time_left, 885)
        self.assertFalse(restored.finished)

    def test_revealed_questions_stay_locked(self) -> None:
        records = four_single()
        session = started(records)
        session.answer("A")
        session.reveal()
        session.next()
        session.answer("B")
        snap = session.snapshot()
        self.assertIsInstance(snap, ProgressSnapshot)
        self.assertEqual(snap.revealed, [0])

        restored = QuizSession.restore(make_spec(records), snap)
        self.assertTrue(restored.is_revealed(0))
        self.assertFalse(restored.is_revealed(1))
        self.assertEqual(restored.running_scores(), session.running_scores())
        restored.goto(0)
        self.assertFalse(restored.answer("C"))

    def test_out_of_range_pointer_and_labels_are_clamped(self) -> None:
        records = four_single()
        snap = {"currentQuestion": 12, "selectedAnswers": {"1": ["a", "Z"], "9": ["A"]}}
        restored = QuizSession.restore(make_spec(records), snap)
        self.assertEqual(restored.current, 3)
        self.assertEqual(restored.selections(), {1: frozenset({"A"})})

    def test_saved_at_is_utc(self) -> None:
        snap = started(four_single()).snapshot()
        self.assertEqual(snap.saved_at.tzinfo, timezone.utc)


class FinalResultTests(unittest.TestCase):
    def test_finished_snapshot_has_no_navigation_state(self) -> None:
        session = started(four_single())
        session.answer("A")
        session.finalize()
        snap = session.snapshot()
        self.assertIsInstance(snap, FinalResult)
        doc = snap.to_doc()
        self.assertTrue(doc["finished"])
        self.assertNotIn("currentQuestion", doc)
        self.assertIn("updatedAt", doc)
        self.assertEqual(doc["score_all_or_nothing"], 5.0)

    def test_from_finished_recomputes(self) -> None:
        records = four_single()
        session = QuizSession.from_finished(make_spec(records), {"0": ["A"], "2": ["A"]})
        self.assertTrue(session.finished)
        self.assertEqual(session.result.score_partial, 10.0)
        self.assertFalse(session.answer("B"))

    def test_result_is_immutable(self) -> None:
        result = make_session(make_spec(four_single()))
        result.start()
        final = result.finalize()
        with self.assertRaises(Exception):
            final.score_partial = 20.0


if __name__ == "__main__":
    unittest.main()
