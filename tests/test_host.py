import tempfile
import unittest
from pathlib import Path

from storage.documents import MemoryDocumentStore
from storage.store import load_all

from qcmtrainer.app.host import SessionHost
from qcmtrainer.config.config import validate_config
from qcmtrainer.errors import PersistenceError, QuestionFormatError, SessionLoadError

from tests.common import QUIET_TIMERS, four_single, question, session_doc


class FlakyStore(MemoryDocumentStore):
    """Memory store whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False

    def _put(self, user_id, kind, session_id, doc) -> None:
        if self.failing:
            raise PersistenceError("store offline", operation="put")
        super()._put(user_id, kind, session_id, doc)


def quiet_cfg(**sections):
    cfg = {k: dict(v) for k, v in QUIET_TIMERS.items()}
    cfg.update(sections)
    return validate_config(cfg)


class HostTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FlakyStore()
        self.host = SessionHost(self.store, "u1", cfg=quiet_cfg())
        self.addCleanup(self.host.close)

    def create(self, records=None, kind="sessions", **extra) -> str:
        return self.store.create_session("u1", kind, session_doc(four_single() if records is None else records, **extra))

    def doc(self, sid, kind="sessions"):
        return self.store.fetch_session("u1", kind, sid)


class OpenTests(HostTestCase):
    def test_new_session_starts(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        self.assertEqual(session.state.value, "in_progress")
        self.assertIsNotNone(self.host.autosaver)
        self.assertIsNone(self.host.countdown)

    def test_missing_session(self) -> None:
        with self.assertRaises(SessionLoadError):
            self.host.open("training", "nope")

    def test_malformed_question_blocks_loading(self) -> None:
        sid = self.create([question("A"), {"question_text": "bad", "options": {}, "correct_answer": "A"}])
        with self.assertRaises(QuestionFormatError):
            self.host.open("training", sid)
        self.assertIsNone(self.host.session)

    def test_zero_questions_is_an_empty_session(self) -> None:
        sid = self.create([])
        session = self.host.open("training", sid)
        self.assertEqual(session.n, 0)
        session.next()
        self.assertTrue(session.finished)
        self.assertEqual(self.doc(sid)["score_partial"], 0.0)

    def test_exam_without_duration_uses_default(self) -> None:
        host = SessionHost(self.store, "u1", cfg=quiet_cfg(exam={"default_duration_s": 90}))
        self.addCleanup(host.close)
        sid = self.create(kind="exams")
        session = host.open("exam", sid)
        self.assertEqual(session.time_left, 90)
        self.assertIsNotNone(host.countdown)

    def test_resume_from_progress(self) -> None:
        sid = self.create(kind="exams", totalTime=600, remainingTime=600)
        session = self.host.open("exam", sid)
        session.answer("A")
        session.next()
        session.answer("C")
        session.tick(30)
        self.host.close()

        stored = self.doc(sid, "exams")
        self.assertEqual(stored["progress"]["currentQuestion"], 1)
        self.assertEqual(stored["remainingTime"], 570)

        again = self.host.open("exam", sid)
        self.assertEqual(again.current, 1)
        self.assertEqual(again.selection(0), frozenset({"A"}))
        self.assertEqual(again.time_left, 570)

    def test_unreadable_progress(self) -> None:
        sid = self.create(progress={"currentQuestion": -4})
        with self.assertRaises(SessionLoadError):
            self.host.open("training", sid)


class PersistenceTests(HostTestCase):
    def test_finish_writes_final_result(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        session.answer("A")
        session.reveal()
        self.host.save()
        self.assertIn("progress", self.doc(sid))
        session.finalize()
        stored = self.doc(sid)
        self.assertTrue(stored["finished"])
        self.assertNotIn("progress", stored)
        self.assertEqual(stored["score_all_or_nothing"], 5.0)
        self.assertEqual(stored["selectedAnswers"], {"0": ["A"]})
        self.assertIsNone(self.host.autosaver)

    def test_progress_taken_before_finish_is_not_written(self) -> None:
        sid = self.create(kind="exams", totalTime=600, remainingTime=600)
        session = self.host.open("exam", sid)
        session.answer("A")
        stale = session.snapshot()
        session.finalize()
        self.assertFalse(self.host.save(stale))
        stored = self.doc(sid, "exams")
        self.assertTrue(stored["finished"])
        self.assertNotIn("progress", stored)
        self.assertNotIn("currentIndex", stored)
        self.assertEqual(self.host.pending, [])

    def test_reopening_a_finished_session(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        session.answer("A")
        session.finalize()
        again = self.host.open("training", sid)
        self.assertTrue(again.finished)
        self.assertEqual(again.result.score_partial, 5.0)

    def test_failed_progress_write_is_retried(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        failures, recoveries = [], []
        self.host.events.subscribe("persist_failed", failures.append)
        self.host.events.subscribe("persist_recovered", recoveries.append)

        self.store.failing = True
        session.answer("B")
        self.assertFalse(self.host.save())
        self.assertEqual(self.host.pending, ["progress"])
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(self.host.last_error, PersistenceError)
        # in-memory progress is untouched
        self.assertEqual(session.selection(0), frozenset({"B"}))
        self.assertFalse(self.host.retry_pending())

        self.store.failing = False
        self.assertTrue(self.host.retry_pending())
        self.assertEqual(self.host.pending, [])
        self.assertEqual(len(recoveries), 1)
        self.assertEqual(self.doc(sid)["progress"]["selectedAnswers"], {"0": ["B"]})

    def test_failed_final_write_supersedes_progress(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        self.store.failing = True
        session.answer("A")
        self.host.save()
        session.finalize()
        self.assertTrue(session.finished)
        self.assertEqual(self.host.pending, ["final"])
        self.store.failing = False
        self.assertTrue(self.host.retry_pending())
        self.assertTrue(self.doc(sid)["finished"])

    def test_restart_resets_the_document(self) -> None:
        sid = self.create(kind="exams", totalTime=300)
        session = self.host.open("exam", sid)
        session.answer("A")
        session.finalize()
        session.request("restart")
        session.confirm()
        stored = self.doc(sid, "exams")
        self.assertFalse(stored["finished"])
        self.assertNotIn("score_partial", stored)
        self.assertEqual(stored["remainingTime"], 300)
        self.assertIsNotNone(self.host.countdown)

    def test_history_row_on_finish(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            host = SessionHost(self.store, "u1", cfg=quiet_cfg(), history_dir=Path(tmp))
            sid = self.create()
            session = host.open("training", sid)
            session.answer("A")
            session.finalize()
            host.close()
            df = load_all(Path(tmp))
            self.assertEqual(len(df), 1)
            self.assertEqual(df.loc[0, "session_id"], sid)
            self.assertEqual(int(df.loc[0, "answered"]), 1)
            self.assertAlmostEqual(float(df.loc[0, "score_partial"]), 5.0)


class AnnotationTests(HostTestCase):
    def test_note_is_appended_and_kept_in_memory(self) -> None:
        sid = self.create()
        session = self.host.open("training", sid)
        session.goto(1)
        self.assertTrue(self.host.save_note("revise this"))
        notes = self.doc(sid)["notes"]
        self.assertEqual(notes[0]["questionId"], 1)
        self.assertEqual(notes[0]["note"], "revise this")
        self.assertEqual(notes[0]["user"], "u1")
        self.assertEqual(session.note(1), "revise this")

    def test_empty_text_is_rejected(self) -> None:
        self.host.open("training", self.create())
        with self.assertRaises(ValueError):
            self.host.save_note("   ")
        with self.assertRaises(ValueError):
            self.host.report("")

    def test_failed_report_is_queued(self) -> None:
        sid = self.create()
        self.host.open("training", sid)
        self.store.failing = True
        self.assertFalse(self.host.report("typo in option B"))
        self.assertEqual(self.host.pending, ["report"])
        self.store.failing = False
        self.assertTrue(self.host.retry_pending())
        self.assertEqual(self.doc(sid)["reports"][0]["message"], "typo in option B")


class ListingTests(HostTestCase):
    def test_status_filter_and_progress(self) -> None:
        a = self.create()
        b = self.create()
        session = self.host.open("training", a)
        session.goto(2)
        self.host.save()
        done = self.host.open("training", b)
        done.finalize()

        rows = {s.session_id: s for s in self.host.list_sessions("training")}
        self.assertEqual(rows[a].progress, 50.0)
        self.assertEqual(rows[b].progress, 100.0)
        self.assertEqual([s.session_id for s in self.host.list_sessions("training", "finished")], [b])
        self.assertEqual([s.session_id for s in self.host.list_sessions("training", "in_progress")], [a])
        with self.assertRaises(ValueError):
            self.host.list_sessions("training", "stale")

    def test_delete_needs_confirmation(self) -> None:
        sid = self.create()
        pending = self.host.request_delete("training", sid)
        self.assertEqual(pending.action, "delete")
        self.assertTrue(self.host.cancel_delete())
        self.assertIsNotNone(self.doc(sid))
        self.host.request_delete("training", sid)
        self.assertTrue(self.host.confirm_delete())
        self.assertIsNone(self.doc(sid))
        self.assertFalse(self.host.confirm_delete())


if __name__ == "__main__":
    unittest.main()
