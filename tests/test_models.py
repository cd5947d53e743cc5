import unittest

from qcmtrainer.errors import QuestionFormatError, SessionLoadError
from qcmtrainer.models import Question, SessionSpec, extract_question_records, load_questions

from tests.common import question


class QuestionLoadingTests(unittest.TestCase):
    def test_single_and_multi_forms(self) -> None:
        single, multi = load_questions([question("b"), question(["A", "c", "A"])])
        self.assertEqual(single.correct_answer, ("B",))
        self.assertFalse(single.multi)
        self.assertEqual(multi.correct_answer, ("A", "C"))
        self.assertTrue(multi.multi)
        self.assertEqual(multi.index, 1)

    def test_sparse_options_are_dropped(self) -> None:
        rec = {"question_text": "Q", "options": {"A": "yes", "B": "", "C": None, "D": "no"}, "correct_answer": "D"}
        q = Question.from_json(rec, 0)
        self.assertEqual(q.labels, ["A", "D"])
        self.assertFalse(q.has_option("B"))

    def test_no_populated_option_is_rejected(self) -> None:
        with self.assertRaises(QuestionFormatError) as ctx:
            load_questions([question("A"), {"question_text": "Q", "options": {"A": ""}, "correct_answer": "A"}])
        self.assertEqual(ctx.exception.index, 1)

    def test_empty_correct_answer_is_rejected(self) -> None:
        for bad in ("", [], None):
            with self.assertRaises(QuestionFormatError):
                Question.from_json(question(bad), 0)

    def test_correct_answer_must_be_an_option(self) -> None:
        with self.assertRaises(SessionLoadError):
            Question.from_json(question(["A", "E"], options="ABCD"), 3)

    def test_optional_fields_survive_to_json(self) -> None:
        rec = question("A", year="2021", source="Final", justification="Because.")
        q = Question.from_json(rec, 0)
        out = q.to_json()
        self.assertEqual(out["year"], "2021")
        self.assertEqual(out["correct_answer"], "A")
        self.assertNotIn("image", out)


class ExtractRecordsTests(unittest.TestCase):
    def test_courses_layout(self) -> None:
        doc = {"courses": [{"questions": [question("A")]}, {"questions": [question("B")]}]}
        self.assertEqual(len(extract_question_records(doc)), 1)

    def test_td_layout_concatenates(self) -> None:
        doc = {"tds": [{"questions": [question("A")]}, {"questions": [question("B"), question("C")]}]}
        records = extract_question_records(doc)
        self.assertEqual([r["correct_answer"] for r in records], ["A", "B", "C"])

    def test_missing_questions(self) -> None:
        self.assertEqual(extract_question_records({"title": "empty"}), [])


class SessionSpecTests(unittest.TestCase):
    def test_from_json(self) -> None:
        doc = {
            "title": "Anatomy",
            "questions": [question("A"), question("B")],
            "totalTime": 600,
            "remainingTime": 420,
            "notes": [
                {"questionId": 0, "note": "first"},
                {"questionId": 0, "note": "second"},
            ],
        }
        spec = SessionSpec.from_json(doc, session_id="x", flow="exam")
        self.assertEqual(spec.n_questions, 2)
        self.assertTrue(spec.timed)
        self.assertEqual(spec.remaining_time, 420)
        self.assertEqual(spec.notes, {0: "second"})
        self.assertEqual(SessionSpec.from_json(spec.to_json(), session_id="x").n_questions, 2)

    def test_zero_questions_is_valid(self) -> None:
        spec = SessionSpec.from_json({}, session_id="empty")
        self.assertEqual(spec.n_questions, 0)
        self.assertEqual(spec.flow, "training")
        self.assertEqual(spec.title, "Untitled session")

    def test_unknown_flow(self) -> None:
        with self.assertRaises(SessionLoadError):
            SessionSpec.from_json({"flow": "quiz"}, session_id="x")


if __name__ == "__main__":
    unittest.main()
