import random
import unittest

from qcmtrainer.app.flow_registry import build_spec, get_flow, list_flows, make_session, resolve_params, session_kwargs
from qcmtrainer.config.config import validate_config
from qcmtrainer.policy import DeferredReview, ImmediateReveal
from qcmtrainer.scoring import ScoreTuple
from qcmtrainer.stats.stats import format_summary, new_session_stats, update_stats
from qcmtrainer.scoring import question_points
from qcmtrainer.util.randomness import select_questions

from tests.common import question


class RegistryTests(unittest.TestCase):
    def test_flows(self) -> None:
        self.assertEqual([m.id for m in list_flows()], ["training", "td", "exam"])
        self.assertEqual(get_flow("td").kind, "td_sessions")
        with self.assertRaises(KeyError):
            get_flow("quiz")

    def test_resolve_params(self) -> None:
        params = resolve_params("exam", "short", {"duration_s": 120, "order_mode": None})
        self.assertEqual(params, {"order_mode": "random", "num_questions": 20, "duration_s": 120})
        with self.assertRaises(KeyError):
            resolve_params("training", "marathon")

    def test_build_exam_spec(self) -> None:
        records = [question("A", year=str(y)) for y in (2022, 2019, 2020)]
        spec = build_spec(
            "exam", session_id="e1", title="Mock", question_records=records,
            params={"order_mode": "by_year", "num_questions": 2, "duration_s": 600},
        )
        self.assertEqual([q.year for q in spec.questions], ["2019", "2020"])
        self.assertEqual([q.index for q in spec.questions], [0, 1])
        self.assertEqual((spec.total_time, spec.remaining_time), (600, 600))
        self.assertIsInstance(make_session(spec).policy, DeferredReview)

    def test_session_uses_configured_scoring(self) -> None:
        cfg = validate_config({"scoring": {"penalty_per_wrong": 0.5, "scale": 10, "decimals": 1}})
        self.assertEqual(session_kwargs(cfg), {"penalty": 0.5, "scale": 10.0, "decimals": 1})
        spec = build_spec("training", session_id="t", title="T", question_records=[question(["A", "B"])], params={})
        session = make_session(spec, cfg=cfg)
        self.assertIsInstance(session.policy, ImmediateReveal)
        session.start()
        session.answer("A")
        session.answer("C")
        self.assertEqual(session.scores(), ScoreTuple(0.0, 5.0, 0.0))


class SelectionTests(unittest.TestCase):
    def test_by_year_keeps_unknown_years_last(self) -> None:
        records = [{"year": "2021"}, {"year": None}, {"year": "2018"}, {}]
        out = select_questions(records)
        self.assertEqual([r.get("year") for r in out], ["2018", "2021", None, None])

    def test_random_is_seedable(self) -> None:
        records = [{"n": i} for i in range(10)]
        a = select_questions(records, 5, "random", rng=random.Random(7))
        b = select_questions(records, 5, "random", rng=random.Random(7))
        self.assertEqual(a, b)
        self.assertEqual(len(a), 5)
        with self.assertRaises(ValueError):
            select_questions(records, order_mode="alphabetical")


class StatsTests(unittest.TestCase):
    def test_summary(self) -> None:
        from qcmtrainer.models import load_questions

        qs = load_questions([question("A", source="Final"), question("B", source="Final"), question("C")])
        stats = new_session_stats()
        for q, sel in zip(qs, [{"A"}, {"C"}, None]):
            update_stats(stats, q.source, question_points(q, sel))
        self.assertEqual((stats["total"], stats["answered"], stats["exact"]), (3, 2, 1))
        text = format_summary(stats, ScoreTuple(6.67, 6.67, 6.67))
        self.assertIn("Answered: 2/3", text)
        self.assertIn("Final: 1/2", text)
        self.assertIn("unknown: 0/1", text)
        self.assertIn("All-or-nothing: 6.67/20", text)


if __name__ == "__main__":
    unittest.main()
