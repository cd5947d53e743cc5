from __future__ import annotations

"""Pure scoring for multiple-choice sessions.

Three schemes are computed side by side, each normalised to a 0..20 scale:

- all-or-nothing: 1 point iff the selection equals the correct set;
- partial: ``numCorrect / |C|``;
- partial-negative: ``max(0, partial - penalty * numWrong)``.

The penalty is floored per question in every flow, so the running totals of
the immediate-feedback flow and the fresh recomputation of the exam flow
agree on identical selections.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence

from ..models import Question

PENALTY_PER_WRONG = 0.25
SCORE_SCALE = 20
DECIMALS = 2


@dataclass(frozen=True)
class QuestionPoints:
    """Contribution of a single question to each scheme (each in 0..1)."""

    num_correct: int
    num_wrong: int
    all_or_nothing: float
    partial: float
    partial_negative: float

    @property
    def answered(self) -> bool:
        return (self.num_correct + self.num_wrong) > 0


ZERO_POINTS = QuestionPoints(0, 0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class ScoreTuple:
    all_or_nothing: float = 0.0
    partial: float = 0.0
    partial_negative: float = 0.0

    def to_json(self) -> Dict[str, float]:
        return {
            "score_all_or_nothing": self.all_or_nothing,
            "score_partial": self.partial,
            "score_partial_negative": self.partial_negative,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, float]) -> "ScoreTuple":
        return cls(
            all_or_nothing=float(data.get("score_all_or_nothing", 0.0)),
            partial=float(data.get("score_partial", 0.0)),
            partial_negative=float(data.get("score_partial_negative", 0.0)),
        )


def question_points(
    question: Question,
    selection: Optional[Iterable[str]],
    *,
    penalty: float = PENALTY_PER_WRONG,
) -> QuestionPoints:
    picked = frozenset(selection or ())
    if not picked:
        return ZERO_POINTS
    correct = question.correct_set
    num_correct = len(picked & correct)
    num_wrong = len(picked - correct)
    partial = num_correct / len(correct)
    return QuestionPoints(
        num_correct=num_correct,
        num_wrong=num_wrong,
        all_or_nothing=1.0 if picked == correct else 0.0,
        partial=partial,
        partial_negative=max(0.0, partial - penalty * num_wrong),
    )


def normalize(total: float, n: int, *, scale: float = SCORE_SCALE, decimals: int = DECIMALS) -> float:
    if n <= 0:
        return round(0.0, decimals)
    return round(total / n * scale, decimals)


def compute_scores(
    questions: Sequence[Question],
    selections: Mapping[int, Iterable[str]],
    *,
    penalty: float = PENALTY_PER_WRONG,
    scale: float = SCORE_SCALE,
    decimals: int = DECIMALS,
) -> ScoreTuple:
    """Score a whole question set against selections keyed by question index."""
    aon = part = neg = 0.0
    for i, q in enumerate(questions):
        pts = question_points(q, selections.get(i), penalty=penalty)
        aon += pts.all_or_nothing
        part += pts.partial
        neg += pts.partial_negative
    n = len(questions)
    return ScoreTuple(
        all_or_nothing=normalize(aon, n, scale=scale, decimals=decimals),
        partial=normalize(part, n, scale=scale, decimals=decimals),
        partial_negative=normalize(neg, n, scale=scale, decimals=decimals),
    )


@dataclass
class ScoreAccumulator:
    """Running totals for the reveal-as-you-go flows.

    Each question index is counted at most once; re-entering a question that
    was already scored does not add to the totals again.
    """

    scale: float = SCORE_SCALE
    decimals: int = DECIMALS
    _points: Dict[int, QuestionPoints] = field(default_factory=dict)

    def add(self, index: int, points: QuestionPoints) -> bool:
        if index in self._points:
            return False
        self._points[index] = points
        return True

    def __contains__(self, index: int) -> bool:
        return index in self._points

    def __len__(self) -> int:
        return len(self._points)

    @property
    def scored_indices(self) -> list[int]:
        return sorted(self._points)

    def totals(self) -> tuple[float, float, float]:
        pts = self._points.values()
        return (
            sum(p.all_or_nothing for p in pts),
            sum(p.partial for p in pts),
            sum(p.partial_negative for p in pts),
        )

    def scores(self, n: int) -> ScoreTuple:
        aon, part, neg = self.totals()
        return ScoreTuple(
            all_or_nothing=normalize(aon, n, scale=self.scale, decimals=self.decimals),
            partial=normalize(part, n, scale=self.scale, decimals=self.decimals),
            partial_negative=normalize(neg, n, scale=self.scale, decimals=self.decimals),
        )

    def reset(self) -> None:
        self._points.clear()
