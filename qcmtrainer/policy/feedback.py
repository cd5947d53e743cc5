from __future__ import annotations

"""Feedback policies: how selections change and when answers are shown."""

from dataclasses import dataclass
from typing import FrozenSet, Literal, Protocol

from ..models import Question
from ..scoring.scoring import QuestionPoints


@dataclass(frozen=True)
class Verdict:
    outcome: Literal["correct", "wrong"]
    feedback: str = ""


class FeedbackPolicy(Protocol):
    name: str
    reveals_per_question: bool

    def toggle(self, question: Question, selection: FrozenSet[str], label: str) -> FrozenSet[str]: ...

    def judge(self, points: QuestionPoints) -> Verdict: ...


def _toggle(selection: FrozenSet[str], label: str) -> FrozenSet[str]:
    if label in selection:
        return selection - {label}
    return selection | {label}


class ImmediateReveal:
    """Training and TD flows: reveal locks the question and scores it.

    A single-answer question keeps at most one pick; choosing it again clears it.
    """

    name = "immediate"
    reveals_per_question = True

    def toggle(self, question: Question, selection: FrozenSet[str], label: str) -> FrozenSet[str]:
        if question.multi:
            return _toggle(selection, label)
        if label in selection:
            return frozenset()
        return frozenset({label})

    def judge(self, points: QuestionPoints) -> Verdict:
        # full match, or some right picks and no wrong ones
        if points.all_or_nothing == 1.0 or (points.num_correct > 0 and points.num_wrong == 0):
            return Verdict("correct", "Correct!")
        return Verdict("wrong", "Wrong.")


class DeferredReview:
    """Exam flow: every question toggles freely, nothing is shown before the end."""

    name = "deferred"
    reveals_per_question = False

    def toggle(self, question: Question, selection: FrozenSet[str], label: str) -> FrozenSet[str]:
        return _toggle(selection, label)

    def judge(self, points: QuestionPoints) -> Verdict:
        if points.all_or_nothing == 1.0:
            return Verdict("correct", "Correct!")
        return Verdict("wrong", "Wrong.")


def policy_for_flow(flow: str) -> FeedbackPolicy:
    if flow == "exam":
        return DeferredReview()
    return ImmediateReveal()
