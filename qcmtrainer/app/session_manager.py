from __future__ import annotations

"""Quiz session: progress state machine over one question set.

States run ``NOT_STARTED -> IN_PROGRESS -> FINISHED``; ``restart`` brings a
started session back to question 0 with selections and scores cleared.
Invalid transitions are no-ops that return ``False``/``None``.

Every mutation and every snapshot holds the session's re-entrant lock, so
the countdown and auto-save timers always see a consistent pair of
(pointer, selections). Events are published after the lock is released.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Set, Tuple, Union

from storage.schema import FinalResult, ProgressSnapshot, utcnow

from ..models import Question, SessionSpec
from ..policy.feedback import FeedbackPolicy, Verdict, policy_for_flow
from ..scoring.scoring import (
    DECIMALS,
    PENALTY_PER_WRONG,
    SCORE_SCALE,
    QuestionPoints,
    ScoreAccumulator,
    ScoreTuple,
    compute_scores,
    question_points,
)
from .events import EventBus
from .explain import trace as xtrace

logger = logging.getLogger(__name__)


def progress_ratio(current: int, n: int, finished: bool) -> float:
    """Position-based progress shared by live sessions and stored listings."""
    if n == 0:
        return 0.0
    if finished:
        return 1.0
    return min(max(current, 0), n) / n


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


@dataclass(frozen=True)
class RevealResult:
    index: int
    points: QuestionPoints
    verdict: Verdict
    correct_answer: Tuple[str, ...]
    justification: Optional[str] = None
    scored: bool = True


@dataclass(frozen=True)
class PendingConfirmation:
    action: Literal["restart", "finalize", "delete"]
    message: str


_CONFIRM_MESSAGES = {
    "restart": "Restart the session? All answers and scores will be cleared.",
    "finalize": "Submit the session now? Answers can no longer be changed.",
}


class QuizSession:
    def __init__(
        self,
        spec: SessionSpec,
        *,
        policy: Optional[FeedbackPolicy] = None,
        penalty: float = PENALTY_PER_WRONG,
        scale: float = SCORE_SCALE,
        decimals: int = DECIMALS,
        events: Optional[EventBus] = None,
    ) -> None:
        self.spec = spec
        self.questions: List[Question] = list(spec.questions)
        self.policy = policy or policy_for_flow(spec.flow)
        self.penalty = penalty
        self.scale = scale
        self.decimals = decimals
        self.events = events or EventBus()

        self._lock = threading.RLock()
        self.state = SessionState.NOT_STARTED
        self.current = 0
        self._selections: Dict[int, FrozenSet[str]] = {}
        self._revealed: Set[int] = set()
        self._acc = ScoreAccumulator(scale=scale, decimals=decimals)
        self._result: Optional[FinalResult] = None
        self._pending: Optional[PendingConfirmation] = None
        self.time_left: Optional[int] = self._initial_time(spec)
        self._tick_carry = 0.0
        self.notes: Dict[int, str] = dict(spec.notes)
        self._struck: Dict[int, Set[str]] = {}

    @staticmethod
    def _initial_time(spec: SessionSpec) -> Optional[int]:
        if spec.flow != "exam":
            return None
        if spec.remaining_time is not None:
            return max(0, int(spec.remaining_time))
        if spec.total_time is not None:
            return max(0, int(spec.total_time))
        return None

    # ------------------------------------------------------------------ views
    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def n(self) -> int:
        return len(self.questions)

    @property
    def finished(self) -> bool:
        return self.state is SessionState.FINISHED

    @property
    def result(self) -> Optional[FinalResult]:
        return self._result

    @property
    def pending(self) -> Optional[PendingConfirmation]:
        return self._pending

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current < self.n:
            return self.questions[self.current]
        return None

    def selection(self, index: Optional[int] = None) -> FrozenSet[str]:
        with self._lock:
            i = self.current if index is None else index
            return self._selections.get(i, frozenset())

    def selections(self) -> Dict[int, FrozenSet[str]]:
        with self._lock:
            return dict(self._selections)

    def is_revealed(self, index: Optional[int] = None) -> bool:
        with self._lock:
            return (self.current if index is None else index) in self._revealed

    @property
    def answered_indices(self) -> List[int]:
        with self._lock:
            return sorted(self._selections)

    @property
    def unanswered_indices(self) -> List[int]:
        with self._lock:
            return [i for i in range(self.n) if i not in self._selections]

    @property
    def progress_ratio(self) -> float:
        return progress_ratio(self.current, self.n, self.finished)

    def scores(self) -> ScoreTuple:
        """Score tuple recomputed from every current selection."""
        with self._lock:
            return compute_scores(
                self.questions, self._selections,
                penalty=self.penalty, scale=self.scale, decimals=self.decimals,
            )

    def running_scores(self) -> ScoreTuple:
        """Totals of revealed questions only, normalised over the whole set."""
        with self._lock:
            return self._acc.scores(self.n)

    # ------------------------------------------------------------ transitions
    def start(self) -> bool:
        with self._lock:
            if self.state is not SessionState.NOT_STARTED:
                return False
            self.state = SessionState.IN_PROGRESS
        xtrace("session_started", {"session": self.spec.session_id, "flow": self.spec.flow, "n": self.n})
        return True

    def answer(self, label: str) -> bool:
        """Toggle ``label`` on the current question."""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                return False
            q = self.current_question
            if q is None or self.current in self._revealed:
                return False
            label = str(label).strip().upper()
            if label not in q.options:
                return False
            i = self.current
            new = self.policy.toggle(q, self._selections.get(i, frozenset()), label)
            if new:
                self._selections[i] = new
            else:
                self._selections.pop(i, None)
            payload = {"index": i, "selection": sorted(new)}
        xtrace("answered", payload)
        self.events.emit("answered", payload)
        return True

    def reveal(self) -> Optional[RevealResult]:
        """Lock the current question and score it (immediate-feedback flows)."""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS or not self.policy.reveals_per_question:
                return None
            q = self.current_question
            if q is None:
                return None
            i = self.current
            sel = self._selections.get(i)
            if not sel:
                return None
            points = question_points(q, sel, penalty=self.penalty)
            scored = self._acc.add(i, points)
            self._revealed.add(i)
            out = RevealResult(
                index=i,
                points=points,
                verdict=self.policy.judge(points),
                correct_answer=q.correct_answer,
                justification=q.justification,
                scored=scored,
            )
        xtrace("revealed", {"index": i, "outcome": out.verdict.outcome, "scored": scored})
        self.events.emit("revealed", out)
        return out

    def next(self) -> bool:
        """Advance; moving past the last question finalises the session."""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                return False
            if self.current + 1 < self.n:
                self.current += 1
                index = self.current
            else:
                index = None
        if index is None:
            self.finalize()
        else:
            self.events.emit("navigated", index)
        return True

    def prev(self) -> bool:
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS or self.current == 0:
                return False
            self.current -= 1
            index = self.current
        self.events.emit("navigated", index)
        return True

    def goto(self, index: int) -> bool:
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS or not (0 <= index < self.n):
                return False
            self.current = int(index)
        self.events.emit("navigated", index)
        return True

    def finalize(self) -> Optional[FinalResult]:
        """Score every selection afresh and freeze the session.

        Calling it again returns the same result.
        """
        with self._lock:
            if self.state is SessionState.FINISHED:
                return self._result
            if self.state is not SessionState.IN_PROGRESS:
                return None
            result = self._build_result()
            self._result = result
            self.state = SessionState.FINISHED
            self._pending = None
        logger.info(
            "session %s finished: %.2f / %.2f / %.2f",
            self.spec.session_id, result.score_all_or_nothing, result.score_partial, result.score_partial_negative,
        )
        xtrace("session_finished", result.to_doc())
        self.events.emit("finished", result)
        return result

    def _build_result(self) -> FinalResult:
        scores = compute_scores(
            self.questions, self._selections,
            penalty=self.penalty, scale=self.scale, decimals=self.decimals,
        )
        return FinalResult(
            score_all_or_nothing=scores.all_or_nothing,
            score_partial=scores.partial,
            score_partial_negative=scores.partial_negative,
            selected_answers={i: sorted(s) for i, s in self._selections.items()},
            updated_at=utcnow(),
        )

    def expire(self) -> Optional[FinalResult]:
        """Time is up: finalise wherever the pointer is."""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                return self._result
            if self.time_left is not None:
                self.time_left = 0
        xtrace("time_expired", {"session": self.spec.session_id})
        return self.finalize()

    def tick(self, seconds: float = 1) -> bool:
        """Count the clock down; returns True when this tick expired the session."""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS or self.time_left is None:
                return False
            # sub-second ticks accumulate until they add up to a whole second
            self._tick_carry += float(seconds)
            whole = int(self._tick_carry)
            self._tick_carry -= whole
            self.time_left = max(0, self.time_left - whole)
            if self.time_left > 0:
                return False
        self.expire()
        return True

    def restart(self) -> bool:
        with self._lock:
            if self.state is SessionState.NOT_STARTED:
                return False
            self.state = SessionState.IN_PROGRESS
            self.current = 0
            self._selections.clear()
            self._revealed.clear()
            self._acc.reset()
            self._tick_carry = 0.0
            self._struck.clear()
            self._result = None
            self._pending = None
            self.time_left = int(self.spec.total_time) if self.spec.flow == "exam" and self.spec.total_time is not None else None
        logger.info("session %s restarted", self.spec.session_id)
        xtrace("session_restarted", {"session": self.spec.session_id})
        self.events.emit("restarted", self.spec.session_id)
        return True

    # ----------------------------------------------------------- confirmation
    def request(self, action: str) -> Optional[PendingConfirmation]:
        """Stage a destructive transition; it only runs on ``confirm()``."""
        with self._lock:
            allowed = (action == "restart" and self.state is not SessionState.NOT_STARTED) or (
                action == "finalize" and self.state is SessionState.IN_PROGRESS
            )
            if not allowed:
                return None
            self._pending = PendingConfirmation(action=action, message=_CONFIRM_MESSAGES[action])  # type: ignore[arg-type]
            return self._pending

    def confirm(self) -> Union[bool, FinalResult, None]:
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is None:
            return None
        if pending.action == "restart":
            return self.restart()
        return self.finalize()

    def cancel(self) -> bool:
        with self._lock:
            had = self._pending is not None
            self._pending = None
            return had

    # ------------------------------------------------------------ annotations
    def set_note(self, text: str, index: Optional[int] = None) -> None:
        with self._lock:
            self.notes[self.current if index is None else index] = text

    def note(self, index: Optional[int] = None) -> str:
        return self.notes.get(self.current if index is None else index, "")

    def toggle_struck(self, label: str) -> bool:
        """Cross out (or restore) an option the learner has ruled out."""
        with self._lock:
            q = self.current_question
            label = str(label).strip().upper()
            if q is None or label not in q.options:
                return False
            struck = self._struck.setdefault(self.current, set())
            if label in struck:
                struck.discard(label)
            else:
                struck.add(label)
            return True

    def struck(self, index: Optional[int] = None) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._struck.get(self.current if index is None else index, ()))

    def search(self, term: str) -> List[int]:
        """Indices of questions whose text or year contains ``term``."""
        needle = (term or "").strip().lower()
        if not needle:
            return list(range(self.n))
        return [
            q.index for q in self.questions
            if needle in q.text.lower() or (q.year is not None and needle in q.year.lower())
        ]

    # -------------------------------------------------------------- snapshots
    def snapshot(self) -> Union[ProgressSnapshot, FinalResult]:
        """Progress snapshot while running; the final result once finished."""
        with self._lock:
            if self.finished and self._result is not None:
                return self._result
            return ProgressSnapshot(
                current_question=self.current,
                selected_answers={i: sorted(s) for i, s in self._selections.items()},
                time_left=self.time_left,
                revealed=sorted(self._revealed),
                saved_at=utcnow(),
            )

    def _apply_selections(self, selected: Mapping[int, Any]) -> None:
        for idx, labels in selected.items():
            i = int(idx)
            if not (0 <= i < self.n):
                continue
            q = self.questions[i]
            picked = frozenset(str(x).strip().upper() for x in labels) & frozenset(q.options)
            if picked:
                self._selections[i] = picked

    @classmethod
    def restore(cls, spec: SessionSpec, snapshot: Union[ProgressSnapshot, Mapping[str, Any]], **kwargs: Any) -> "QuizSession":
        """Rebuild an in-progress session from its last snapshot."""
        snap = snapshot if isinstance(snapshot, ProgressSnapshot) else ProgressSnapshot.model_validate(snapshot)
        session = cls(spec, **kwargs)
        with session._lock:
            session.state = SessionState.IN_PROGRESS
            session._apply_selections(snap.selected_answers)
            if session.n:
                session.current = min(max(0, snap.current_question), session.n - 1)
            for i in snap.revealed:
                sel = session._selections.get(i)
                if sel and 0 <= i < session.n:
                    session._revealed.add(i)
                    session._acc.add(i, question_points(session.questions[i], sel, penalty=session.penalty))
            if snap.time_left is not None and spec.flow == "exam":
                session.time_left = int(snap.time_left)
        xtrace("session_restored", {"session": spec.session_id, "current": session.current})
        return session

    @classmethod
    def from_finished(cls, spec: SessionSpec, selected: Mapping[int, Any], **kwargs: Any) -> "QuizSession":
        """Reopen a finished session for review; scores are recomputed."""
        session = cls(spec, **kwargs)
        with session._lock:
            session._apply_selections(selected)
            session.state = SessionState.FINISHED
            session._revealed = set(session._selections)
            session._result = session._build_result()
        return session
