from __future__ import annotations

"""Shared builders for question records, specs and sessions."""

from typing import Any, Dict, List, Optional

from qcmtrainer.app.flow_registry import make_session
from qcmtrainer.app.session_manager import QuizSession
from qcmtrainer.models import SessionSpec, load_questions


def question(correct: Any, options: str = "ABCD", text: str = "Question", **extra: Any) -> Dict[str, Any]:
    rec: Dict[str, Any] = {
        "question_text": text,
        "options": {label: f"option {label}" for label in options},
        "correct_answer": correct,
    }
    rec.update(extra)
    return rec


def four_single() -> List[Dict[str, Any]]:
    return [question("A", text=f"Q{i}") for i in range(4)]


def make_spec(
    records: List[Dict[str, Any]],
    *,
    flow: str = "training",
    total_time: Optional[int] = None,
    session_id: str = "s1",
) -> SessionSpec:
    return SessionSpec(
        session_id=session_id,
        questions=load_questions(records),
        title="Test session",
        flow=flow,
        total_time=total_time,
        remaining_time=total_time,
    )


def started(records: List[Dict[str, Any]], **kwargs: Any) -> QuizSession:
    session = make_session(make_spec(records, **kwargs))
    session.start()
    return session


def session_doc(records: List[Dict[str, Any]], **extra: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"title": "Stored session", "questions": records, "num_questions": len(records)}
    doc.update(extra)
    return doc


# timers that never fire during a test
QUIET_TIMERS = {"timers": {"tick_s": 3600, "autosave_interval_s": 3600}}
