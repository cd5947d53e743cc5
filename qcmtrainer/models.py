from __future__ import annotations

"""Question and session records.

Records mirror the document-store shapes (``question_text``, ``options``,
``correct_answer``...) through ``to_json``/``from_json`` pairs. Questions are
validated when they are loaded: a malformed question raises
``QuestionFormatError`` instead of silently scoring as wrong.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import QuestionFormatError, SessionLoadError

OPTION_LABELS: Tuple[str, ...] = ("A", "B", "C", "D", "E")
FLOWS = ("training", "td", "exam")
DEFAULT_TITLE = "Untitled session"


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_label(value: Any) -> str:
    return str(value).strip().upper()


@dataclass(frozen=True)
class Question:
    index: int
    text: str
    options: Dict[str, str]
    correct_answer: Tuple[str, ...]
    multi: bool = False
    source: Optional[str] = None
    year: Optional[str] = None
    image: Optional[str] = None
    justification: Optional[str] = None
    justification_image: Optional[str] = None

    @property
    def labels(self) -> List[str]:
        """Populated option labels in display order."""
        return [k for k in OPTION_LABELS if k in self.options]

    @property
    def correct_set(self) -> frozenset:
        return frozenset(self.correct_answer)

    def has_option(self, label: str) -> bool:
        return _normalize_label(label) in self.options

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "question_text": self.text,
            "options": dict(self.options),
            "correct_answer": list(self.correct_answer) if self.multi else self.correct_answer[0],
        }
        for name in ("source", "year", "image", "justification", "justification_image"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any], index: int) -> "Question":
        if not isinstance(data, dict):
            raise QuestionFormatError(index, "question record must be a mapping")

        raw_options = data.get("options") or {}
        if not isinstance(raw_options, dict):
            raise QuestionFormatError(index, "options must be a mapping of labels to text")
        options: Dict[str, str] = {}
        for key, value in raw_options.items():
            label = _normalize_label(key)
            text = _opt_str(value)
            if label in OPTION_LABELS and text is not None:
                options[label] = text
        if not options:
            raise QuestionFormatError(index, "no populated option")

        raw_correct = data.get("correct_answer")
        multi = isinstance(raw_correct, (list, tuple, set))
        if multi:
            candidates = [_normalize_label(v) for v in raw_correct if _opt_str(v) is not None]
        elif _opt_str(raw_correct) is not None:
            candidates = [_normalize_label(raw_correct)]
        else:
            candidates = []
        # keep first occurrence order, drop duplicates
        correct = tuple(dict.fromkeys(candidates))
        if not correct:
            raise QuestionFormatError(index, "empty correct_answer")
        missing = [c for c in correct if c not in options]
        if missing:
            raise QuestionFormatError(index, f"correct_answer references unknown option(s) {missing}")

        return cls(
            index=index,
            text=str(data.get("question_text") or data.get("text") or ""),
            options=options,
            correct_answer=correct,
            multi=multi,
            source=_opt_str(data.get("source")),
            year=_opt_str(data.get("year")),
            image=_opt_str(data.get("image")),
            justification=_opt_str(data.get("justification")),
            justification_image=_opt_str(data.get("justification_image")),
        )


def load_questions(records: Iterable[Dict[str, Any]]) -> List[Question]:
    """Validate raw question records; positions become question indices."""
    return [Question.from_json(rec, i) for i, rec in enumerate(records or [])]


def extract_question_records(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Pull the raw question list out of a stored session document.

    Training sessions and exams keep their questions under
    ``courses[0].questions``; TD/TP sessions concatenate ``tds[*].questions``.
    A plain ``questions`` list is accepted as well.
    """
    if isinstance(doc.get("questions"), list):
        return list(doc["questions"])
    tds = doc.get("tds")
    if isinstance(tds, list):
        out: List[Dict[str, Any]] = []
        for td in tds:
            if isinstance(td, dict) and isinstance(td.get("questions"), list):
                out.extend(td["questions"])
        return out
    courses = doc.get("courses")
    if isinstance(courses, list) and courses and isinstance(courses[0], dict):
        qs = courses[0].get("questions")
        if isinstance(qs, list):
            return list(qs)
    return []


@dataclass
class SessionSpec:
    session_id: str
    questions: List[Question] = field(default_factory=list)
    title: str = DEFAULT_TITLE
    flow: str = "training"
    total_time: Optional[int] = None
    remaining_time: Optional[int] = None
    finished: bool = False
    progress: Optional[Dict[str, Any]] = None
    notes: Dict[int, str] = field(default_factory=dict)

    @property
    def n_questions(self) -> int:
        return len(self.questions)

    @property
    def timed(self) -> bool:
        return self.flow == "exam" and self.total_time is not None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "flow": self.flow,
            "questions": [q.to_json() for q in self.questions],
            "num_questions": self.n_questions,
            "finished": self.finished,
        }
        if self.total_time is not None:
            data["totalTime"] = self.total_time
        if self.remaining_time is not None:
            data["remainingTime"] = self.remaining_time
        if self.progress is not None:
            data["progress"] = dict(self.progress)
        if self.notes:
            data["notes"] = [{"questionId": i, "note": n} for i, n in sorted(self.notes.items())]
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any], *, session_id: str, flow: Optional[str] = None) -> "SessionSpec":
        if not isinstance(data, dict):
            raise SessionLoadError(f"session {session_id!r}: document must be a mapping")
        flow = flow or data.get("flow") or "training"
        if flow not in FLOWS:
            raise SessionLoadError(f"session {session_id!r}: unknown flow {flow!r}")
        questions = load_questions(extract_question_records(data))

        total_time = data.get("totalTime")
        remaining = data.get("remainingTime")

        notes: Dict[int, str] = {}
        for n in data.get("notes") or []:
            # later notes for the same question win, as appended
            if isinstance(n, dict) and "questionId" in n:
                notes[int(n["questionId"])] = str(n.get("note", ""))

        return cls(
            session_id=session_id,
            questions=questions,
            title=str(data.get("title") or DEFAULT_TITLE),
            flow=flow,
            total_time=int(total_time) if total_time is not None else None,
            remaining_time=int(remaining) if remaining is not None else None,
            finished=bool(data.get("finished", False)),
            progress=dict(data["progress"]) if isinstance(data.get("progress"), dict) else None,
            notes=notes,
        )
