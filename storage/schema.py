from __future__ import annotations

"""Schema constants and Pydantic models for snapshots, annotations and score history."""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

import pandas as pd
from pandas.api.types import CategoricalDtype
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# --- Constants ---

FLOWS = {"training", "td", "exam"}
KINDS = {"sessions", "td_sessions", "exams"}
FLOW_KIND = {"training": "sessions", "td": "td_sessions", "exam": "exams"}
SCORE_COLUMNS = ["score_all_or_nothing", "score_partial", "score_partial_negative"]


def _cat_dtype(categories: set[str]) -> CategoricalDtype:
    return CategoricalDtype(categories=sorted(categories), ordered=False)


DTYPES = {
    "session_id": "string",
    "user_id": "string",
    "flow": _cat_dtype(FLOWS),
    "title": "string",
    # timezone-aware UTC timestamps
    "finished_at": pd.DatetimeTZDtype(tz="UTC"),
    "n_questions": "UInt16",
    "answered": "UInt16",
    "score_all_or_nothing": "float32",
    "score_partial": "float32",
    "score_partial_negative": "float32",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


def _clean_selections(v: Dict[int, List[str]]) -> Dict[int, List[str]]:
    out: Dict[int, List[str]] = {}
    for idx, labels in (v or {}).items():
        picked = sorted({str(x).strip().upper() for x in labels if str(x).strip()})
        if picked:
            out[int(idx)] = picked
    return out


# --- Pydantic models ---

class _StoreModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_doc(self) -> dict:
        """JSON-ready dict using the document-store field names."""
        return self.model_dump(mode="json", by_alias=True)


class ProgressSnapshot(_StoreModel):
    """Resumable state of an in-progress session."""

    current_question: int = Field(default=0, ge=0, alias="currentQuestion")
    selected_answers: Dict[int, List[str]] = Field(default_factory=dict, alias="selectedAnswers")
    time_left: Optional[int] = Field(default=None, ge=0, alias="timeLeft")
    revealed: List[int] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=utcnow, alias="savedAt")

    @field_validator("selected_answers")
    @classmethod
    def _normalize_selections(cls, v: Dict[int, List[str]]) -> Dict[int, List[str]]:
        return _clean_selections(v)

    @field_validator("revealed")
    @classmethod
    def _sorted_unique(cls, v: List[int]) -> List[int]:
        return sorted({int(i) for i in v})

    @field_validator("saved_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class FinalResult(_StoreModel):
    """Immutable record of a finished session; carries no navigation state."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    finished: Literal[True] = True
    score_all_or_nothing: float = Field(ge=0)
    score_partial: float = Field(ge=0)
    score_partial_negative: float = Field(ge=0)
    selected_answers: Dict[int, List[str]] = Field(default_factory=dict, alias="selectedAnswers")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    @field_validator("selected_answers")
    @classmethod
    def _normalize_selections(cls, v: Dict[int, List[str]]) -> Dict[int, List[str]]:
        return _clean_selections(v)

    @field_validator("updated_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class NoteEntry(_StoreModel):
    question_id: int = Field(ge=0, alias="questionId")
    question_text: str = Field(default="", alias="questionText")
    note: str = Field(min_length=1)
    user: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ReportEntry(_StoreModel):
    question_id: int = Field(ge=0, alias="questionId")
    question_text: str = Field(default="", alias="questionText")
    message: str = Field(min_length=1)
    user: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ResultRow(BaseModel):
    """One finished session in the Parquet score history."""

    session_id: str
    user_id: str
    flow: Literal[tuple(sorted(FLOWS))]  # type: ignore[valid-type]
    title: str = ""
    finished_at: datetime
    n_questions: int = Field(ge=0, le=65535)
    answered: int = Field(ge=0, le=65535)
    score_all_or_nothing: float = Field(ge=0)
    score_partial: float = Field(ge=0)
    score_partial_negative: float = Field(ge=0)

    @field_validator("answered")
    @classmethod
    def _answered_le_n(cls, v: int, info: ValidationInfo) -> int:
        n = int(info.data.get("n_questions", 0))
        if v > n:
            raise ValueError("answered must be <= n_questions")
        return v

    @field_validator("finished_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)
