from __future__ import annotations

"""Flow registry and metadata.

Expose the three session flows, resolve their parameters, and build
sessions via a simple factory.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..models import SessionSpec, load_questions
from ..policy.feedback import policy_for_flow
from ..util.randomness import select_questions
from .events import EventBus
from .presets import EXAM_PRESETS, TD_PRESETS, TRAINING_PRESETS
from .session_manager import QuizSession


@dataclass(frozen=True)
class FlowMeta:
    id: str
    name: str
    description: str
    kind: str
    parameters_schema: Dict[str, Any]
    presets: Dict[str, Dict[str, Any]]


_COMMON_PROPERTIES = {
    "order_mode": {"type": "string", "enum": ["by_year", "random"], "default": "by_year"},
    "num_questions": {"type": ["integer", "null"], "minimum": 1, "default": None},
}


def list_flows() -> List[FlowMeta]:
    return [
        FlowMeta(
            id="training",
            name="Training session",
            description="Answer, reveal the correct options, move on. Scores add up as you go.",
            kind="sessions",
            parameters_schema={"type": "object", "properties": dict(_COMMON_PROPERTIES)},
            presets=TRAINING_PRESETS,
        ),
        FlowMeta(
            id="td",
            name="TD/TP session",
            description="Immediate feedback over concatenated TD/TP question banks.",
            kind="td_sessions",
            parameters_schema={"type": "object", "properties": dict(_COMMON_PROPERTIES)},
            presets=TD_PRESETS,
        ),
        FlowMeta(
            id="exam",
            name="Exam simulation",
            description="Timed, answers stay hidden until submission or time-out.",
            kind="exams",
            parameters_schema={
                "type": "object",
                "properties": {
                    **_COMMON_PROPERTIES,
                    "duration_s": {"type": "integer", "minimum": 1, "default": 3600},
                },
                "required": ["duration_s"],
            },
            presets=EXAM_PRESETS,
        ),
    ]


def get_flow(flow_id: str) -> FlowMeta:
    for m in list_flows():
        if m.id == flow_id:
            return m
    raise KeyError(f"Unknown flow id: {flow_id}")


def resolve_params(flow_id: str, preset: str = "default", overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Preset parameters with explicit (non-None) overrides applied on top."""
    meta = get_flow(flow_id)
    if preset not in meta.presets:
        raise KeyError(f"Unknown preset {preset!r} for flow {flow_id!r}")
    params = dict(meta.presets[preset])
    params.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return params


def session_kwargs(cfg: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Scoring keyword arguments for ``QuizSession`` from a validated config."""
    scoring = (cfg or {}).get("scoring", {})
    out: Dict[str, Any] = {}
    if "penalty_per_wrong" in scoring:
        out["penalty"] = float(scoring["penalty_per_wrong"])
    if "scale" in scoring:
        out["scale"] = float(scoring["scale"])
    if "decimals" in scoring:
        out["decimals"] = int(scoring["decimals"])
    return out


def build_spec(
    flow_id: str,
    *,
    session_id: str,
    title: str,
    question_records: List[Dict[str, Any]],
    params: Dict[str, Any],
) -> SessionSpec:
    records = select_questions(
        question_records,
        num_questions=params.get("num_questions"),
        order_mode=params.get("order_mode", "by_year"),
    )
    duration = params.get("duration_s") if flow_id == "exam" else None
    return SessionSpec(
        session_id=session_id,
        questions=load_questions(records),
        title=title,
        flow=flow_id,
        total_time=int(duration) if duration is not None else None,
        remaining_time=int(duration) if duration is not None else None,
    )


def make_session(
    spec: SessionSpec,
    *,
    cfg: Optional[Dict[str, Any]] = None,
    events: Optional[EventBus] = None,
) -> QuizSession:
    return QuizSession(spec, policy=policy_for_flow(spec.flow), events=events, **session_kwargs(cfg))
