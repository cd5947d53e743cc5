from __future__ import annotations

"""Basic session stats: JSON-based aggregation and formatting."""

import json
from pathlib import Path
from typing import Dict, Optional

from ..scoring.scoring import QuestionPoints, ScoreTuple


def new_session_stats() -> Dict:
    """Create a new, empty stats structure."""
    return {"total": 0, "answered": 0, "exact": 0, "per_source": {}}


def update_stats(stats: Dict, source: Optional[str], points: QuestionPoints) -> None:
    """Update stats for a single question outcome."""
    stats["total"] = int(stats.get("total", 0)) + 1
    if points.answered:
        stats["answered"] = int(stats.get("answered", 0)) + 1
    exact = points.all_or_nothing >= 1
    if exact:
        stats["exact"] = int(stats.get("exact", 0)) + 1
    per = stats.setdefault("per_source", {})
    bucket = per.setdefault(source or "unknown", {"asked": 0, "exact": 0})
    bucket["asked"] += 1
    bucket["exact"] += 1 if exact else 0


def write_stats(stats: Dict, path: str) -> None:
    """Write stats as JSON to path."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(stats, f, indent=2)


def format_scores(scores: ScoreTuple, scale: float = 20) -> str:
    return (
        f"All-or-nothing: {scores.all_or_nothing:.2f}/{scale:g}\n"
        f"Partial: {scores.partial:.2f}/{scale:g}\n"
        f"Partial with penalty: {scores.partial_negative:.2f}/{scale:g}"
    )


def format_summary(stats: Dict, scores: Optional[ScoreTuple] = None) -> str:
    """Return a human-readable summary of stats."""
    total = int(stats.get("total", 0))
    answered = int(stats.get("answered", 0))
    exact = int(stats.get("exact", 0))
    lines = [f"Answered: {answered}/{total}", f"Exact: {exact}/{total}"]
    per = stats.get("per_source", {})
    for src in sorted(per.keys()):
        lines.append(f"{src}: {per[src].get('exact', 0)}/{per[src].get('asked', 0)}")
    if scores is not None:
        lines.append(format_scores(scores))
    return "\n".join(lines)
