from __future__ import annotations

"""Randomness helpers for seeding and question-set selection."""

import os
import random
from typing import Any, Dict, List, Optional


def seed_if_needed() -> None:
    """Seed the RNG if the SEED env var is set."""
    seed = os.environ.get("SEED")
    if seed is not None:
        try:
            s = int(seed)
        except ValueError:
            return
        random.seed(s)


def _year_key(record: Dict[str, Any]) -> tuple:
    year = record.get("year")
    try:
        return (0, int(str(year).strip()))
    except (TypeError, ValueError):
        # missing or non-numeric years go last
        return (1, 0)


def select_questions(
    records: List[Dict[str, Any]],
    num_questions: Optional[int] = None,
    order_mode: str = "by_year",
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """Order raw question records and keep at most ``num_questions`` of them.

    ``by_year`` is a stable sort on the exam year; ``random`` shuffles.
    """
    if order_mode == "random":
        out = list(records)
        (rng or random).shuffle(out)
    elif order_mode == "by_year":
        out = sorted(records, key=_year_key)
    else:
        raise ValueError(f"Unknown order_mode: {order_mode}")
    if num_questions is not None and num_questions >= 0:
        out = out[:num_questions]
    return out
