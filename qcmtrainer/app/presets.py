from __future__ import annotations

"""Curated parameter presets per flow.

Presets help users pick sensible session settings without many flags.
"""

TRAINING_PRESETS = {
    "default": {
        "order_mode": "by_year",
        "num_questions": None,
    },
    "shuffle": {
        "order_mode": "random",
        "num_questions": None,
    },
    "quick": {
        "order_mode": "random",
        "num_questions": 10,
    },
}

TD_PRESETS = {
    "default": {
        "order_mode": "by_year",
        "num_questions": None,
    },
    "shuffle": {
        "order_mode": "random",
        "num_questions": None,
    },
}

EXAM_PRESETS = {
    "short": {
        "order_mode": "random",
        "num_questions": 20,
        "duration_s": 15 * 60,
    },
    "default": {
        "order_mode": "random",
        "num_questions": 40,
        "duration_s": 60 * 60,
    },
    "long": {
        "order_mode": "random",
        "num_questions": 100,
        "duration_s": 2 * 60 * 60,
    },
}
