from __future__ import annotations

"""Metric computations for per-session analytics."""

import numpy as np
import pandas as pd
from .config import AnalyticsConfig


def compute_metrics(df: pd.DataFrame, cfg: AnalyticsConfig) -> pd.DataFrame:
    """Compute answered ratio, scheme gaps and the pass flag.

    Returns a copy with added columns:
    - answered_ratio, penalty_gap, exact_gap, pct, passed
    """
    out = df.copy()
    # n_questions is 0 for empty sessions
    n = out["n_questions"].astype("float32").where(out["n_questions"] > 0, other=1.0)
    out["answered_ratio"] = (out["answered"].astype("float32") / n).astype("float32")

    # What the wrong picks cost, and what near misses cost
    out["penalty_gap"] = (out["score_partial"] - out["score_partial_negative"]).clip(lower=0).astype("float32")
    out["exact_gap"] = (out["score_partial"] - out["score_all_or_nothing"]).clip(lower=0).astype("float32")

    out["pct"] = (out[cfg.scheme].astype("float32") / float(cfg.scale) * 100.0).astype("float32")
    out["passed"] = np.where(out[cfg.scheme].astype("float32") >= float(cfg.pass_mark), True, False)
    return out
