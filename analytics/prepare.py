from __future__ import annotations

"""Load the score history and compute derived metrics."""

from pathlib import Path
import pandas as pd
from storage.store import load_all
from .config import AnalyticsConfig
from .metrics import compute_metrics


def load_and_prepare(data_dir: Path, cfg: AnalyticsConfig) -> pd.DataFrame:
    """Read the history Parquet and compute metrics with consistent dtypes.

    - Sorts by (finished_at, session_id).
    - Computes metrics and adds a stable session index 'session_idx'.
    """
    df = load_all(Path(data_dir))
    df = df.sort_values(["finished_at", "session_id"], kind="stable").reset_index(drop=True)
    df = compute_metrics(df, cfg)
    # Stable session order index
    df["session_idx"] = pd.factorize(df["session_id"])[0]
    return df
