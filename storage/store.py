from __future__ import annotations

"""Parquet-backed score history using pandas + pyarrow.

Unit of data: one row per finished session.
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from .schema import DTYPES, FLOWS, SCORE_COLUMNS, ResultRow

logger = logging.getLogger(__name__)

DATA_FILE = "results.parquet"


def _empty_df() -> pd.DataFrame:
    return pd.DataFrame({k: pd.Series(dtype=v) for k, v in DTYPES.items()})


def init_store(data_dir: Path) -> None:
    """Ensure data directory and an empty Parquet file with the right schema exist."""
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / DATA_FILE
    if not path.exists():
        _empty_df().to_parquet(path, engine="pyarrow", compression="zstd", index=False)


def validate_records(records: list[ResultRow]) -> pd.DataFrame:
    """Validate result rows and return a DataFrame with proper dtypes."""
    if not isinstance(records, list):
        raise TypeError("records must be a list[ResultRow]")
    rows = [r if isinstance(r, ResultRow) else ResultRow.model_validate(r) for r in records]
    if not rows:
        return _empty_df()
    df = pd.DataFrame([r.model_dump() for r in rows])
    return _fix_dtypes(df)


def _fix_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    for col, dt in DTYPES.items():
        if col not in df.columns:
            df[col] = pd.NA
        df[col] = df[col].astype(dt)
    return df[list(DTYPES.keys())]


def append_results(df_new: pd.DataFrame, data_path: Path) -> None:
    """Append rows to the history; a re-finished session replaces its older row."""
    data_path = Path(data_path)
    data_path.mkdir(parents=True, exist_ok=True)
    f = data_path / DATA_FILE
    if f.exists():
        df_old = pd.read_parquet(f, engine="pyarrow")
    else:
        df_old = _empty_df()
    combined = pd.concat([_fix_dtypes(df_old), _fix_dtypes(df_new.copy())], ignore_index=True)
    combined = _fix_dtypes(combined)
    # restarting and finishing again keeps only the latest attempt
    combined = combined.drop_duplicates(subset=["user_id", "session_id"], keep="last")
    combined.to_parquet(f, engine="pyarrow", compression="zstd", index=False)
    logger.debug("history now holds %d rows", len(combined))


def load_all(data_path: Path) -> pd.DataFrame:
    """Load the full history with dtypes fixed and an ``answered_ratio`` column."""
    f = Path(data_path) / DATA_FILE
    if not f.exists():
        return _empty_df().assign(answered_ratio=pd.Series(dtype="float32"))
    df = _fix_dtypes(pd.read_parquet(f, engine="pyarrow"))
    n = df["n_questions"].astype("float32").where(df["n_questions"] > 0, other=1.0)
    df["answered_ratio"] = (df["answered"].astype("float32") / n).astype("float32")
    return df


def query_trend(df: pd.DataFrame, *, flow: str, user_id: Optional[str] = None) -> pd.DataFrame:
    """Rows of one flow (optionally one user), oldest first."""
    if flow not in FLOWS:
        raise ValueError(f"Unknown flow: {flow}")
    mask = df["flow"].astype("string") == flow
    if user_id is not None:
        mask &= df["user_id"].astype("string") == user_id
    return df[mask].sort_values("finished_at").reset_index(drop=True)


def best_scores(df: pd.DataFrame) -> pd.Series:
    """Best result per scheme across the given rows."""
    if df.empty:
        return pd.Series({c: 0.0 for c in SCORE_COLUMNS}, dtype="float32")
    return df[SCORE_COLUMNS].max().astype("float32")


def export_ndjson(df: pd.DataFrame, out_path: Path) -> None:
    """Export a DataFrame to line-delimited JSON (NDJSON) for quick inspection."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    df.to_json(out_path, orient="records", lines=True, date_format="iso")
