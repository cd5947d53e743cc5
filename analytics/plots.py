from __future__ import annotations

"""Matplotlib plots for score trends and scheme comparison."""

import os
from typing import Optional, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from storage.schema import SCORE_COLUMNS

PathLike = Union[str, "os.PathLike[str]"]

_SCHEME_LABELS = {
    "score_all_or_nothing": "All-or-nothing",
    "score_partial": "Partial",
    "score_partial_negative": "Partial (penalty)",
}


def plot_trend(
    df: pd.DataFrame,
    *,
    flow: Optional[str] = None,
    user_id: Optional[str] = None,
    value_col: str = "score_partial_negative",
    pass_mark: Optional[float] = None,
    save_path: Optional[PathLike] = None,
) -> bool:
    """Scores over session order, with the EWMA line when present. False if nothing to plot."""
    g = df.copy()
    if flow is not None:
        g = g[g["flow"].astype("string") == flow]
    if user_id is not None:
        g = g[g["user_id"].astype("string") == user_id]
    if g.empty:
        return False
    g = g.sort_values("session_idx")
    plt.figure()
    plt.plot(g["session_idx"], g[value_col], marker="o", linestyle="", label=_SCHEME_LABELS.get(value_col, value_col))
    smooth_col = f"{value_col}_smooth"
    if smooth_col in g.columns:
        plt.plot(g["session_idx"], g[smooth_col], linewidth=2, label="EWMA")
    if pass_mark is not None:
        plt.axhline(pass_mark, color="grey", linestyle="--", linewidth=1, label="pass mark")
    plt.ylim(0, 20)
    plt.xlabel("Session")
    plt.ylabel("Score /20")
    bits = [b for b in [flow, user_id] if b]
    plt.title("Trend: " + ", ".join(bits) if bits else "Trend")
    plt.legend()
    if save_path:
        plt.savefig(save_path, bbox_inches="tight", dpi=150)
    plt.close()
    return True


def plot_scheme_comparison(
    df: pd.DataFrame,
    *,
    save_path: Optional[PathLike] = None,
) -> bool:
    """Mean score of each scheme, grouped by flow."""
    if df.empty:
        return False
    means = df.groupby("flow", observed=True)[SCORE_COLUMNS].mean()
    if means.empty:
        return False
    x = np.arange(len(means.index))
    width = 0.8 / len(SCORE_COLUMNS)
    plt.figure()
    for i, col in enumerate(SCORE_COLUMNS):
        plt.bar(x + i * width, means[col].to_numpy(), width=width, label=_SCHEME_LABELS[col])
    plt.xticks(ticks=x + width, labels=means.index.astype(str))
    plt.ylim(0, 20)
    plt.ylabel("Mean score /20")
    plt.title("Scoring schemes by flow")
    plt.legend()
    if save_path:
        plt.savefig(save_path, bbox_inches="tight", dpi=150)
    plt.close()
    return True
