from __future__ import annotations

"""Analytics configuration (hyperparameters) using Pydantic."""

from pydantic import BaseModel, Field


class AnalyticsConfig(BaseModel):
    """Hyperparameters for score-history analytics.

    - smoothing_span: EWMA span in sessions (>1)
    - pass_mark: score at or above which a session counts as passed
    - scale: top of the score scale
    - scheme: score column used for the pass flag
    """

    smoothing_span: int = Field(5, gt=1)
    pass_mark: float = Field(10.0, ge=0)
    scale: float = Field(20.0, gt=0)
    scheme: str = Field("score_partial_negative", pattern=r"^score_(all_or_nothing|partial|partial_negative)$")
