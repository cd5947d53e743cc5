from .scoring import (
    DECIMALS,
    PENALTY_PER_WRONG,
    SCORE_SCALE,
    QuestionPoints,
    ScoreAccumulator,
    ScoreTuple,
    compute_scores,
    normalize,
    question_points,
)

__all__ = [
    "DECIMALS",
    "PENALTY_PER_WRONG",
    "SCORE_SCALE",
    "QuestionPoints",
    "ScoreAccumulator",
    "ScoreTuple",
    "compute_scores",
    "normalize",
    "question_points",
]
