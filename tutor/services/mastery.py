"""
Mastery Evaluator

Pass/fail decision for a lesson against a threshold that adapts to the
learner's level and the lesson's difficulty.
"""

from typing import Optional
from pydantic import BaseModel, Field


DEFAULT_MASTERY_THRESHOLD = 0.7
INTERMEDIATE_MASTERY_THRESHOLD = 0.8
ADVANCED_MASTERY_THRESHOLD = 0.9


class MasteryResult(BaseModel):
    """Outcome of grading one score against the adaptive threshold."""

    passed: bool
    score_ratio: float = Field(ge=0.0, description="correct / total")
    threshold: float = Field(description="Threshold the ratio was compared with")

    @property
    def percentage(self) -> int:
        return round(self.score_ratio * 100)

    @property
    def threshold_percentage(self) -> int:
        return round(self.threshold * 100)


def _normalize(level: Optional[str]) -> str:
    return (level or "").strip().lower()


def get_mastery_threshold(
    learner_level: Optional[str] = None,
    difficulty: Optional[str] = None,
) -> float:
    """
    Threshold for the harder of learner level and lesson difficulty.

    advanced -> 0.9, intermediate -> 0.8, anything else -> 0.7.
    """
    levels = {_normalize(learner_level), _normalize(difficulty)}
    if "advanced" in levels:
        return ADVANCED_MASTERY_THRESHOLD
    if "intermediate" in levels:
        return INTERMEDIATE_MASTERY_THRESHOLD
    return DEFAULT_MASTERY_THRESHOLD


def evaluate_mastery(
    correct: float,
    total: float,
    learner_level: Optional[str] = None,
    difficulty: Optional[str] = None,
) -> MasteryResult:
    """
    Grade `correct` out of `total` against the adaptive threshold.

    Raises:
        ValueError: if total is not positive or correct is negative
    """
    if total <= 0:
        raise ValueError(f"total must be positive, got {total}")
    if correct < 0:
        raise ValueError(f"correct must not be negative, got {correct}")

    score_ratio = correct / total
    threshold = get_mastery_threshold(learner_level, difficulty)
    return MasteryResult(
        passed=score_ratio >= threshold,
        score_ratio=score_ratio,
        threshold=threshold,
    )
