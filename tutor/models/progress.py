"""
Learning Progress Model

Answer counters and the review/advance flags derived from them.
"""

from typing import Optional, TYPE_CHECKING
from pydantic import BaseModel, Field

from tutor.services.mastery import DEFAULT_MASTERY_THRESHOLD

if TYPE_CHECKING:
    from tutor.models.lesson_plan import LessonPlan


# Accuracy below this fraction of the mastery threshold flags the lesson for review.
REVIEW_FACTOR = 0.8


class LearningProgress(BaseModel):
    """Graded-interaction counters for the current subject."""

    correct_answers: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0)
    needs_review: bool = False
    ready_to_advance: bool = False
    current_lesson_index: Optional[int] = Field(default=None, description="Denormalized from the plan")
    total_lessons: Optional[int] = Field(default=None, description="Denormalized from the plan")

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_answers / self.total_attempts

    def record_attempt(self, correct: bool, threshold: float = DEFAULT_MASTERY_THRESHOLD) -> None:
        self.total_attempts += 1
        if correct:
            self.correct_answers += 1
        self.recompute(threshold)

    def recompute(self, threshold: float = DEFAULT_MASTERY_THRESHOLD) -> None:
        if self.total_attempts == 0:
            self.needs_review = False
            self.ready_to_advance = False
            return
        accuracy = self.accuracy
        self.ready_to_advance = accuracy >= threshold
        self.needs_review = accuracy < threshold * REVIEW_FACTOR

    def sync_plan(self, plan: Optional["LessonPlan"]) -> None:
        if plan is None:
            self.current_lesson_index = None
            self.total_lessons = None
        else:
            self.current_lesson_index = plan.current_lesson_index
            self.total_lessons = plan.total_lessons
