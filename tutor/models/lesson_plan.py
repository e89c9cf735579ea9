"""
Lesson Plan Models

Lesson plan state machine: NoPlan -> Active(index) -> ... -> Complete.

NoPlan is represented by the absence of a plan on the TutorContext. A plan
is Active while `current_lesson_index < len(lessons)` and Complete once the
index reaches `len(lessons)`.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from tutor.exceptions import StateTransitionError
from tutor.services.mastery import MasteryResult, evaluate_mastery


RECENT_CONTENT_WINDOW = 3

NOT_COMPLETED_MESSAGE = (
    "Current lesson is not yet completed. Please demonstrate understanding "
    "(e.g., pass the assessment or practice) before advancing to the next lesson."
)
ALL_COMPLETE_MESSAGE = "Congratulations! You have completed all lessons in this subject."


class PlanState(str, Enum):
    NO_PLAN = "no_plan"
    ACTIVE = "active"
    COMPLETE = "complete"


class Concept(BaseModel):
    """A sub-concept inside a lesson."""

    id: str
    title: str
    description: str = ""
    completed: bool = False


class Lesson(BaseModel):
    """A single lesson in a plan."""

    id: str = Field(description="Unique lesson identifier")
    title: str
    description: str = ""
    completed: bool = False
    difficulty: Optional[str] = Field(default=None, description="beginner, intermediate or advanced")
    concepts: list[Concept] = Field(default_factory=list)
    current_concept_index: int = Field(default=0, ge=0)
    learning_objectives: list[str] = Field(default_factory=list)
    achievement: Optional[str] = None
    recent_content_types: list[str] = Field(
        default_factory=list,
        description="Most recent content types produced for this lesson, oldest first",
    )

    @property
    def current_concept(self) -> Optional[Concept]:
        if 0 <= self.current_concept_index < len(self.concepts):
            return self.concepts[self.current_concept_index]
        return None

    def advance_concept(self) -> Optional[Concept]:
        """Mark the current concept done and move the cursor forward."""
        concept = self.current_concept
        if concept is None:
            return None
        concept.completed = True
        if self.current_concept_index < len(self.concepts) - 1:
            self.current_concept_index += 1
        return self.current_concept

    def record_content_type(self, content_type: str) -> None:
        self.recent_content_types.append(content_type)
        if len(self.recent_content_types) > RECENT_CONTENT_WINDOW:
            self.recent_content_types = self.recent_content_types[-RECENT_CONTENT_WINDOW:]


class AdvanceResult(BaseModel):
    """Outcome of a successful advance() call."""

    completed_plan: bool = False
    lesson: Optional[Lesson] = None


class LessonPlan(BaseModel):
    """Ordered lessons for one subject, plus the current-lesson cursor."""

    subject_name: str
    lessons: list[Lesson] = Field(default_factory=list)
    current_lesson_index: int = Field(default=0, ge=0)
    difficulty: str = Field(default="beginner")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _check_index(self) -> "LessonPlan":
        if self.current_lesson_index > len(self.lessons):
            raise ValueError(
                f"current_lesson_index {self.current_lesson_index} out of range "
                f"for {len(self.lessons)} lessons"
            )
        return self

    # State

    @property
    def state(self) -> PlanState:
        if self.current_lesson_index >= len(self.lessons):
            return PlanState.COMPLETE
        return PlanState.ACTIVE

    @property
    def current_lesson(self) -> Optional[Lesson]:
        if self.current_lesson_index < len(self.lessons):
            return self.lessons[self.current_lesson_index]
        return None

    @property
    def total_lessons(self) -> int:
        return len(self.lessons)

    @property
    def completed_count(self) -> int:
        return sum(1 for lesson in self.lessons if lesson.completed)

    @property
    def all_completed(self) -> bool:
        return bool(self.lessons) and all(lesson.completed for lesson in self.lessons)

    def progress_percent(self) -> float:
        if not self.lessons:
            return 0.0
        return self.completed_count / len(self.lessons) * 100

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        return None

    def is_last_lesson(self, lesson: Lesson) -> bool:
        return bool(self.lessons) and self.lessons[-1].id == lesson.id

    # Transitions

    def complete_lesson(self, lesson_id: str, completed: bool = True) -> Lesson:
        """
        Set a lesson's completion flag.

        Raises:
            KeyError: if the lesson is not in this plan
        """
        lesson = self.get_lesson(lesson_id)
        if lesson is None:
            raise KeyError(lesson_id)
        lesson.completed = completed
        if completed and lesson.achievement is None:
            lesson.achievement = f"Completed {lesson.title}"
        return lesson

    def record_assessment(
        self,
        lesson_id: str,
        correct: float,
        total: float,
        learner_level: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> tuple[Lesson, MasteryResult]:
        """
        Grade a score for a lesson and mark it complete when it passes.

        A failing score never clears an already-earned completion.
        """
        lesson = self.get_lesson(lesson_id)
        if lesson is None:
            raise KeyError(lesson_id)
        result = evaluate_mastery(
            correct,
            total,
            learner_level=learner_level,
            difficulty=difficulty or lesson.difficulty or self.difficulty,
        )
        if result.passed:
            self.complete_lesson(lesson_id, True)
        return lesson, result

    def can_advance(self) -> bool:
        lesson = self.current_lesson
        return lesson is not None and lesson.completed

    def advance(self) -> AdvanceResult:
        """
        Move to the next lesson.

        Advancing from the final completed lesson moves the plan to Complete
        and reports `completed_plan=True`.

        Raises:
            StateTransitionError: if the plan is already complete or the
                current lesson is not completed
        """
        lesson = self.current_lesson
        if lesson is None:
            raise StateTransitionError("complete", "active", "All lessons are already completed")
        next_state = f"active({self.current_lesson_index + 1})"
        if not lesson.completed:
            raise StateTransitionError(
                f"active({self.current_lesson_index})", next_state, NOT_COMPLETED_MESSAGE
            )

        self.current_lesson_index += 1
        if self.current_lesson_index >= len(self.lessons):
            return AdvanceResult(completed_plan=True)
        return AdvanceResult(lesson=self.lessons[self.current_lesson_index])

    def apply_update(
        self,
        new_lessons: Optional[list[Lesson]] = None,
        remove_titles: Optional[list[str]] = None,
    ) -> list[str]:
        """
        Add and remove lessons without resetting progress.

        The cursor stays on the same lesson when it survives the update and
        is clamped into range otherwise. Returns the titles removed.
        """
        current = self.current_lesson
        removed: list[str] = []

        if remove_titles:
            targets = {title.strip().lower() for title in remove_titles}
            kept = []
            for lesson in self.lessons:
                if lesson.title.strip().lower() in targets or lesson.id in remove_titles:
                    removed.append(lesson.title)
                else:
                    kept.append(lesson)
            self.lessons = kept

        if new_lessons:
            self.lessons.extend(new_lessons)

        if current is not None and any(lesson.id == current.id for lesson in self.lessons):
            self.current_lesson_index = next(
                i for i, lesson in enumerate(self.lessons) if lesson.id == current.id
            )
        else:
            # Land on the first unfinished lesson at or after the old position.
            index = min(self.current_lesson_index, len(self.lessons))
            while index < len(self.lessons) and self.lessons[index].completed:
                index += 1
            self.current_lesson_index = index
        return removed


def plan_state(plan: Optional[LessonPlan]) -> PlanState:
    if plan is None:
        return PlanState.NO_PLAN
    return plan.state


def build_lesson(index: int, goal: str, difficulty: Optional[str] = None) -> Lesson:
    """Lesson for the n-th learning goal of a new plan."""
    goal = goal.strip()
    return Lesson(
        id=f"lesson_{index + 1}",
        title=f"Lesson {index + 1}: {goal}",
        description=f"Learn about {goal} with interactive examples and practice exercises.",
        difficulty=difficulty,
        learning_objectives=[goal],
    )


def create_lesson_plan(subject_name: str, goals: list[str], difficulty: str = "beginner") -> LessonPlan:
    """Build a plan with one lesson per goal, starting at lesson 0."""
    goals = [goal for goal in goals if goal and goal.strip()]
    if not goals:
        goals = [f"Introduction to {subject_name}"]
    return LessonPlan(
        subject_name=subject_name,
        lessons=[build_lesson(i, goal, difficulty) for i, goal in enumerate(goals)],
        current_lesson_index=0,
        difficulty=difficulty,
    )
