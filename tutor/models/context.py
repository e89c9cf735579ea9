"""
Tutor Context Models

The full per-subject state handed to and returned from the orchestrator on
every turn. This is the unit of persistence.
"""

from datetime import datetime
import logging
from typing import Any, Literal, Optional, get_args
from pydantic import BaseModel, Field
import uuid

from tutor.models.subject import Subject
from tutor.models.lesson_plan import Lesson, LessonPlan, PlanState, plan_state
from tutor.models.progress import LearningProgress

logger = logging.getLogger("tutor.context")


ToolName = Literal[
    "new_subject",
    "new_lesson_plan",
    "update_lesson_plan",
    "clarifying_question",
    "lesson_complete",
    "next_lesson",
    "interactive_component",
    "subject_complete",
    "review_request",
    "summary_request",
    "rephrase_request",
    "feedback_log",
]

TOOL_NAMES: tuple[str, ...] = get_args(ToolName)

LearnerLevel = Literal["beginner", "intermediate", "advanced"]


class ToolCallRecord(BaseModel):
    """A tool call proposed by the LLM and the result the dispatcher produced."""

    tool_name: ToolName
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] = Field(default_factory=dict)
    call_id: Optional[str] = Field(default=None, description="Remote tool call id, if any")

    @property
    def is_error(self) -> bool:
        return "error" in self.result


class ConversationTurn(BaseModel):
    """One entry of the conversation history."""

    id: str = Field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)


class UserProfile(BaseModel):
    """Learner hints folded into run instructions."""

    learning_goals: list[str] = Field(default_factory=list)
    self_assessed_level: Optional[LearnerLevel] = None
    preferred_learning_style: Optional[str] = None
    preferred_pace: Optional[str] = None


# Keys of TutorContext a caller may replace through overrides. History is
# append-only and is never overridable.
OVERRIDABLE_FIELDS = ("user_id", "subject", "lesson_plan", "progress", "profile", "instruction_overrides")


class TutorContext(BaseModel):
    """Session state for one learner and one subject."""

    user_id: Optional[str] = None
    subject: Optional[Subject] = None
    lesson_plan: Optional[LessonPlan] = None
    progress: LearningProgress = Field(default_factory=LearningProgress)
    history: list[ConversationTurn] = Field(default_factory=list)
    profile: UserProfile = Field(default_factory=UserProfile)
    instruction_overrides: list[str] = Field(
        default_factory=list,
        description="Extra instruction lines appended to every run",
    )

    @property
    def subject_id(self) -> Optional[str]:
        return self.subject.id if self.subject else None

    @property
    def current_lesson(self) -> Optional[Lesson]:
        if self.lesson_plan is None:
            return None
        return self.lesson_plan.current_lesson

    @property
    def plan_state(self) -> PlanState:
        return plan_state(self.lesson_plan)

    @property
    def learner_level(self) -> Optional[str]:
        return self.profile.self_assessed_level

    def add_turn(
        self,
        role: Literal["user", "assistant"],
        content: str,
        tool_calls: Optional[list[ToolCallRecord]] = None,
    ) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content, tool_calls=tool_calls or [])
        self.history.append(turn)
        return turn

    def first_user_message(self) -> Optional[str]:
        for turn in self.history:
            if turn.role == "user":
                return turn.content
        return None

    def merge_overrides(self, overrides: Optional[dict[str, Any]]) -> None:
        """
        Replace top-level fields with caller-supplied values.

        Values are validated against the field types; unknown keys and
        `history` are ignored. Nothing is applied when any value fails
        validation.

        Raises:
            ValidationError: if an override does not fit its field
        """
        if not overrides:
            return
        accepted = {}
        for key, value in overrides.items():
            if key not in OVERRIDABLE_FIELDS:
                logger.warning(f"Ignoring context override for '{key}'")
                continue
            accepted[key] = value
        if not accepted:
            return
        validated = TutorContext.model_validate(accepted)
        for key in accepted:
            setattr(self, key, getattr(validated, key))

    def sync_progress(self) -> None:
        """Keep denormalized plan fields and subject progress in step with the plan."""
        self.progress.sync_plan(self.lesson_plan)
        if self.subject is not None and self.lesson_plan is not None and self.subject.is_active:
            self.subject.progress = self.lesson_plan.progress_percent()
