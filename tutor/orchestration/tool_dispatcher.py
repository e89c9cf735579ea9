"""
Tool Dispatcher

Executes the tool calls proposed by the LLM during a run. Each handler is a
state transition over the TutorContext plus a structured result. Tool-logic
errors come back as `{"error": ...}` results, never as exceptions, so the
model can react to them within the same run.
"""

import json
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tutor.exceptions import (
    SessionInitializationError,
    StateTransitionError,
    ToolParameterError,
    UnknownToolError,
)
from tutor.models.content import InteractiveContent
from tutor.models.context import TOOL_NAMES, LearnerLevel, ToolCallRecord, TutorContext
from tutor.models.lesson_plan import (
    ALL_COMPLETE_MESSAGE,
    Lesson,
    PlanState,
    create_lesson_plan,
)
from tutor.models.progress import LearningProgress
from tutor.models.subject import create_subject
from tutor.prompts.templates import NEW_SUBJECT_FOLLOW_UP
from tutor.services.content_normalizer import build_content
from tutor.services.diversity import select_type
from tutor.services.mastery import get_mastery_threshold
from tutor.services.summaries import (
    build_concept_summary,
    build_lesson_summary,
    build_progress_summary,
    build_subject_summary,
)

if TYPE_CHECKING:
    from tutor.orchestration.session_manager import LLMSessionManager

logger = logging.getLogger("tutor.tools")


# ─── Parameter models ─────────────────────────────────────────────────

class _ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class NewSubjectParams(_ToolParams):
    name: str = Field(pattern=r"\S", validation_alias=AliasChoices("name", "subject_name", "subject"))
    description: Optional[str] = None
    initial_level: Optional[LearnerLevel] = None
    topic_keywords: Optional[list[str]] = None


class NewLessonPlanParams(_ToolParams):
    subject: Optional[str] = Field(default=None, validation_alias=AliasChoices("subject", "subject_name"))
    difficulty_level: Optional[LearnerLevel] = None
    learning_goals: list[str] = Field(default_factory=list)
    estimated_duration: Optional[str] = None


class UpdateLessonPlanParams(_ToolParams):
    reason: str = ""
    adjustments: list[str] = Field(default_factory=list)
    new_lessons: list[str] = Field(default_factory=list)
    remove_lessons: list[str] = Field(default_factory=list)


class ClarifyingQuestionParams(_ToolParams):
    question: str = Field(min_length=1)
    context: str = ""
    options: list[str] = Field(default_factory=list)


class LessonCompleteParams(_ToolParams):
    lesson_id: str = Field(min_length=1)
    completed: bool
    performance_score: Optional[float] = Field(default=None, ge=0, le=100)
    feedback: Optional[str] = None


class NextLessonParams(_ToolParams):
    current_lesson_id: Optional[str] = None
    assess_readiness: bool = False


class InteractiveComponentParams(_ToolParams):
    type: str = Field(min_length=1, validation_alias=AliasChoices("type", "component_type"))
    content: dict[str, Any] = Field(default_factory=dict)
    learning_objective: str = ""
    difficulty: Optional[LearnerLevel] = None


class SubjectCompleteParams(_ToolParams):
    subject_id: Optional[str] = None
    final_score: Optional[float] = Field(default=None, ge=0, le=100)
    recommendations: list[str] = Field(default_factory=list)


class ReviewRequestParams(_ToolParams):
    topics: list[str] = Field(min_length=1)
    weak_areas: list[str] = Field(default_factory=list)
    review_type: Optional[str] = None


class SummaryRequestParams(_ToolParams):
    content_type: str = Field(default="progress", validation_alias=AliasChoices("content_type", "summary_type"))
    scope: Optional[str] = None


class RephraseRequestParams(_ToolParams):
    original_content: str = Field(min_length=1)
    style: str = Field(default="simpler", validation_alias=AliasChoices("style", "rephrase_style"))
    target_level: Optional[LearnerLevel] = None


class FeedbackLogParams(_ToolParams):
    interaction_type: str = Field(min_length=1)
    user_response: str = ""
    success_rate: Optional[float] = Field(default=None, ge=0, le=100)
    engagement_level: Optional[str] = None
    notes: Optional[str] = None


# ─── Dispatch result ──────────────────────────────────────────────────

class DispatchOutcome(BaseModel):
    """Result of one tool call plus any content it produced."""

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] = Field(default_factory=dict)
    content: list[InteractiveContent] = Field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return "error" in self.result

    def to_record(self, call_id: Optional[str] = None) -> Optional[ToolCallRecord]:
        if self.tool_name not in TOOL_NAMES:
            return None
        return ToolCallRecord(
            tool_name=self.tool_name,
            parameters=self.parameters,
            result=self.result,
            call_id=call_id,
        )

    def output_json(self) -> str:
        """Serialized result submitted back to the run."""
        return json.dumps(self.result, default=str)


Handler = Callable[[Any, TutorContext], Awaitable[tuple[dict[str, Any], list[InteractiveContent]]]]


class ToolDispatcher:
    """Routes tool calls to local handlers."""

    def __init__(
        self,
        session_manager: Optional["LLMSessionManager"] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session_manager = session_manager
        self.rng = rng or random.Random()
        self._handlers: dict[str, tuple[type[_ToolParams], Handler]] = {
            "new_subject": (NewSubjectParams, self._new_subject),
            "new_lesson_plan": (NewLessonPlanParams, self._new_lesson_plan),
            "update_lesson_plan": (UpdateLessonPlanParams, self._update_lesson_plan),
            "clarifying_question": (ClarifyingQuestionParams, self._clarifying_question),
            "lesson_complete": (LessonCompleteParams, self._lesson_complete),
            "next_lesson": (NextLessonParams, self._next_lesson),
            "interactive_component": (InteractiveComponentParams, self._interactive_component),
            "subject_complete": (SubjectCompleteParams, self._subject_complete),
            "review_request": (ReviewRequestParams, self._review_request),
            "summary_request": (SummaryRequestParams, self._summary_request),
            "rephrase_request": (RephraseRequestParams, self._rephrase_request),
            "feedback_log": (FeedbackLogParams, self._feedback_log),
        }

    async def dispatch(
        self,
        tool_name: str,
        parameters: Optional[dict[str, Any]],
        context: TutorContext,
    ) -> DispatchOutcome:
        """Execute one tool call against `context`."""
        parameters = parameters if isinstance(parameters, dict) else {}
        outcome = DispatchOutcome(tool_name=tool_name, parameters=parameters)

        try:
            params_model, handler = self._resolve(tool_name)
            params = self._parse(tool_name, params_model, parameters)
            result, content = await handler(params, context)
        except (UnknownToolError, ToolParameterError) as e:
            result, content = {"error": e.message}, []
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}", exc_info=True)
            result, content = {"error": f"{tool_name} failed: {e}"}, []

        outcome.result = result
        outcome.content = content
        logger.info(json.dumps({
            "step": "TOOL_CALL",
            "tool": tool_name,
            "status": "error" if outcome.is_error else "complete",
            "content_items": len(content),
            "error": result.get("error"),
        }))
        return outcome

    def _resolve(self, tool_name: str) -> tuple[type[_ToolParams], Handler]:
        entry = self._handlers.get(tool_name)
        if entry is None:
            raise UnknownToolError(tool_name)
        return entry

    @staticmethod
    def _parse(tool_name: str, params_model: type[_ToolParams], parameters: dict[str, Any]) -> _ToolParams:
        try:
            return params_model.model_validate(parameters)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc']) or 'parameters'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ToolParameterError(tool_name, errors) from e

    # ─── Subject ──────────────────────────────────────────────────────

    async def _new_subject(self, params: NewSubjectParams, context: TutorContext):
        subject = create_subject(params.name, params.topic_keywords)
        context.subject = subject
        context.lesson_plan = None
        context.progress = LearningProgress()
        if params.initial_level:
            context.profile.self_assessed_level = params.initial_level

        session_error = None
        if self.session_manager is not None:
            try:
                await self.session_manager.get_or_create_session(
                    subject.id, subject.name, replay_message=context.first_user_message()
                )
            except SessionInitializationError as e:
                # The session is created lazily on the next turn instead.
                session_error = e.reason
                logger.warning(f"Session for new subject {subject.id} not created: {e}")

        follow_up = NEW_SUBJECT_FOLLOW_UP.render(subject=subject.name)
        context.add_turn("assistant", follow_up)

        result: dict[str, Any] = {
            "success": True,
            "subject": subject.model_dump(mode="json"),
            "message": f"Started learning {subject.name}. Let's begin by understanding your current level and goals.",
            "followUp": follow_up,
        }
        if session_error:
            result["sessionPending"] = True
        return result, []

    async def _subject_complete(self, params: SubjectCompleteParams, context: TutorContext):
        subject = context.subject
        if subject is None:
            return {"error": "No active subject"}, []
        if params.subject_id and params.subject_id != subject.id:
            logger.warning(f"subject_complete named {params.subject_id}, completing current subject {subject.id}")

        subject.mark_complete()
        context.sync_progress()
        return {
            "success": True,
            "subjectCompleted": True,
            "subject": subject.model_dump(mode="json"),
            "completedAt": subject.completed_at.isoformat() if subject.completed_at else None,
            "finalScore": params.final_score,
            "recommendations": params.recommendations,
            "message": f"Congratulations on completing {subject.name}!",
            "subjectSummary": build_subject_summary(context),
        }, []

    # ─── Lesson plan ──────────────────────────────────────────────────

    async def _new_lesson_plan(self, params: NewLessonPlanParams, context: TutorContext):
        goals = params.learning_goals or list(context.profile.learning_goals)
        if params.learning_goals and not context.profile.learning_goals:
            context.profile.learning_goals = list(params.learning_goals)

        difficulty = params.difficulty_level or context.profile.self_assessed_level or "beginner"
        subject_name = params.subject or (context.subject.name if context.subject else "General Study")

        plan = create_lesson_plan(subject_name, goals, difficulty)
        context.lesson_plan = plan
        context.sync_progress()
        return {
            "success": True,
            "lessonPlan": plan.model_dump(mode="json"),
            "totalLessons": plan.total_lessons,
            "message": f"Created a lesson plan with {plan.total_lessons} lessons for {subject_name}.",
        }, []

    async def _update_lesson_plan(self, params: UpdateLessonPlanParams, context: TutorContext):
        plan = context.lesson_plan
        if plan is None:
            return {"error": "No lesson plan to update"}, []

        existing_ids = {lesson.id for lesson in plan.lessons}
        added: list[Lesson] = []
        next_number = len(plan.lessons) + 1
        for title in (t.strip() for t in params.new_lessons):
            if not title:
                continue
            while f"lesson_{next_number}" in existing_ids:
                next_number += 1
            lesson_id = f"lesson_{next_number}"
            existing_ids.add(lesson_id)
            added.append(Lesson(
                id=lesson_id,
                title=title,
                description=f"Updated lesson: {title}",
                difficulty=plan.difficulty,
                learning_objectives=[title],
            ))

        removed = plan.apply_update(new_lessons=added, remove_titles=params.remove_lessons)
        context.sync_progress()
        return {
            "success": True,
            "lessonPlan": plan.model_dump(mode="json"),
            "added": [lesson.title for lesson in added],
            "removed": removed,
            "reason": params.reason,
            "adjustments": params.adjustments,
        }, []

    async def _lesson_complete(self, params: LessonCompleteParams, context: TutorContext):
        plan = context.lesson_plan
        if plan is None:
            return {"error": "No active lesson plan"}, []
        lesson = plan.get_lesson(params.lesson_id)
        if lesson is None:
            return {"error": "Lesson not found"}, []

        threshold = get_mastery_threshold(context.learner_level, lesson.difficulty or plan.difficulty)
        result: dict[str, Any] = {"success": True, "lessonId": lesson.id}

        if params.performance_score is not None:
            _, mastery = plan.record_assessment(
                lesson.id, params.performance_score, 100, learner_level=context.learner_level
            )
            completed = mastery.passed
            result.update({
                "score": mastery.percentage,
                "threshold": mastery.threshold_percentage,
            })
            if params.completed and not mastery.passed:
                result["message"] = (
                    f"Score {mastery.percentage}% is below the {mastery.threshold_percentage}% "
                    "mastery threshold; the lesson stays incomplete."
                )
        else:
            plan.complete_lesson(lesson.id, params.completed)
            completed = params.completed

        context.progress.record_attempt(completed, threshold)
        context.sync_progress()

        result.update({
            "completed": lesson.completed,
            "progress": context.subject.progress if context.subject else plan.progress_percent(),
            "feedback": params.feedback,
        })
        result.setdefault(
            "message",
            f"Lesson '{lesson.title}' marked {'complete' if lesson.completed else 'incomplete'}.",
        )
        if lesson.completed:
            result["summary"] = build_lesson_summary(context, lesson)
            if plan.all_completed:
                result["subjectSummary"] = build_subject_summary(context)
        return result, []

    async def _next_lesson(self, params: NextLessonParams, context: TutorContext):
        plan = context.lesson_plan
        if plan is None:
            return {"error": "No active lesson plan"}, []
        if plan.state is PlanState.COMPLETE:
            return {"success": True, "completed": True, "message": ALL_COMPLETE_MESSAGE}, []

        try:
            advanced = plan.advance()
        except StateTransitionError as e:
            return {"error": e.reason, "lessonId": plan.current_lesson.id if plan.current_lesson else None}, []

        context.sync_progress()
        if advanced.completed_plan or advanced.lesson is None:
            return {
                "success": True,
                "completed": True,
                "message": ALL_COMPLETE_MESSAGE,
                "subjectSummary": build_subject_summary(context),
            }, []

        lesson = advanced.lesson
        difficulty = lesson.difficulty or plan.difficulty
        subject_id = context.subject_id

        explainer = build_content(
            "explainer",
            {
                "title": lesson.title,
                "overview": f"Overview of {lesson.title}",
                "sections": [{"heading": f"Introduction to {lesson.title}", "paragraphs": [lesson.description]}],
                "conclusion": f"Summary of {lesson.title}",
                "difficulty": difficulty,
            },
            lesson.title,
            difficulty,
            subject_id,
        )
        lesson.record_content_type(explainer.type)

        practice_type = select_type("practice", lesson.recent_content_types, self.rng)
        practice = build_content(practice_type, {}, lesson.title, difficulty, subject_id)
        lesson.record_content_type(practice.type)

        return {
            "success": True,
            "nextLesson": lesson.model_dump(mode="json"),
            "lessonNumber": plan.current_lesson_index + 1,
            "totalLessons": plan.total_lessons,
            "explainerComponent": explainer.to_payload(),
            "practiceComponent": practice.to_payload(),
        }, [explainer, practice]

    # ─── Content ──────────────────────────────────────────────────────

    async def _interactive_component(self, params: InteractiveComponentParams, context: TutorContext):
        lesson = context.current_lesson
        objective = params.learning_objective or (lesson.title if lesson else "") or (
            context.subject.name if context.subject else ""
        )
        difficulty = params.difficulty or (lesson.difficulty if lesson else None) or (
            context.lesson_plan.difficulty if context.lesson_plan else None
        )
        item = build_content(params.type, params.content, objective, difficulty, context.subject_id)
        if lesson is not None:
            lesson.record_content_type(item.type)
        return item.to_payload(), [item]

    # ─── Conversation actions ─────────────────────────────────────────

    async def _clarifying_question(self, params: ClarifyingQuestionParams, context: TutorContext):
        return {
            "type": "clarifying_question",
            "question": params.question,
            "context": params.context,
            "options": params.options,
            "requiresUserResponse": True,
        }, []

    async def _review_request(self, params: ReviewRequestParams, context: TutorContext):
        review_type = params.review_type or "comprehensive"
        return {
            "type": "review_session",
            "topics": params.topics,
            "weakAreas": params.weak_areas,
            "reviewType": review_type,
            "message": f"Starting {review_type} review of: {', '.join(params.topics)}",
        }, []

    async def _summary_request(self, params: SummaryRequestParams, context: TutorContext):
        kind = params.content_type.strip().lower()
        if kind == "lesson":
            summary = build_lesson_summary(context)
        elif kind == "concept":
            summary = build_concept_summary(context, params.scope)
        else:
            summary = build_progress_summary(context)
        summary["scope"] = params.scope
        return summary, []

    async def _rephrase_request(self, params: RephraseRequestParams, context: TutorContext):
        return {
            "type": "rephrase",
            "originalContent": params.original_content,
            "style": params.style,
            "targetLevel": params.target_level,
            "message": f"Rephrasing content in a {params.style} way...",
        }, []

    async def _feedback_log(self, params: FeedbackLogParams, context: TutorContext):
        if params.success_rate is not None:
            lesson = context.current_lesson
            threshold = get_mastery_threshold(
                context.learner_level,
                (lesson.difficulty if lesson else None)
                or (context.lesson_plan.difficulty if context.lesson_plan else None),
            )
            context.progress.record_attempt(params.success_rate / 100 >= threshold, threshold)

        record = ToolCallRecord(
            tool_name="feedback_log",
            parameters=params.model_dump(),
            result={"logged": True},
        )
        context.add_turn("assistant", f"Logged feedback: {params.interaction_type}", [record])
        return {
            "success": True,
            "logged": True,
            "interactionType": params.interaction_type,
            "engagementLevel": params.engagement_level,
            "successRate": params.success_rate,
        }, []
