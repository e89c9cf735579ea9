"""Tutor business logic shared by the HTTP routes."""

import logging
from typing import Any, Optional

from config import get_settings
from database import get_db_manager
from shared.services.llm_service import LLMService
from shared.utils.exceptions import DatabaseException, LessonNotFoundException, SubjectNotFoundException
from tutor.exceptions import PersistenceError
from tutor.models.content import InteractiveContent
from tutor.models.context import ConversationTurn, TutorContext
from tutor.models.messages import (
    AssessmentRequest,
    AssessmentResponse,
    ContextUpdateRequest,
    InteractionRequest,
    RespondRequest,
    RespondResponse,
    RetryAffordance,
)
from tutor.models.subject import Subject
from tutor.models.turn_logs import TurnLogEntry
from tutor.orchestration.orchestrator import TurnResult, TutorOrchestrator
from tutor.orchestration.session_manager import LLMSessionManager
from tutor.services.assessment_service import evaluate_assessment
from tutor.services.interaction_adapter import describe_interaction
from tutor.services.mastery import get_mastery_threshold
from tutor.services.persistence_service import PersistenceService
from tutor.utils.async_utils import run_blocking

logger = logging.getLogger("tutor.service")


class TutorService:
    """Loads contexts, runs turns through the orchestrator and stores the results."""

    def __init__(self, persistence: PersistenceService, orchestrator: TutorOrchestrator):
        self.persistence = persistence
        self.orchestrator = orchestrator
        # Live contexts, so concurrent requests for a subject share one object.
        self._contexts: dict[tuple[str, str], TutorContext] = {}
        # Contexts of users who have not picked a subject yet.
        self._drafts: dict[str, TutorContext] = {}

    # ─── Context loading ──────────────────────────────────────────────

    async def _load_context(self, user_id: str, subject_id: Optional[str]) -> TutorContext:
        if subject_id is None:
            draft = self._drafts.get(user_id)
            if draft is None:
                draft = TutorContext(user_id=user_id)
                self._drafts[user_id] = draft
            return draft

        key = (user_id, subject_id)
        cached = self._contexts.get(key)
        if cached is not None:
            return cached

        try:
            context = await run_blocking(self.persistence.load_context, user_id, subject_id)
            if context is None:
                subjects = await run_blocking(self.persistence.load_subjects_by_user, user_id)
                subject = next((s for s in subjects if s.id == subject_id), None)
                if subject is None:
                    raise SubjectNotFoundException(subject_id)
                context = TutorContext(user_id=user_id, subject=subject)
                context.history = await run_blocking(self.persistence.load_messages_by_subject, user_id, subject_id)
        except PersistenceError as e:
            raise DatabaseException("load_context", e) from e

        context.user_id = user_id
        self._contexts[key] = context
        return context

    def _remember(self, user_id: str, original_subject_id: Optional[str], context: TutorContext) -> None:
        """Re-key the live context after a turn that may have switched subjects."""
        if original_subject_id is None:
            if context.subject_id is not None:
                self._drafts.pop(user_id, None)
        elif context.subject_id != original_subject_id:
            self._contexts.pop((user_id, original_subject_id), None)
        if context.subject_id is not None:
            self._contexts[(user_id, context.subject_id)] = context

    @staticmethod
    def _to_response(result: TurnResult) -> RespondResponse:
        return RespondResponse(
            response_text=result.response_text,
            tool_calls=result.tool_calls,
            content=result.content,
            context=result.context,
            degraded=result.degraded,
            retry=result.retry,
        )

    # ─── Turns ────────────────────────────────────────────────────────

    async def respond(self, request: RespondRequest) -> RespondResponse:
        context = await self._load_context(request.user_id, request.subject_id)
        result = await self.orchestrator.respond(
            request.message,
            context,
            overrides=request.context_overrides,
        )
        self._remember(request.user_id, request.subject_id, context)
        return self._to_response(result)

    async def handle_interaction(self, request: InteractionRequest) -> RespondResponse:
        """Feed a component event back into the conversation as a follow-up turn."""
        context = await self._load_context(request.user_id, request.subject_id)
        prompt = describe_interaction(request.action, request.data, context)

        if prompt.correct is not None:
            lesson = context.current_lesson
            threshold = get_mastery_threshold(
                context.learner_level,
                (lesson.difficulty if lesson else None)
                or (context.lesson_plan.difficulty if context.lesson_plan else None),
            )
            async with self.orchestrator.turn_lock(context):
                context.progress.record_attempt(prompt.correct, threshold)
                if prompt.correct and lesson is not None:
                    lesson.advance_concept()

        result = await self.orchestrator.respond(
            prompt.message,
            context,
            retry_action=RetryAffordance(action=request.action, data=request.data),
        )
        self._remember(request.user_id, request.subject_id, context)
        return self._to_response(result)

    async def process_assessment(self, request: AssessmentRequest) -> AssessmentResponse:
        context = await self._load_context(request.user_id, request.subject_id)
        if context.lesson_plan is None or context.lesson_plan.get_lesson(request.lesson_id) is None:
            raise LessonNotFoundException(request.lesson_id)

        async with self.orchestrator.turn_lock(context):
            response = evaluate_assessment(
                context,
                request.lesson_id,
                request.score,
                request.total,
                request.difficulty,
            )
            snapshot = context.model_copy(deep=True)

        try:
            await run_blocking(self.persistence.save_context, request.user_id, request.subject_id, snapshot)
        except PersistenceError as e:
            logger.error(f"Could not save context after assessment for subject {request.subject_id}: {e}")
        return response

    # ─── Context and subjects ─────────────────────────────────────────

    async def get_context(self, user_id: str, subject_id: str) -> TutorContext:
        return await self._load_context(user_id, subject_id)

    async def save_context(self, request: ContextUpdateRequest) -> TutorContext:
        context = request.context
        context.user_id = request.user_id
        if context.subject is not None and context.subject.id != request.subject_id:
            raise SubjectNotFoundException(request.subject_id)

        existing = self._contexts.get((request.user_id, request.subject_id))
        lock_owner = existing or context
        async with self.orchestrator.turn_lock(lock_owner):
            try:
                await run_blocking(self.persistence.save_context, request.user_id, request.subject_id, context)
            except PersistenceError as e:
                raise DatabaseException("save_context", e) from e
            self._contexts[(request.user_id, request.subject_id)] = context
        return context

    async def list_subjects(self, user_id: str) -> list[Subject]:
        try:
            return await run_blocking(self.persistence.load_subjects_by_user, user_id)
        except PersistenceError as e:
            raise DatabaseException("load_subjects_by_user", e) from e

    async def delete_subject(self, user_id: str, subject_id: str) -> None:
        await self.orchestrator.clear_subject_resources(subject_id)
        self._contexts.pop((user_id, subject_id), None)
        try:
            deleted = await run_blocking(self.persistence.delete_subject, user_id, subject_id)
        except PersistenceError as e:
            raise DatabaseException("delete_subject", e) from e
        if not deleted:
            raise SubjectNotFoundException(subject_id)
        logger.info(f"Deleted subject {subject_id} for user {user_id}")

    async def clear_user_data(self, user_id: str) -> int:
        """Remove every subject of a user, with sessions and cached contexts. Returns the subject count."""
        subjects = await self.list_subjects(user_id)
        for subject in subjects:
            await self.orchestrator.clear_subject_resources(subject.id)
            self._contexts.pop((user_id, subject.id), None)
        self._drafts.pop(user_id, None)
        try:
            await run_blocking(self.persistence.clear_user_data, user_id)
        except PersistenceError as e:
            raise DatabaseException("clear_user_data", e) from e
        logger.info(f"Cleared {len(subjects)} subjects for user {user_id}")
        return len(subjects)

    async def get_messages(self, user_id: str, subject_id: str) -> list[ConversationTurn]:
        try:
            return await run_blocking(self.persistence.load_messages_by_subject, user_id, subject_id)
        except PersistenceError as e:
            raise DatabaseException("load_messages_by_subject", e) from e

    async def get_content_feed(self, user_id: str, subject_id: str) -> list[InteractiveContent]:
        try:
            return await run_blocking(self.persistence.load_content_feed_by_subject, user_id, subject_id)
        except PersistenceError as e:
            raise DatabaseException("load_content_feed_by_subject", e) from e

    def get_logs(self, subject_id: str, limit: int = 50) -> dict[str, Any]:
        logs: list[TurnLogEntry] = self.orchestrator.turn_logs.get_recent_logs(subject_id, limit)
        return {
            "subject_id": subject_id,
            "logs": [log.model_dump(mode="json") for log in logs],
            "interactive_usage": self.orchestrator.turn_logs.interactive_usage(subject_id),
        }


def build_tutor_service(persistence: Optional[PersistenceService] = None) -> TutorService:
    """Wire the service from settings; without an API key every turn uses the fallback."""
    settings = get_settings()
    persistence = persistence or PersistenceService(get_db_manager().session_factory)

    llm_service: Optional[LLMService] = None
    session_manager: Optional[LLMSessionManager] = None
    if settings.llm_configured:
        llm_service = LLMService(
            settings.openai_api_key,
            max_retries=settings.llm_max_retries,
            initial_retry_delay=settings.llm_initial_retry_delay,
            timeout=settings.llm_timeout,
        )
        session_manager = LLMSessionManager(
            llm_service,
            settings.candidate_models,
            handle_store=persistence,
        )
    else:
        logger.warning("No OpenAI API key configured; tutor turns will use the offline fallback")

    orchestrator = TutorOrchestrator(
        llm_service,
        session_manager,
        persistence=persistence,
        settings=settings,
    )
    return TutorService(persistence, orchestrator)


_tutor_service: Optional[TutorService] = None


def get_tutor_service() -> TutorService:
    global _tutor_service
    if _tutor_service is None:
        _tutor_service = build_tutor_service()
    return _tutor_service


def reset_tutor_service() -> None:
    global _tutor_service
    _tutor_service = None
