"""
Persistence Service

Durable storage for subjects, messages, content, tutor contexts and session
handles. Each operation opens its own transactional session so it can run
from worker threads, and is retried with exponential backoff. Duplicate-key
errors on message and content saves mean the row is already stored and are
reported as success.
"""

import json
import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, sessionmaker

from config import get_settings
from shared.repositories import (
    ContentRepository,
    MessageRepository,
    SessionHandleRepository,
    SubjectRepository,
    TutorContextRepository,
)
from tutor.exceptions import PersistenceError
from tutor.models.content import InteractiveContent
from tutor.models.context import ConversationTurn, ToolCallRecord, TutorContext
from tutor.models.lesson_plan import LessonPlan
from tutor.models.progress import LearningProgress
from tutor.models.subject import Subject
from tutor.orchestration.session_manager import SessionHandle

logger = logging.getLogger("tutor.persistence")

T = TypeVar("T")

JITTER = 0.25
MESSAGE_HISTORY_LIMIT = 500
BACKOFF_FACTOR = 2.0


class PersistenceService:
    """Retrying persistence collaborator for the orchestrator and API."""

    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], DBSession],
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.max_attempts = max_attempts if max_attempts is not None else settings.persistence_max_attempts
        self.base_delay = base_delay if base_delay is not None else settings.persistence_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.persistence_max_delay
        self._sleep = sleep

    # ─── Infrastructure ───────────────────────────────────────────────

    @contextmanager
    def _session_scope(self) -> Generator[DBSession, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (BACKOFF_FACTOR ** attempt), self.max_delay)
        return max(0.0, delay * (1 + random.uniform(-JITTER, JITTER)))

    def _with_retry(
        self,
        operation: str,
        fn: Callable[[DBSession], T],
        duplicate_ok: bool = False,
    ) -> Optional[T]:
        """
        Run `fn` in a fresh session, retrying on database errors.

        With `duplicate_ok`, an IntegrityError ends the operation as a
        success returning None.
        """
        last_error: Optional[Exception] = None
        attempt = 0
        for attempt in range(self.max_attempts):
            try:
                with self._session_scope() as db:
                    return fn(db)
            except IntegrityError as e:
                if duplicate_ok:
                    logger.info(json.dumps({
                        "step": "PERSISTENCE",
                        "operation": operation,
                        "status": "duplicate_ignored",
                    }))
                    return None
                last_error = e
                # Constraint violations do not heal on retry.
                break
            except SQLAlchemyError as e:
                last_error = e
                if attempt < self.max_attempts - 1:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        f"Persistence {operation} failed (attempt {attempt + 1}/{self.max_attempts}). "
                        f"Retrying in {delay:.2f}s: {e}"
                    )
                    self._sleep(delay)

        attempts = attempt + 1
        logger.error(json.dumps({
            "step": "PERSISTENCE",
            "operation": operation,
            "status": "failed",
            "attempts": attempts,
            "error": str(last_error),
        }))
        raise PersistenceError(operation, attempts, last_error)

    # ─── Tutor context ────────────────────────────────────────────────

    def load_context(self, user_id: str, subject_id: str) -> Optional[TutorContext]:
        def _load(db: DBSession) -> Optional[TutorContext]:
            record = TutorContextRepository(db).get(user_id, subject_id)
            if record is None:
                return None
            return TutorContext.model_validate_json(record.context_json)

        return self._with_retry("load_context", _load)

    def save_context(self, user_id: str, subject_id: str, context: TutorContext) -> None:
        """Store the context and keep the subject row in step with it."""
        context_json = context.model_dump_json()

        def _save(db: DBSession) -> None:
            TutorContextRepository(db).upsert(user_id, subject_id, context_json)
            if context.subject is not None and context.subject.id == subject_id:
                self._upsert_subject(db, user_id, context.subject, context.lesson_plan, context.progress)

        self._with_retry("save_context", _save)

    # ─── Subjects ─────────────────────────────────────────────────────

    @staticmethod
    def _upsert_subject(
        db: DBSession,
        user_id: str,
        subject: Subject,
        lesson_plan: Optional[LessonPlan],
        progress: Optional[LearningProgress],
    ) -> None:
        SubjectRepository(db).upsert(
            subject_id=subject.id,
            user_id=user_id,
            name=subject.name,
            progress=subject.progress,
            is_active=subject.is_active,
            keywords_json=json.dumps(subject.topic_keywords),
            lesson_plan_json=lesson_plan.model_dump_json() if lesson_plan else None,
            learning_progress_json=progress.model_dump_json() if progress else None,
            created_at=subject.created_at,
            last_active=subject.last_active_at,
            completed_at=subject.completed_at,
        )

    def save_subject(
        self,
        user_id: str,
        subject: Subject,
        lesson_plan: Optional[LessonPlan] = None,
        progress: Optional[LearningProgress] = None,
    ) -> None:
        self._with_retry(
            "save_subject",
            lambda db: self._upsert_subject(db, user_id, subject, lesson_plan, progress),
        )

    def load_subjects_by_user(self, user_id: str) -> list[Subject]:
        def _load(db: DBSession) -> list[Subject]:
            return [
                Subject(
                    id=record.id,
                    name=record.name,
                    progress=record.progress,
                    is_active=record.is_active,
                    created_at=record.created_at,
                    last_active_at=record.last_active,
                    topic_keywords=json.loads(record.keywords_json or "[]"),
                    completed_at=record.completed_at,
                )
                for record in SubjectRepository(db).list_by_user(user_id)
            ]

        return self._with_retry("load_subjects_by_user", _load) or []

    def delete_subject(self, user_id: str, subject_id: str) -> bool:
        """Delete a subject and everything scoped to it."""
        def _delete(db: DBSession) -> bool:
            existed = SubjectRepository(db).delete(subject_id, user_id)
            MessageRepository(db).delete_by_subject(subject_id)
            ContentRepository(db).delete_by_subject(subject_id)
            context_existed = TutorContextRepository(db).delete(user_id, subject_id)
            SessionHandleRepository(db).delete(subject_id)
            return existed or context_existed

        return bool(self._with_retry("delete_subject", _delete))

    def clear_user_data(self, user_id: str) -> None:
        def _clear(db: DBSession) -> None:
            subject_ids = [record.id for record in SubjectRepository(db).list_by_user(user_id)]
            handles = SessionHandleRepository(db)
            for subject_id in subject_ids:
                handles.delete(subject_id)
            MessageRepository(db).delete_by_user(user_id)
            ContentRepository(db).delete_by_user(user_id)
            TutorContextRepository(db).delete_by_user(user_id)
            SubjectRepository(db).delete_by_user(user_id)

        self._with_retry("clear_user_data", _clear)

    # ─── Messages ─────────────────────────────────────────────────────

    def save_message(self, user_id: str, subject_id: str, turn: ConversationTurn) -> None:
        tool_calls_json = (
            json.dumps([record.model_dump(mode="json") for record in turn.tool_calls])
            if turn.tool_calls else None
        )
        self._with_retry(
            "save_message",
            lambda db: MessageRepository(db).create(
                message_id=turn.id,
                user_id=user_id,
                subject_id=subject_id,
                role=turn.role,
                content=turn.content,
                tool_calls_json=tool_calls_json,
                created_at=turn.timestamp,
            ),
            duplicate_ok=True,
        )

    def load_messages_by_subject(
        self, user_id: str, subject_id: str, limit: int = MESSAGE_HISTORY_LIMIT
    ) -> list[ConversationTurn]:
        """The newest `limit` messages in the order they were saved."""
        def _load(db: DBSession) -> list[ConversationTurn]:
            return [
                ConversationTurn(
                    id=record.id,
                    role=record.role,
                    content=record.content,
                    timestamp=record.created_at,
                    tool_calls=[
                        ToolCallRecord.model_validate(item)
                        for item in json.loads(record.tool_calls_json or "[]")
                    ],
                )
                for record in MessageRepository(db).list_by_subject(subject_id, user_id, limit)
            ]

        return self._with_retry("load_messages_by_subject", _load) or []

    # ─── Content feed ─────────────────────────────────────────────────

    def save_content_item(self, user_id: str, subject_id: str, content: InteractiveContent) -> None:
        data_json = json.dumps(content.model_dump(mode="json"))
        self._with_retry(
            "save_content_item",
            lambda db: ContentRepository(db).create(
                content_id=content.id,
                user_id=user_id,
                subject_id=subject_id,
                content_type=content.type,
                title=content.title,
                data_json=data_json,
                created_at=content.created_at,
            ),
            duplicate_ok=True,
        )

    def load_content_feed_by_subject(self, user_id: str, subject_id: str) -> list[InteractiveContent]:
        def _load(db: DBSession) -> list[InteractiveContent]:
            return [
                InteractiveContent.model_validate_json(record.data_json)
                for record in ContentRepository(db).list_by_subject(subject_id, user_id)
            ]

        return self._with_retry("load_content_feed_by_subject", _load) or []

    # ─── Session handles ──────────────────────────────────────────────

    def load_session_handle(self, subject_id: str) -> Optional[SessionHandle]:
        def _load(db: DBSession) -> Optional[SessionHandle]:
            record = SessionHandleRepository(db).get(subject_id)
            if record is None:
                return None
            return SessionHandle(
                subject_id=record.subject_id,
                thread_id=record.thread_id,
                assistant_id=record.assistant_id,
                model=record.model,
            )

        return self._with_retry("load_session_handle", _load)

    def save_session_handle(self, handle: SessionHandle) -> None:
        self._with_retry(
            "save_session_handle",
            lambda db: SessionHandleRepository(db).upsert(
                handle.subject_id, handle.thread_id, handle.assistant_id, handle.model
            ),
        )

    def delete_session_handle(self, subject_id: str) -> None:
        self._with_retry("delete_session_handle", lambda db: SessionHandleRepository(db).delete(subject_id))
