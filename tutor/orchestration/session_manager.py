"""
LLM Session Manager

Owns the mapping subject -> (thread id, assistant id). Sessions are created
lazily, at most once per subject: concurrent callers for the same subject
share a single in-flight initialization.
"""

import asyncio
import json
import logging
from typing import Optional, Protocol, TYPE_CHECKING

from pydantic import BaseModel

from tutor.exceptions import LLMServiceError, PersistenceError, SessionInitializationError
from tutor.prompts.tool_schemas import TUTOR_TOOLS
from tutor.utils.async_utils import run_blocking
from tutor.utils.prompt_utils import assistant_instructions, assistant_name

if TYPE_CHECKING:
    from shared.services.llm_service import LLMService

logger = logging.getLogger("tutor.sessions")


class SessionHandle(BaseModel):
    """Remote resources backing one subject."""

    subject_id: str
    thread_id: str
    assistant_id: str
    model: str


class SessionHandleStore(Protocol):
    """Durable storage for session handles."""

    def load_session_handle(self, subject_id: str) -> Optional[SessionHandle]: ...

    def save_session_handle(self, handle: SessionHandle) -> None: ...

    def delete_session_handle(self, subject_id: str) -> None: ...


class SessionStore:
    """In-process session cache with one lock per subject."""

    def __init__(self):
        self._handles: dict[str, SessionHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, subject_id: str) -> Optional[SessionHandle]:
        return self._handles.get(subject_id)

    def create(self, handle: SessionHandle) -> SessionHandle:
        self._handles[handle.subject_id] = handle
        return handle

    def delete(self, subject_id: str) -> Optional[SessionHandle]:
        self._locks.pop(subject_id, None)
        return self._handles.pop(subject_id, None)

    def lock(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[subject_id] = lock
        return lock

    def clear(self) -> None:
        self._handles.clear()
        self._locks.clear()

    def __len__(self) -> int:
        return len(self._handles)


class LLMSessionManager:
    """Creates, restores and tears down per-subject sessions."""

    def __init__(
        self,
        llm_service: "LLMService",
        candidate_models: list[str],
        store: Optional[SessionStore] = None,
        handle_store: Optional[SessionHandleStore] = None,
    ):
        if not candidate_models:
            raise ValueError("At least one candidate model is required")
        self.llm = llm_service
        self.candidate_models = list(candidate_models)
        self.store = store or SessionStore()
        self.handle_store = handle_store
        self._inflight: dict[str, asyncio.Task] = {}

    # ─── Lookup ───────────────────────────────────────────────────────

    def get_thread_id(self, subject_id: str) -> Optional[str]:
        handle = self.store.get(subject_id)
        return handle.thread_id if handle else None

    def get_assistant_id(self, subject_id: str) -> Optional[str]:
        handle = self.store.get(subject_id)
        return handle.assistant_id if handle else None

    def is_initializing(self, subject_id: Optional[str] = None) -> bool:
        if subject_id is None:
            return bool(self._inflight)
        return subject_id in self._inflight

    async def wait_for_pending(self, subject_id: Optional[str] = None) -> None:
        """Wait for in-flight initializations (one subject or all) to settle."""
        if subject_id is not None:
            tasks = [self._inflight[subject_id]] if subject_id in self._inflight else []
        else:
            tasks = list(self._inflight.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ─── Creation ─────────────────────────────────────────────────────

    async def get_or_create_session(
        self,
        subject_id: str,
        subject_name: str,
        replay_message: Optional[str] = None,
    ) -> SessionHandle:
        """
        Return the subject's session, creating it on first use.

        `replay_message` is posted into a freshly created thread so the
        conversation that led to the subject is not lost. It is ignored when
        an existing session is found or restored.

        Raises:
            SessionInitializationError: if no assistant could be created
        """
        handle = self.store.get(subject_id)
        if handle is not None:
            return handle

        task = self._inflight.get(subject_id)
        if task is None:
            task = asyncio.ensure_future(self._initialize(subject_id, subject_name, replay_message))
            self._inflight[subject_id] = task

            def _forget(done: asyncio.Task, key: str = subject_id) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        else:
            logger.info(f"Awaiting in-flight session initialization for subject {subject_id}")

        return await asyncio.shield(task)

    async def _initialize(
        self,
        subject_id: str,
        subject_name: str,
        replay_message: Optional[str],
    ) -> SessionHandle:
        async with self.store.lock(subject_id):
            existing = self.store.get(subject_id)
            if existing is not None:
                return existing

            handle = await self._restore(subject_id)
            if handle is None:
                handle = await self._create(subject_id, subject_name)
                await self._persist(handle)
                if replay_message:
                    await self._replay(handle, replay_message)

            self.store.create(handle)
            return handle

    async def _restore(self, subject_id: str) -> Optional[SessionHandle]:
        """Load a persisted handle and confirm it still resolves remotely."""
        if self.handle_store is None:
            return None
        try:
            handle = await run_blocking(self.handle_store.load_session_handle, subject_id)
        except PersistenceError as e:
            logger.warning(f"Could not load persisted session for subject {subject_id}: {e}")
            return None
        if handle is None:
            return None

        try:
            await run_blocking(self.llm.retrieve_assistant, handle.assistant_id)
            await run_blocking(self.llm.retrieve_thread, handle.thread_id)
        except LLMServiceError as e:
            logger.warning(json.dumps({
                "step": "SESSION_RESTORE",
                "status": "stale",
                "subject_id": subject_id,
                "reason": e.reason,
            }))
            return None

        logger.info(json.dumps({
            "step": "SESSION_RESTORE",
            "status": "complete",
            "subject_id": subject_id,
            "thread_id": handle.thread_id,
            "assistant_id": handle.assistant_id,
        }))
        return handle

    async def _create(self, subject_id: str, subject_name: str) -> SessionHandle:
        """Create an assistant (first model that works) and a thread."""
        assistant_id: Optional[str] = None
        used_model: Optional[str] = None
        last_reason = "unknown"
        attempted: list[str] = []

        for model in self.candidate_models:
            attempted.append(model)
            try:
                assistant_id = await run_blocking(
                    self.llm.create_assistant,
                    name=assistant_name(subject_name),
                    instructions=assistant_instructions(subject_name),
                    model=model,
                    tools=TUTOR_TOOLS,
                )
                used_model = model
                break
            except LLMServiceError as e:
                last_reason = e.reason
                logger.warning(f"Assistant creation with model {model} failed ({e.reason}); trying next model")

        if assistant_id is None or used_model is None:
            raise SessionInitializationError(subject_id, attempted, last_reason)

        try:
            thread_id = await run_blocking(self.llm.create_thread)
        except LLMServiceError as e:
            raise SessionInitializationError(subject_id, attempted, e.reason) from e

        logger.info(json.dumps({
            "step": "SESSION_CREATE",
            "status": "complete",
            "subject_id": subject_id,
            "thread_id": thread_id,
            "assistant_id": assistant_id,
            "model": used_model,
        }))
        return SessionHandle(
            subject_id=subject_id,
            thread_id=thread_id,
            assistant_id=assistant_id,
            model=used_model,
        )

    async def _persist(self, handle: SessionHandle) -> None:
        if self.handle_store is None:
            return
        try:
            await run_blocking(self.handle_store.save_session_handle, handle)
        except PersistenceError as e:
            logger.error(f"Failed to persist session for subject {handle.subject_id}: {e}")

    async def _replay(self, handle: SessionHandle, message: str) -> None:
        try:
            await run_blocking(self.llm.add_message, handle.thread_id, message)
            logger.info(f"Replayed first user message into new thread {handle.thread_id}")
        except LLMServiceError as e:
            logger.warning(f"Could not replay first message into thread {handle.thread_id}: {e}")

    # ─── Teardown ─────────────────────────────────────────────────────

    async def clear_subject(self, subject_id: str, delete_remote: bool = True) -> None:
        """Drop a subject's session locally, durably and (optionally) remotely."""
        task = self._inflight.pop(subject_id, None)
        if task is not None and not task.done():
            task.cancel()

        handle = self.store.delete(subject_id)

        if self.handle_store is not None:
            try:
                await run_blocking(self.handle_store.delete_session_handle, subject_id)
            except PersistenceError as e:
                logger.error(f"Failed to delete persisted session for subject {subject_id}: {e}")

        if handle is not None and delete_remote:
            for fn, resource_id in (
                (self.llm.delete_thread, handle.thread_id),
                (self.llm.delete_assistant, handle.assistant_id),
            ):
                try:
                    await run_blocking(fn, resource_id)
                except LLMServiceError as e:
                    logger.warning(f"Could not delete remote resource {resource_id}: {e}")

        logger.info(f"Cleared session resources for subject {subject_id}")

    def reset(self) -> None:
        """Forget every cached session (persisted handles are kept)."""
        for task in self._inflight.values():
            if not task.done():
                task.cancel()
        self._inflight.clear()
        self.store.clear()
