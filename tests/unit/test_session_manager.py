"""
Unit tests for LLMSessionManager.

The LLM service is a synchronous Mock; the manager calls it through the
default executor.
"""

import asyncio
import threading
import time

import pytest
from unittest.mock import Mock

from tutor.exceptions import LLMServiceError, PersistenceError, SessionInitializationError
from tutor.orchestration.session_manager import LLMSessionManager, SessionHandle, SessionStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_llm(create_delay=0.0):
    llm = Mock()
    counter = {"assistants": 0, "threads": 0}
    lock = threading.Lock()

    def create_assistant(**kwargs):
        time.sleep(create_delay)
        with lock:
            counter["assistants"] += 1
            return f"asst_{counter['assistants']}"

    def create_thread():
        with lock:
            counter["threads"] += 1
            return f"thread_{counter['threads']}"

    llm.create_assistant.side_effect = create_assistant
    llm.create_thread.side_effect = create_thread
    llm.counter = counter
    return llm


class InMemoryHandleStore:
    def __init__(self, handle=None):
        self.handles = {}
        if handle is not None:
            self.handles[handle.subject_id] = handle
        self.saved = []

    def load_session_handle(self, subject_id):
        return self.handles.get(subject_id)

    def save_session_handle(self, handle):
        self.saved.append(handle)
        self.handles[handle.subject_id] = handle

    def delete_session_handle(self, subject_id):
        self.handles.pop(subject_id, None)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestGetOrCreateSession:
    @pytest.mark.asyncio
    async def test_creates_assistant_and_thread(self):
        llm = build_llm()
        manager = LLMSessionManager(llm, ["gpt-4o"])

        handle = await manager.get_or_create_session("subject_1", "Algebra")

        assert handle == SessionHandle(
            subject_id="subject_1", thread_id="thread_1", assistant_id="asst_1", model="gpt-4o"
        )
        assert manager.get_thread_id("subject_1") == "thread_1"
        assert manager.get_assistant_id("subject_1") == "asst_1"
        kwargs = llm.create_assistant.call_args.kwargs
        assert kwargs["name"] == "Adaptive Tutor - Algebra"
        assert kwargs["model"] == "gpt-4o"
        assert len(kwargs["tools"]) == 12

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_initialization(self):
        llm = build_llm(create_delay=0.05)
        manager = LLMSessionManager(llm, ["gpt-4o"])

        first, second = await asyncio.gather(
            manager.get_or_create_session("subject_1", "Algebra"),
            manager.get_or_create_session("subject_1", "Algebra"),
        )

        assert first == second
        assert llm.counter == {"assistants": 1, "threads": 1}
        assert manager.is_initializing("subject_1") is False

    @pytest.mark.asyncio
    async def test_different_subjects_get_different_sessions(self):
        llm = build_llm()
        manager = LLMSessionManager(llm, ["gpt-4o"])

        first = await manager.get_or_create_session("subject_1", "Algebra")
        second = await manager.get_or_create_session("subject_2", "Biology")

        assert first.thread_id != second.thread_id
        assert len(manager.store) == 2

    @pytest.mark.asyncio
    async def test_existing_session_is_reused(self):
        llm = build_llm()
        manager = LLMSessionManager(llm, ["gpt-4o"])
        await manager.get_or_create_session("subject_1", "Algebra")
        await manager.get_or_create_session("subject_1", "Algebra", replay_message="ignored")

        assert llm.counter["assistants"] == 1
        llm.add_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_replays_first_message_into_new_thread(self):
        llm = build_llm()
        manager = LLMSessionManager(llm, ["gpt-4o"])

        await manager.get_or_create_session("subject_1", "Algebra", replay_message="teach me algebra")

        llm.add_message.assert_called_once_with("thread_1", "teach me algebra")

    @pytest.mark.asyncio
    async def test_falls_back_to_next_model(self):
        llm = build_llm()
        created = llm.create_assistant.side_effect

        def create_assistant(**kwargs):
            if kwargs["model"] == "gpt-4o":
                raise LLMServiceError("no access", model_name="gpt-4o", reason="model_unavailable")
            return created(**kwargs)

        llm.create_assistant.side_effect = create_assistant
        manager = LLMSessionManager(llm, ["gpt-4o", "gpt-4o-mini"])

        handle = await manager.get_or_create_session("subject_1", "Algebra")

        assert handle.model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_all_models_failing_raises(self):
        llm = build_llm()
        llm.create_assistant.side_effect = LLMServiceError("bad key", reason="authentication")
        manager = LLMSessionManager(llm, ["gpt-4o", "gpt-4o-mini"])

        with pytest.raises(SessionInitializationError) as exc_info:
            await manager.get_or_create_session("subject_1", "Algebra")

        assert exc_info.value.attempted_models == ["gpt-4o", "gpt-4o-mini"]
        assert exc_info.value.reason == "authentication"
        assert manager.get_thread_id("subject_1") is None
        llm.create_thread.assert_not_called()

    def test_requires_candidate_models(self):
        with pytest.raises(ValueError):
            LLMSessionManager(Mock(), [])


# ---------------------------------------------------------------------------
# Persistence of handles
# ---------------------------------------------------------------------------

class TestHandlePersistence:
    @pytest.mark.asyncio
    async def test_new_handle_is_persisted(self):
        store = InMemoryHandleStore()
        manager = LLMSessionManager(build_llm(), ["gpt-4o"], handle_store=store)

        handle = await manager.get_or_create_session("subject_1", "Algebra")

        assert store.saved == [handle]

    @pytest.mark.asyncio
    async def test_valid_persisted_handle_is_restored(self):
        persisted = SessionHandle(subject_id="subject_1", thread_id="thread_old", assistant_id="asst_old", model="gpt-4o")
        llm = build_llm()
        manager = LLMSessionManager(llm, ["gpt-4o"], handle_store=InMemoryHandleStore(persisted))

        handle = await manager.get_or_create_session("subject_1", "Algebra", replay_message="hello there")

        assert handle == persisted
        llm.retrieve_assistant.assert_called_once_with("asst_old")
        llm.retrieve_thread.assert_called_once_with("thread_old")
        llm.create_assistant.assert_not_called()
        llm.add_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_persisted_handle_is_replaced(self):
        persisted = SessionHandle(subject_id="subject_1", thread_id="thread_old", assistant_id="asst_old", model="gpt-4o")
        llm = build_llm()
        llm.retrieve_assistant.side_effect = LLMServiceError("gone", reason="not_found")
        store = InMemoryHandleStore(persisted)
        manager = LLMSessionManager(llm, ["gpt-4o"], handle_store=store)

        handle = await manager.get_or_create_session("subject_1", "Algebra")

        assert handle.assistant_id == "asst_1"
        assert store.handles["subject_1"] == handle

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_block_session(self):
        store = Mock()
        store.load_session_handle.side_effect = PersistenceError("load_session_handle", 3)
        store.save_session_handle.side_effect = PersistenceError("save_session_handle", 3)
        manager = LLMSessionManager(build_llm(), ["gpt-4o"], handle_store=store)

        handle = await manager.get_or_create_session("subject_1", "Algebra")

        assert handle.thread_id == "thread_1"


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------

class TestClearSubject:
    @pytest.mark.asyncio
    async def test_clear_deletes_remote_and_persisted(self):
        llm = build_llm()
        store = InMemoryHandleStore()
        manager = LLMSessionManager(llm, ["gpt-4o"], handle_store=store)
        await manager.get_or_create_session("subject_1", "Algebra")

        await manager.clear_subject("subject_1")

        assert manager.get_thread_id("subject_1") is None
        assert "subject_1" not in store.handles
        llm.delete_thread.assert_called_once_with("thread_1")
        llm.delete_assistant.assert_called_once_with("asst_1")

    @pytest.mark.asyncio
    async def test_remote_delete_failure_is_logged(self):
        llm = build_llm()
        llm.delete_thread.side_effect = LLMServiceError("gone", reason="thread")
        manager = LLMSessionManager(llm, ["gpt-4o"])
        await manager.get_or_create_session("subject_1", "Algebra")

        await manager.clear_subject("subject_1")

        llm.delete_assistant.assert_called_once_with("asst_1")

    @pytest.mark.asyncio
    async def test_reset_forgets_cached_sessions(self):
        manager = LLMSessionManager(build_llm(), ["gpt-4o"])
        await manager.get_or_create_session("subject_1", "Algebra")
        manager.reset()
        assert len(manager.store) == 0


class TestSessionStore:
    def test_create_get_delete(self):
        store = SessionStore()
        handle = SessionHandle(subject_id="s", thread_id="t", assistant_id="a", model="m")
        store.create(handle)
        assert store.get("s") == handle
        assert store.delete("s") == handle
        assert store.get("s") is None

    def test_lock_is_per_subject(self):
        store = SessionStore()
        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")
