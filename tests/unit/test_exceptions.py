"""Unit tests for tutor/exceptions.py and shared/utils/exceptions.py."""

import pytest
from fastapi import HTTPException

from shared.utils.exceptions import (
    AdaptiveTutorException,
    DatabaseException,
    LessonNotFoundException,
    SubjectNotFoundException,
)
from tutor.exceptions import (
    LLMError,
    LLMServiceError,
    PersistenceError,
    PromptTemplateError,
    RunFailedError,
    RunTimeoutError,
    SessionInitializationError,
    StateTransitionError,
    ToolParameterError,
    TutorAgentError,
    UnknownToolError,
)


# ===========================================================================
# Tutor hierarchy
# ===========================================================================

class TestTutorAgentError:

    def test_details_default_to_empty(self):
        exc = TutorAgentError("oops")
        assert exc.message == "oops"
        assert exc.details == {}

    @pytest.mark.parametrize("exc", [
        LLMServiceError("x"),
        SessionInitializationError("s", ["gpt-4o"]),
        RunFailedError("run_1", "failed"),
        RunTimeoutError("run_1", 5),
        StateTransitionError("a", "b", "why"),
        UnknownToolError("launch_rocket"),
        ToolParameterError("next_lesson", ["bad"]),
        PromptTemplateError("t", ["x"]),
        PersistenceError("save_context", 3),
    ])
    def test_everything_is_a_tutor_error(self, exc):
        assert isinstance(exc, TutorAgentError)


class TestMessages:

    def test_llm_service_error_reason(self):
        exc = LLMServiceError("failed", model_name="gpt-4o", attempts=2, reason="rate_limit")
        assert isinstance(exc, LLMError)
        assert exc.reason == "rate_limit"
        assert exc.details == {"reason": "rate_limit"}

    def test_session_initialization_lists_models(self):
        exc = SessionInitializationError("subject_1", ["gpt-4o", "gpt-4o-mini"], "authentication")
        assert "gpt-4o, gpt-4o-mini" in str(exc)
        assert exc.reason == "authentication"

    def test_run_failed_includes_last_error(self):
        exc = RunFailedError("run_1", "failed", "server error")
        assert str(exc) == "Run run_1 ended with status 'failed': server error"

    def test_persistence_error_includes_cause(self):
        exc = PersistenceError("save_message", 3, RuntimeError("db down"))
        assert str(exc) == "Persistence operation 'save_message' failed after 3 attempt(s): db down"

    def test_tool_parameter_error_joins_errors(self):
        exc = ToolParameterError("lesson_complete", ["lesson_id: Field required", "completed: bad"])
        assert exc.message == "Invalid parameters for lesson_complete: lesson_id: Field required; completed: bad"


# ===========================================================================
# API hierarchy
# ===========================================================================

class TestApiExceptions:

    def test_subject_not_found(self):
        http = SubjectNotFoundException("subject_1").to_http_exception()
        assert isinstance(http, HTTPException)
        assert http.status_code == 404
        assert http.detail == "Subject subject_1 not found"

    def test_lesson_not_found(self):
        assert LessonNotFoundException("lesson_1").to_http_exception().status_code == 404

    def test_database_exception(self):
        exc = DatabaseException("save_context", RuntimeError("down"))
        assert isinstance(exc, AdaptiveTutorException)
        assert str(exc) == "Database save_context failed: down"
        assert exc.to_http_exception().status_code == 500
