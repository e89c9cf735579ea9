"""
Custom Exception Hierarchy for Tutor Module

Exception Hierarchy:
    TutorAgentError (base)
    ├── LLMError
    │   └── LLMServiceError
    ├── SessionError
    │   └── SessionInitializationError
    ├── RunError
    │   ├── RunFailedError
    │   └── RunTimeoutError
    ├── StateError
    │   └── StateTransitionError
    ├── ToolError
    │   ├── UnknownToolError
    │   └── ToolParameterError
    ├── PromptError
    │   └── PromptTemplateError
    └── PersistenceError
"""

from typing import Optional


class TutorAgentError(Exception):
    """Base exception for all tutor errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# LLM Errors

class LLMError(TutorAgentError):
    """Base exception for LLM-related errors."""
    pass


class LLMServiceError(LLMError):
    """Raised when an LLM API call fails."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        attempts: Optional[int] = None,
        reason: str = "unknown",
    ):
        super().__init__(message, {"reason": reason})
        self.model_name = model_name
        self.attempts = attempts
        self.reason = reason


# Session Errors

class SessionError(TutorAgentError):
    """Base exception for subject session errors."""
    pass


class SessionInitializationError(SessionError):
    """Raised when no thread/assistant pair could be created for a subject."""

    def __init__(self, subject_id: str, attempted_models: list[str], reason: str = "unknown"):
        message = (
            f"Could not initialize session for subject {subject_id} "
            f"(tried models: {', '.join(attempted_models) or 'none'})"
        )
        super().__init__(message, {"reason": reason})
        self.subject_id = subject_id
        self.attempted_models = attempted_models
        self.reason = reason


# Run Errors

class RunError(TutorAgentError):
    """Base exception for assistant run errors."""
    pass


class RunFailedError(RunError):
    """Raised when a run ends in a terminal non-success status."""

    def __init__(self, run_id: str, status: str, last_error: Optional[str] = None):
        message = f"Run {run_id} ended with status '{status}'"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)
        self.run_id = run_id
        self.status = status
        self.last_error = last_error


class RunTimeoutError(RunError):
    """Raised when a run does not finish within the turn timeout."""

    def __init__(self, run_id: str, timeout_seconds: float):
        super().__init__(f"Run {run_id} did not finish within {timeout_seconds}s")
        self.run_id = run_id
        self.timeout_seconds = timeout_seconds


# State Errors

class StateError(TutorAgentError):
    """Base exception for state management errors."""
    pass


class StateTransitionError(StateError):
    """Raised when a lesson plan transition is invalid."""

    def __init__(self, from_state: str, to_state: str, reason: str):
        message = f"Invalid state transition from '{from_state}' to '{to_state}': {reason}"
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason


# Tool Errors

class ToolError(TutorAgentError):
    """Base exception for tool dispatch errors."""
    pass


class UnknownToolError(ToolError):
    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolParameterError(ToolError):
    """Raised when the LLM supplied parameters that do not validate."""

    def __init__(self, tool_name: str, errors: list[str]):
        message = f"Invalid parameters for {tool_name}: {'; '.join(errors)}"
        super().__init__(message)
        self.tool_name = tool_name
        self.errors = errors


# Prompt Errors

class PromptError(TutorAgentError):
    """Base exception for prompt-related errors."""
    pass


class PromptTemplateError(PromptError):
    """Raised when prompt template rendering fails."""

    def __init__(self, template_name: str, missing_vars: list[str]):
        message = f"Prompt template '{template_name}' missing variables: {', '.join(missing_vars)}"
        super().__init__(message)
        self.template_name = template_name
        self.missing_vars = missing_vars


# Persistence Errors

class PersistenceError(TutorAgentError):
    """Raised when a persistence operation fails after all retries."""

    def __init__(self, operation: str, attempts: int, original_error: Optional[Exception] = None):
        message = f"Persistence operation '{operation}' failed after {attempts} attempt(s)"
        if original_error is not None:
            message += f": {original_error}"
        super().__init__(message)
        self.operation = operation
        self.attempts = attempts
        self.original_error = original_error
