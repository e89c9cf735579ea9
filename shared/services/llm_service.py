"""
LLM Service — interface to the OpenAI assistants API.

Wraps threads, assistants, runs and tool-output submission. Every remote
call goes through `_execute_with_retry`, which backs off on rate limits and
timeouts and converts every other provider error into `LLMServiceError`
carrying a classified reason.
"""

import json
import time
from typing import Any, Callable, Optional
from openai import (
    OpenAI,
    OpenAIError,
    RateLimitError,
    APITimeoutError,
    APIConnectionError,
    AuthenticationError,
    NotFoundError,
)
import logging

from tutor.exceptions import LLMServiceError

logger = logging.getLogger(__name__)


def classify_llm_error(error: BaseException) -> str:
    """
    Map a provider error to a short reason used in logs and fallbacks.

    Exception types are checked first; message keywords cover errors the SDK
    reports generically.
    """
    if isinstance(error, LLMServiceError):
        return error.reason
    if isinstance(error, AuthenticationError):
        return "authentication"
    if isinstance(error, RateLimitError):
        return "rate_limit"
    if isinstance(error, APITimeoutError):
        return "timeout"
    if isinstance(error, APIConnectionError):
        return "network"

    text = str(error).lower()
    if "401" in text or "api key" in text or "unauthorized" in text:
        return "authentication"
    if "429" in text or "rate limit" in text:
        return "rate_limit"
    if "context_length_exceeded" in text or "context length" in text:
        return "context_length"
    if "model" in text:
        return "model_unavailable"
    if "assistant" in text:
        return "assistant"
    if "thread" in text or "run" in text:
        return "thread"
    if isinstance(error, NotFoundError):
        return "not_found"
    return "unknown"


class LLMService:
    """Synchronous client for the assistants API with retry logic and error handling."""

    def __init__(
        self,
        api_key: str,
        *,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: int = 60,
    ):
        self.client = OpenAI(api_key=api_key)
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout

    # ─── Threads ──────────────────────────────────────────────────────

    def create_thread(self) -> str:
        thread = self._execute_with_retry(
            lambda: self.client.beta.threads.create(timeout=self.timeout), "threads.create"
        )
        return thread.id

    def retrieve_thread(self, thread_id: str) -> str:
        thread = self._execute_with_retry(
            lambda: self.client.beta.threads.retrieve(thread_id=thread_id, timeout=self.timeout),
            "threads.retrieve",
        )
        return thread.id

    def delete_thread(self, thread_id: str) -> None:
        self._execute_with_retry(
            lambda: self.client.beta.threads.delete(thread_id=thread_id, timeout=self.timeout),
            "threads.delete",
        )

    def add_message(self, thread_id: str, content: str, role: str = "user") -> str:
        message = self._execute_with_retry(
            lambda: self.client.beta.threads.messages.create(
                thread_id=thread_id, role=role, content=content, timeout=self.timeout
            ),
            "threads.messages.create",
        )
        return message.id

    def get_latest_assistant_text(self, thread_id: str) -> str:
        """Text of the newest assistant message on the thread, or ''."""
        page = self._execute_with_retry(
            lambda: self.client.beta.threads.messages.list(
                thread_id=thread_id, order="desc", limit=10, timeout=self.timeout
            ),
            "threads.messages.list",
        )
        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [
                block.text.value
                for block in message.content
                if getattr(block, "type", None) == "text" and getattr(block, "text", None) is not None
            ]
            return "\n".join(parts).strip()
        return ""

    # ─── Assistants ───────────────────────────────────────────────────

    def create_assistant(
        self,
        *,
        name: str,
        instructions: str,
        model: str,
        tools: list[dict[str, Any]],
    ) -> str:
        logger.info(json.dumps({
            "step": "ASSISTANT_CREATE",
            "status": "starting",
            "model": model,
            "name": name,
            "tool_count": len(tools),
        }))
        assistant = self._execute_with_retry(
            lambda: self.client.beta.assistants.create(
                name=name, instructions=instructions, model=model, tools=tools, timeout=self.timeout
            ),
            f"assistants.create[{model}]",
        )
        return assistant.id

    def retrieve_assistant(self, assistant_id: str) -> str:
        assistant = self._execute_with_retry(
            lambda: self.client.beta.assistants.retrieve(assistant_id=assistant_id, timeout=self.timeout),
            "assistants.retrieve",
        )
        return assistant.id

    def delete_assistant(self, assistant_id: str) -> None:
        self._execute_with_retry(
            lambda: self.client.beta.assistants.delete(assistant_id=assistant_id, timeout=self.timeout),
            "assistants.delete",
        )

    # ─── Runs ─────────────────────────────────────────────────────────

    def create_run(
        self,
        thread_id: str,
        assistant_id: str,
        additional_instructions: Optional[str] = None,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "thread_id": thread_id,
            "assistant_id": assistant_id,
            "timeout": self.timeout,
        }
        if additional_instructions:
            kwargs["additional_instructions"] = additional_instructions
        return self._execute_with_retry(
            lambda: self.client.beta.threads.runs.create(**kwargs), "threads.runs.create"
        )

    def retrieve_run(self, thread_id: str, run_id: str) -> Any:
        return self._execute_with_retry(
            lambda: self.client.beta.threads.runs.retrieve(
                run_id=run_id, thread_id=thread_id, timeout=self.timeout
            ),
            "threads.runs.retrieve",
            log_success=False,
        )

    def cancel_run(self, thread_id: str, run_id: str) -> Any:
        """Ask the API to stop an active run so the thread accepts new messages."""
        return self._execute_with_retry(
            lambda: self.client.beta.threads.runs.cancel(
                run_id=run_id, thread_id=thread_id, timeout=self.timeout
            ),
            "threads.runs.cancel",
        )

    def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        tool_outputs: list[dict[str, str]],
    ) -> Any:
        return self._execute_with_retry(
            lambda: self.client.beta.threads.runs.submit_tool_outputs(
                run_id=run_id, thread_id=thread_id, tool_outputs=tool_outputs, timeout=self.timeout
            ),
            "threads.runs.submit_tool_outputs",
        )

    # ─── Helpers ──────────────────────────────────────────────────────

    def _execute_with_retry(
        self,
        api_call_fn: Callable[[], Any],
        operation: str,
        log_success: bool = True,
    ) -> Any:
        """Execute API call with exponential backoff retry logic."""
        last_error: Optional[Exception] = None
        delay = self.initial_retry_delay
        start_time = time.time()

        for attempt in range(self.max_retries):
            try:
                result = api_call_fn()
                if log_success:
                    logger.info(json.dumps({
                        "step": "LLM_CALL",
                        "status": "complete",
                        "operation": operation,
                        "duration_ms": int((time.time() - start_time) * 1000),
                        "attempts": attempt + 1,
                    }))
                return result

            except RateLimitError as e:
                last_error = e
                logger.warning(
                    f"{operation} rate limit hit (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except APITimeoutError as e:
                last_error = e
                logger.warning(
                    f"{operation} timeout (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except OpenAIError as e:
                reason = classify_llm_error(e)
                logger.error(json.dumps({
                    "step": "LLM_CALL",
                    "status": "error",
                    "operation": operation,
                    "reason": reason,
                    "error": str(e),
                }))
                raise LLMServiceError(
                    f"{operation} API error: {str(e)}", attempts=attempt + 1, reason=reason
                ) from e

        reason = classify_llm_error(last_error) if last_error else "unknown"
        logger.error(json.dumps({
            "step": "LLM_CALL",
            "status": "failed",
            "operation": operation,
            "reason": reason,
            "error": str(last_error),
            "duration_ms": int((time.time() - start_time) * 1000),
            "attempts": self.max_retries,
        }))
        raise LLMServiceError(
            f"{operation} failed after {self.max_retries} attempts. Last error: {str(last_error)}",
            attempts=self.max_retries,
            reason=reason,
        ) from last_error
