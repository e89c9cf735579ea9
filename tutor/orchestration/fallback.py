"""
Degraded fallback

Builds a turn result without the LLM. Used when no API key is configured,
when no subject is set yet, and when any step of a normal turn fails.
"""

import asyncio
import logging
from typing import Any, Optional

from tutor.exceptions import (
    LLMServiceError,
    PersistenceError,
    RunFailedError,
    RunTimeoutError,
    SessionInitializationError,
)
from tutor.models.context import ToolCallRecord, TutorContext
from tutor.models.subject import create_subject
from tutor.models.progress import LearningProgress
from tutor.prompts.templates import FALLBACK_APOLOGY, FALLBACK_SUBJECT_RESPONSE
from tutor.services.subject_classifier import SubjectDetected, classify_subject

logger = logging.getLogger("tutor.fallback")


def build_fallback(
    user_message: str,
    context: TutorContext,
    detect_subject: bool = True,
) -> tuple[str, list[ToolCallRecord]]:
    """
    Answer a turn offline.

    A detected subject becomes a synthesized new_subject result and is set on
    the context; otherwise the learner gets a plain apology. Never raises.
    """
    if not detect_subject:
        return FALLBACK_APOLOGY, []
    try:
        classification = classify_subject(user_message)
        if not isinstance(classification, SubjectDetected):
            return FALLBACK_APOLOGY, []

        subject = create_subject(classification.name)
        context.subject = subject
        context.lesson_plan = None
        context.progress = LearningProgress()

        result: dict[str, Any] = {
            "success": True,
            "subject": subject.model_dump(mode="json"),
            "confidence": classification.confidence,
            "message": (
                f"Started learning {subject.name}. "
                "Let's begin by understanding your current level and goals."
            ),
        }
        record = ToolCallRecord(
            tool_name="new_subject",
            parameters={"name": subject.name},
            result=result,
        )
        logger.info(f"Fallback detected subject '{subject.name}' (confidence {classification.confidence})")
        return FALLBACK_SUBJECT_RESPONSE.render(subject=subject.name), [record]
    except Exception as e:
        logger.error(f"Fallback subject detection failed: {e}", exc_info=True)
        return FALLBACK_APOLOGY, []


def fallback_reason(error: Optional[BaseException]) -> str:
    """Short classified reason for logs and turn events."""
    if error is None:
        return "not_configured"
    if isinstance(error, (RunTimeoutError, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(error, RunFailedError):
        return f"run_{error.status}"
    if isinstance(error, (LLMServiceError, SessionInitializationError)):
        return error.reason
    if isinstance(error, PersistenceError):
        return "persistence"
    return type(error).__name__
