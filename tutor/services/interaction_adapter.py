"""
Interaction Adapter

Turns events from rendered interactive components (a free-form action name
plus a data payload) into the follow-up message sent to the orchestrator.
"""

import json
import random
from typing import Any, Optional
from pydantic import BaseModel

from tutor.models.context import TutorContext
from tutor.services.diversity import select_type


SUBMISSION_ACTIONS = {
    "answer_submitted": "an answer",
    "fill_blank_submitted": "a fill-in-the-blank exercise",
    "drag_drop_submitted": "a drag and drop exercise",
    "quiz_submitted": "a quiz",
    "highlights_checked": "a text highlighting exercise",
}

NEXT_ACTIONS = {
    "next_question": "question",
    "next_exercise": "exercise",
    "next_problem": "problem",
}

HELP_ACTIONS = {
    "hint": "I'd like a hint for this one.",
    "explain_more": "Can you explain this in more detail?",
    "examples_requested": "Can you show me more examples?",
    "concept_expanded": "I'd like a deeper explanation of this concept.",
    "question_requested": "I have a question about this.",
}

RESET_ACTIONS = frozenset({
    "reset_question", "fill_blank_reset", "drag_drop_reset", "solver_reset", "quiz_reset", "graph_reset",
})

MAX_DATA_CHARS = 500


class InteractionPrompt(BaseModel):
    """Follow-up message synthesized from one interaction event."""

    action: str
    message: str
    content_type: Optional[str] = None
    correct: Optional[bool] = None


def _answer_correctness(data: dict[str, Any]) -> Optional[bool]:
    for key in ("correct", "isCorrect", "is_correct"):
        value = data.get(key)
        if isinstance(value, bool):
            return value
    return None


def _data_summary(data: dict[str, Any]) -> str:
    if not data:
        return ""
    text = json.dumps(data, default=str)
    if len(text) > MAX_DATA_CHARS:
        text = text[:MAX_DATA_CHARS] + "..."
    return text


def describe_interaction(
    action: str,
    data: Optional[dict[str, Any]],
    context: TutorContext,
    rng: Optional[random.Random] = None,
) -> InteractionPrompt:
    """Build the message the learner would have typed for `action`."""
    data = data or {}
    action = action.strip()
    lesson = context.current_lesson
    topic = lesson.title if lesson else (context.subject.name if context.subject else "this topic")

    if action in SUBMISSION_ACTIONS:
        correct = _answer_correctness(data)
        verdict = "" if correct is None else (" I got it right." if correct else " I got it wrong.")
        details = _data_summary(data)
        message = f"I submitted {SUBMISSION_ACTIONS[action]} for {topic}.{verdict}"
        if details:
            message += f" Details: {details}"
        return InteractionPrompt(action=action, message=message, correct=correct)

    if action in NEXT_ACTIONS:
        recent = lesson.recent_content_types if lesson else []
        content_type = select_type(action, recent, rng)
        return InteractionPrompt(
            action=action,
            message=(
                f"Please give me another {NEXT_ACTIONS[action]} on {topic}. "
                f"Use an interactive_component of type '{content_type}'."
            ),
            content_type=content_type,
        )

    if action in HELP_ACTIONS:
        return InteractionPrompt(action=action, message=f"{HELP_ACTIONS[action]} (Topic: {topic})")

    if action in RESET_ACTIONS:
        return InteractionPrompt(action=action, message=f"I reset the exercise on {topic} and want to try again.")

    details = _data_summary(data)
    message = f"I interacted with the {topic} content ({action})."
    if details:
        message += f" Details: {details}"
    return InteractionPrompt(action=action, message=message)
