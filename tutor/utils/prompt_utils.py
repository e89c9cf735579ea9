"""
Prompt construction utilities.

Builds the per-run additional instructions and the per-subject assistant
instructions from a TutorContext.
"""

from typing import Optional, TYPE_CHECKING

from tutor.prompts.templates import (
    ASSISTANT_INSTRUCTIONS_TEMPLATE,
    ASSISTANT_NAME_TEMPLATE,
    INTERACTIVE_CONTENT_GUIDELINES,
    INTERACTIVE_DIRECTIVES,
)

if TYPE_CHECKING:
    from tutor.models.context import TutorContext


def assistant_name(subject_name: str) -> str:
    return ASSISTANT_NAME_TEMPLATE.render(subject=subject_name)


def assistant_instructions(subject_name: str) -> str:
    return ASSISTANT_INSTRUCTIONS_TEMPLATE.render(
        subject=subject_name,
        interactive_guidelines=INTERACTIVE_CONTENT_GUIDELINES,
    )


def build_contextual_instructions(context: "TutorContext") -> Optional[str]:
    """
    Additional run instructions describing where the learner is.

    Returns None when the context carries nothing worth adding.
    """
    lines: list[str] = []

    if context.subject is not None:
        lines.append(f"Current subject: {context.subject.name}")
        lines.append(f"Subject progress: {round(context.subject.progress)}%")

    plan = context.lesson_plan
    if plan is not None and plan.lessons:
        if plan.current_lesson is not None:
            lesson = plan.current_lesson
            lines.append(f"Current lesson: {plan.current_lesson_index + 1} of {plan.total_lessons}")
            lines.append(f"Current lesson id: {lesson.id} ({lesson.title})")
            if lesson.current_concept is not None:
                lines.append(f"Current concept: {lesson.current_concept.title}")
            if plan.is_last_lesson(lesson):
                lines.append("This is the final lesson of the plan.")
            if plan.can_advance():
                lines.append("The current lesson is completed; the student may advance with next_lesson.")
        else:
            lines.append(f"All {plan.total_lessons} lessons are completed.")

    progress = context.progress
    if progress.total_attempts > 0:
        lines.append(f"Current accuracy: {round(progress.accuracy * 100)}%")
        if progress.needs_review:
            lines.append("The student is struggling; review and simplify before moving on.")

    profile = context.profile
    if profile.preferred_learning_style:
        lines.append(f"Preferred learning style: {profile.preferred_learning_style}")
    if profile.preferred_pace:
        lines.append(f"Preferred pace: {profile.preferred_pace}")

    if context.subject is not None:
        lines.extend(INTERACTIVE_DIRECTIVES)

    lines.extend(line for line in context.instruction_overrides if line and line.strip())

    if profile.learning_goals:
        lines.append(f"Learning goals: {', '.join(profile.learning_goals)}")
    if profile.self_assessed_level:
        lines.append(f"Self-assessed level: {profile.self_assessed_level}")

    if not lines:
        return None
    return "Additional context for this conversation:\n" + "\n".join(lines)
