"""
Assessment Service

Grades a submitted assessment for one lesson and returns the endpoint
payload. Passing marks the lesson complete; failing leaves it as it was.
"""

import logging
from typing import Optional

from tutor.models.context import TutorContext
from tutor.models.messages import AssessmentResponse
from tutor.services.summaries import build_lesson_summary, build_subject_summary

logger = logging.getLogger("tutor.assessment")


PASS_MESSAGE = "Lesson mastered! You can advance to the next lesson."


def evaluate_assessment(
    context: TutorContext,
    lesson_id: str,
    score: float,
    total: float,
    difficulty: Optional[str] = None,
) -> AssessmentResponse:
    """Apply an assessment score to `context` and describe the outcome."""
    plan = context.lesson_plan
    if plan is None:
        return AssessmentResponse(success=False, message="No active lesson plan")
    lesson = plan.get_lesson(lesson_id)
    if lesson is None:
        return AssessmentResponse(success=False, message="Lesson not found")
    if total <= 0 or score < 0:
        return AssessmentResponse(success=False, message="Assessment total must be positive and score non-negative")

    _, mastery = plan.record_assessment(
        lesson_id,
        score,
        total,
        learner_level=context.learner_level,
        difficulty=difficulty,
    )
    context.progress.record_attempt(mastery.passed, mastery.threshold)
    context.sync_progress()

    logger.info(
        f"Assessment for lesson {lesson_id}: {mastery.percentage}% "
        f"(threshold {mastery.threshold_percentage}%, passed={mastery.passed})"
    )

    if not mastery.passed:
        return AssessmentResponse(
            success=False,
            message=(
                f"You scored {mastery.percentage}%. Mastery requires "
                f"{mastery.threshold_percentage}%. Try again or review the material."
            ),
        )

    return AssessmentResponse(
        success=True,
        message=PASS_MESSAGE,
        summary=build_lesson_summary(context, lesson),
        subject_summary=build_subject_summary(context) if plan.all_completed else None,
    )
