"""Summary payloads for lessons, subjects and progress."""

from typing import Any, Optional

from tutor.models.context import TutorContext
from tutor.models.lesson_plan import Lesson


def build_progress_summary(context: TutorContext) -> dict[str, Any]:
    plan = context.lesson_plan
    progress = context.progress
    accuracy = round(progress.accuracy * 100, 1)
    completed = plan.completed_count if plan else 0
    subject_name = context.subject.name if context.subject else "None"
    return {
        "type": "summary",
        "contentType": "progress",
        "content": (
            "Learning Progress Summary:\n"
            f"- Accuracy: {accuracy}%\n"
            f"- Lessons completed: {completed}\n"
            f"- Current subject: {subject_name}"
        ),
        "accuracy": accuracy,
        "lessonsCompleted": completed,
        "totalLessons": plan.total_lessons if plan else 0,
        "subjectProgress": context.subject.progress if context.subject else 0.0,
    }


def build_lesson_summary(context: TutorContext, lesson: Optional[Lesson] = None) -> dict[str, Any]:
    lesson = lesson or context.current_lesson
    if lesson is None:
        return {"type": "summary", "contentType": "lesson", "content": "No active lesson"}
    return {
        "type": "summary",
        "contentType": "lesson",
        "lessonId": lesson.id,
        "title": lesson.title,
        "completed": lesson.completed,
        "content": f"Current Lesson Summary:\nTitle: {lesson.title}\nDescription: {lesson.description}",
        "objectives": list(lesson.learning_objectives),
        "achievement": lesson.achievement,
    }


def build_concept_summary(context: TutorContext, scope: Optional[str] = None) -> dict[str, Any]:
    lesson = context.current_lesson
    concept = lesson.current_concept if lesson else None
    focus = scope or (concept.title if concept else None) or "General overview of key concepts covered"
    return {
        "type": "summary",
        "contentType": "concept",
        "content": f"Concept Summary: {focus}",
        "scope": scope,
    }


def build_subject_summary(context: TutorContext) -> dict[str, Any]:
    plan = context.lesson_plan
    lessons = plan.lessons if plan else []
    subject_name = context.subject.name if context.subject else "this subject"
    return {
        "type": "summary",
        "contentType": "subject",
        "subject": subject_name,
        "content": f"You have completed {sum(1 for l in lessons if l.completed)} of {len(lessons)} lessons in {subject_name}.",
        "lessons": [{"id": l.id, "title": l.title, "completed": l.completed} for l in lessons],
        "accuracy": round(context.progress.accuracy * 100, 1),
    }
