"""
Function-tool schemas registered on every subject assistant.
"""

from typing import Any

from tutor.models.content import CONTENT_TYPES

_LEVELS = ["beginner", "intermediate", "advanced"]


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TUTOR_TOOLS: list[dict[str, Any]] = [
    _function(
        "new_subject",
        "Start learning a new subject. Creates a new learning track with initial assessment.",
        {
            "name": {"type": "string", "description": 'Subject to learn (e.g. "Algebra", "Biology")'},
            "description": {"type": "string", "description": "What the student wants to learn in this subject"},
            "initial_level": {"type": "string", "enum": _LEVELS,
                              "description": "Starting difficulty based on the student's background"},
        },
        ["name"],
    ),
    _function(
        "new_lesson_plan",
        "Create a structured lesson sequence for the current subject.",
        {
            "subject": {"type": "string", "description": "Subject the plan is for"},
            "difficulty_level": {"type": "string", "enum": _LEVELS, "description": "Target difficulty"},
            "learning_goals": {"type": "array", "items": {"type": "string"},
                               "description": "Learning objectives, one lesson each"},
            "estimated_duration": {"type": "string", "description": 'Expected time, e.g. "2 weeks"'},
        },
        ["subject", "difficulty_level", "learning_goals"],
    ),
    _function(
        "update_lesson_plan",
        "Modify the current lesson plan based on student progress or feedback.",
        {
            "reason": {"type": "string", "description": "Why the plan needs to change"},
            "adjustments": {"type": "array", "items": {"type": "string"}, "description": "Changes to make"},
            "new_lessons": {"type": "array", "items": {"type": "string"}, "description": "Lesson titles to add"},
            "remove_lessons": {"type": "array", "items": {"type": "string"},
                               "description": "Lesson titles to remove"},
        },
        ["reason", "adjustments"],
    ),
    _function(
        "clarifying_question",
        "Ask the student to clarify something unclear about their request or understanding.",
        {
            "question": {"type": "string", "description": "The clarifying question"},
            "context": {"type": "string", "description": "Why clarification is needed"},
            "options": {"type": "array", "items": {"type": "string"}, "description": "Optional answer choices"},
        },
        ["question", "context"],
    ),
    _function(
        "lesson_complete",
        "Mark a lesson as complete or incomplete based on student performance.",
        {
            "lesson_id": {"type": "string", "description": "ID of the lesson being evaluated"},
            "completed": {"type": "boolean", "description": "Whether the lesson was completed"},
            "performance_score": {"type": "number", "minimum": 0, "maximum": 100,
                                  "description": "Student performance score (0-100)"},
            "feedback": {"type": "string", "description": "Feedback on the student's performance"},
        },
        ["lesson_id", "completed"],
    ),
    _function(
        "next_lesson",
        "Move to the next lesson in the current lesson plan.",
        {
            "current_lesson_id": {"type": "string", "description": "ID of the current lesson"},
            "assess_readiness": {"type": "boolean", "description": "Check readiness before advancing"},
        },
        ["current_lesson_id"],
    ),
    _function(
        "interactive_component",
        "Create an interactive learning component to teach or test understanding.",
        {
            "type": {"type": "string", "enum": list(CONTENT_TYPES), "description": "Component type"},
            "content": {"type": "object", "description": "Content data for the component type"},
            "learning_objective": {"type": "string", "description": "What the student should learn"},
            "difficulty": {"type": "string", "enum": _LEVELS, "description": "Difficulty of the interaction"},
        },
        ["type", "content", "learning_objective"],
    ),
    _function(
        "subject_complete",
        "Mark the entire subject as complete and suggest next steps.",
        {
            "subject_id": {"type": "string", "description": "ID of the completed subject"},
            "final_score": {"type": "number", "minimum": 0, "maximum": 100,
                            "description": "Final assessment score (0-100)"},
            "recommendations": {"type": "array", "items": {"type": "string"},
                                "description": "Recommended next subjects or levels"},
        },
        ["subject_id"],
    ),
    _function(
        "review_request",
        "Initiate a review session for previously learned material.",
        {
            "topics": {"type": "array", "items": {"type": "string"}, "description": "Topics to review"},
            "weak_areas": {"type": "array", "items": {"type": "string"},
                           "description": "Areas where the student struggled"},
            "review_type": {"type": "string", "enum": ["quick", "comprehensive"], "description": "Review depth"},
        },
        ["topics"],
    ),
    _function(
        "summary_request",
        "Provide a summary of lessons, concepts, or progress.",
        {
            "content_type": {"type": "string", "enum": ["lesson", "concept", "progress"],
                             "description": "What to summarize"},
            "scope": {"type": "string", "description": 'Scope, e.g. "current lesson"'},
        },
        ["content_type"],
    ),
    _function(
        "rephrase_request",
        "Explain the same concept in a different way or at a different level.",
        {
            "original_content": {"type": "string", "description": "Content to rephrase"},
            "style": {"type": "string", "enum": ["simpler", "more_detailed", "visual", "practical"],
                      "description": "How to rephrase"},
            "target_level": {"type": "string", "enum": _LEVELS, "description": "Target difficulty"},
        },
        ["original_content", "style"],
    ),
    _function(
        "feedback_log",
        "Log student interaction feedback for adaptive learning.",
        {
            "interaction_type": {"type": "string", "description": "Type of interaction"},
            "user_response": {"type": "string", "description": "How the student responded"},
            "success_rate": {"type": "number", "minimum": 0, "maximum": 100,
                             "description": "Success rate percentage (0-100)"},
            "engagement_level": {"type": "string", "enum": ["low", "medium", "high"],
                                 "description": "Engagement during the interaction"},
            "notes": {"type": "string", "description": "Additional notes"},
        },
        ["interaction_type", "user_response"],
    ),
]
