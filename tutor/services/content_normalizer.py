"""
Content Normalizer

Fills the fields the renderer needs for each content type when the LLM
omitted them. AI-supplied fields are always kept; only missing or empty
required fields are filled, with placeholders derived from the learning
objective.
"""

from typing import Any, Callable, Optional

from tutor.models.content import CONTENT_TYPES, InteractiveContent


PLACEHOLDER_TAG = "(placeholder)"

CONTENT_TYPE_ALIASES = {
    "quiz": "progress-quiz",
    "mcq": "multiple-choice",
    "concept": "concept-card",
    "example": "interactive-example",
    "graph": "graph-visualizer",
    "formula": "formula-explorer",
    "highlighter": "text-highlighter",
}


def resolve_content_type(name: Optional[str]) -> str:
    """Map a free-form type name to a known content type, or 'placeholder'."""
    if not name:
        return "placeholder"
    key = name.strip().lower().replace("_", "-").replace(" ", "-")
    key = CONTENT_TYPE_ALIASES.get(key, key)
    return key if key in CONTENT_TYPES else "placeholder"


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, dict, tuple)) and len(value) == 0)


def _fill(data: dict[str, Any], defaults: dict[str, Callable[[], Any]]) -> dict[str, Any]:
    result = dict(data)
    for field, make_default in defaults.items():
        if is_empty(result.get(field)):
            result[field] = make_default()
    return result


# Per-type variants. Each returns a fully populated copy of `data`.

def _explainer(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: objective,
        "overview": lambda: f"Understanding {objective}",
        "sections": lambda: [{
            "heading": f"Introduction to {objective}",
            "paragraphs": [f"An overview of {objective} {PLACEHOLDER_TAG}."],
        }],
        "difficulty": lambda: difficulty,
    })


def _interactive_example(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Interactive Example: {objective}",
        "description": lambda: f"Explore {objective} interactively",
        "controls": lambda: [{"id": "value", "label": f"Adjust {objective}", "type": "slider",
                              "min": 0, "max": 10, "default": 5}],
        "display": lambda: [{"id": "result", "label": f"Result {PLACEHOLDER_TAG}"}],
        "explanation": lambda: f"This interactive example helps you understand {objective}",
    })


def _multiple_choice(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "question": lambda: f"Which statement best describes {objective}?",
        "choices": lambda: [
            {"id": "a", "text": f"A correct statement about {objective} {PLACEHOLDER_TAG}", "isCorrect": True},
            {"id": "b", "text": f"An incorrect statement about {objective} {PLACEHOLDER_TAG}", "isCorrect": False},
        ],
        "explanation": lambda: f"Practice question for: {objective}",
    })


def _concept_card(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: objective,
        "summary": lambda: f"Key concept: {objective}",
        "details": lambda: "This concept is fundamental to understanding the subject.",
        "keyPoints": lambda: [f"The core idea of {objective} {PLACEHOLDER_TAG}"],
        "examples": lambda: [f"An everyday example of {objective} {PLACEHOLDER_TAG}"],
        "difficulty": lambda: difficulty,
    })


def _fill_blank(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Fill in the Blanks: {objective}",
        "text": lambda: f"Complete the following sentence: {objective} is about ___.",
        "blanks": lambda: [{"id": "blank_1", "answer": objective}],
        "hints": lambda: [f"Think about what {objective} means {PLACEHOLDER_TAG}"],
    })


def _step_solver(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Step-by-Step: {objective}",
        "problem": lambda: f"Practice problem for {objective}",
        "steps": lambda: [{"id": "step_1", "instruction": f"Identify what {objective} asks for {PLACEHOLDER_TAG}"}],
        "hints": lambda: [f"Break {objective} into smaller parts {PLACEHOLDER_TAG}"],
    })


def _drag_drop(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Drag & Drop: {objective}",
        "instructions": lambda: f"Organize items related to {objective}",
        "items": lambda: [{"id": "item_1", "text": f"An idea from {objective} {PLACEHOLDER_TAG}", "target": "target_1"}],
        "targets": lambda: [{"id": "target_1", "label": objective}],
    })


def _progress_quiz(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Progress Quiz: {objective}",
        "description": lambda: f"Test your knowledge of {objective}",
        "questions": lambda: [{
            "id": "q1",
            "question": f"Which statement best describes {objective}?",
            "options": [
                f"A correct statement about {objective} {PLACEHOLDER_TAG}",
                f"An incorrect statement about {objective} {PLACEHOLDER_TAG}",
            ],
            "correctAnswer": 0,
        }],
        "passingScore": lambda: 70,
    })


def _graph_visualizer(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Graph: {objective}",
        "description": lambda: f"Visualizing data for {objective}",
        "data": lambda: [{"x": 0, "y": 0}, {"x": 1, "y": 1}],
        "chartType": lambda: "line",
    })


def _formula_explorer(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Formula Explorer: {objective}",
        "description": lambda: f"Explore the formula for {objective}",
        "formula": lambda: "y = x",
        "variables": lambda: [{"name": "x", "description": f"Input for {objective} {PLACEHOLDER_TAG}", "value": 1}],
        "steps": lambda: [f"Substitute a value for x {PLACEHOLDER_TAG}"],
    })


def _text_highlighter(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: f"Text Analysis: {objective}",
        "description": lambda: f"Analyze text related to {objective}",
        "text": lambda: f"Sample text for {objective}",
        "categories": lambda: [{"id": "key_idea", "label": "Key idea", "color": "yellow"}],
    })


def _placeholder(data: dict, objective: str, difficulty: str) -> dict:
    return _fill(data, {
        "title": lambda: objective,
        "description": lambda: f"Interactive content for {objective}",
    })


NORMALIZERS: dict[str, Callable[[dict, str, str], dict]] = {
    "explainer": _explainer,
    "interactive-example": _interactive_example,
    "multiple-choice": _multiple_choice,
    "concept-card": _concept_card,
    "fill-blank": _fill_blank,
    "step-solver": _step_solver,
    "drag-drop": _drag_drop,
    "progress-quiz": _progress_quiz,
    "graph-visualizer": _graph_visualizer,
    "formula-explorer": _formula_explorer,
    "text-highlighter": _text_highlighter,
    "placeholder": _placeholder,
}

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    content_type: tuple(normalizer({}, "x", "beginner").keys())
    for content_type, normalizer in NORMALIZERS.items()
}

_missing = set(CONTENT_TYPES) - set(NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer for content types: {sorted(_missing)}")


def normalize(
    content_type: str,
    ai_data: Optional[dict[str, Any]],
    learning_objective: Optional[str],
    difficulty: Optional[str] = None,
) -> dict[str, Any]:
    """
    Return a complete copy of `ai_data` for `content_type`.

    Unknown types are normalized as 'placeholder' and keep the requested
    name under `requestedType`.
    """
    resolved = resolve_content_type(content_type)
    objective = (learning_objective or "").strip() or "this topic"
    level = (difficulty or "").strip() or "beginner"
    data = dict(ai_data) if isinstance(ai_data, dict) else {}

    result = NORMALIZERS[resolved](data, objective, level)
    if resolved == "placeholder" and content_type and content_type != "placeholder":
        result.setdefault("requestedType", content_type)
    return result


def build_content(
    content_type: str,
    ai_data: Optional[dict[str, Any]],
    learning_objective: Optional[str],
    difficulty: Optional[str] = None,
    subject_id: Optional[str] = None,
) -> InteractiveContent:
    """Normalize and wrap the result in a new InteractiveContent."""
    resolved = resolve_content_type(content_type)
    data = normalize(content_type, ai_data, learning_objective, difficulty)
    return InteractiveContent(
        type=resolved,
        data=data,
        title=str(data.get("title") or learning_objective or resolved),
        subject_id=subject_id,
        learning_objective=(learning_objective or "").strip(),
        difficulty=(difficulty or "").strip() or "beginner",
    )
