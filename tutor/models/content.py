"""
Interactive Content Models

Typed payloads produced for the rendering layer.
"""

from datetime import datetime
from typing import Any, Literal, Optional, get_args
from pydantic import BaseModel, ConfigDict, Field
import uuid


ContentType = Literal[
    "explainer",
    "multiple-choice",
    "fill-blank",
    "drag-drop",
    "step-solver",
    "concept-card",
    "interactive-example",
    "progress-quiz",
    "graph-visualizer",
    "formula-explorer",
    "text-highlighter",
    "placeholder",
]

CONTENT_TYPES: tuple[str, ...] = get_args(ContentType)


class InteractiveContent(BaseModel):
    """
    A renderable piece of content.

    Immutable once created; regenerating content produces a new instance
    with a new id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"content_{uuid.uuid4().hex[:12]}")
    type: ContentType
    data: dict[str, Any] = Field(default_factory=dict)
    title: str
    subject_id: Optional[str] = None
    learning_objective: str = ""
    difficulty: str = "beginner"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict[str, Any]:
        """Tool-result shape handed back to the LLM and the renderer."""
        return {
            "type": "interactive_component",
            "id": self.id,
            "componentType": self.type,
            "title": self.title,
            "content": self.data,
            "learningObjective": self.learning_objective,
            "difficulty": self.difficulty,
        }
