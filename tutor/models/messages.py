"""
Message Models

Request/response DTOs for the tutor API.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from tutor.models.content import InteractiveContent
from tutor.models.context import ToolCallRecord, TutorContext


class RetryAffordance(BaseModel):
    """Enough information to replay a failed turn without starting over."""

    action: str = Field(description="'respond' or the original interaction action")
    data: dict[str, Any] = Field(default_factory=dict)


class RespondRequest(BaseModel):
    user_id: str = Field(min_length=1)
    subject_id: Optional[str] = Field(default=None, description="Subject to continue; omitted for a new conversation")
    message: str = Field(min_length=1)
    context_overrides: Optional[dict[str, Any]] = None


class InteractionRequest(BaseModel):
    """An event coming back from a rendered interactive component."""

    user_id: str = Field(min_length=1)
    subject_id: Optional[str] = None
    action: str = Field(min_length=1, description="e.g. answer_submitted, next_question")
    data: dict[str, Any] = Field(default_factory=dict)


class RespondResponse(BaseModel):
    response_text: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    content: list[InteractiveContent] = Field(default_factory=list)
    context: TutorContext
    degraded: bool = Field(default=False, description="True when the offline fallback answered")
    retry: Optional[RetryAffordance] = None


class AssessmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1, alias="userId")
    subject_id: str = Field(min_length=1, alias="subjectId")
    lesson_id: str = Field(min_length=1, alias="lessonId")
    score: float = Field(ge=0)
    total: float
    difficulty: Optional[str] = None


class AssessmentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    summary: Optional[dict[str, Any]] = None
    subject_summary: Optional[dict[str, Any]] = Field(default=None, alias="subjectSummary")


class ContextUpdateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    context: TutorContext
