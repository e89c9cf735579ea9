"""
Subject Model

A learner-owned subject of study and its lifecycle timestamps.
"""

from datetime import datetime
import time
import uuid
from typing import Optional
from pydantic import BaseModel, Field


def new_subject_id() -> str:
    """Millisecond timestamp plus a random suffix, unique across all users."""
    return f"subject_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class Subject(BaseModel):
    """One subject the learner is studying."""

    id: str = Field(default_factory=new_subject_id, description="Unique subject identifier")
    name: str = Field(min_length=1, description="Display name")
    progress: float = Field(default=0.0, ge=0.0, le=100.0, description="Completion percentage")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_active_at: datetime = Field(default_factory=datetime.utcnow)
    topic_keywords: list[str] = Field(default_factory=list)
    completed_at: Optional[datetime] = None

    def touch(self) -> None:
        self.last_active_at = datetime.utcnow()

    def mark_complete(self) -> None:
        self.progress = 100.0
        self.is_active = False
        self.completed_at = datetime.utcnow()
        self.touch()


def create_subject(name: str, topic_keywords: Optional[list[str]] = None) -> Subject:
    """Create a subject, defaulting its keywords to the lowercased name."""
    name = name.strip()
    return Subject(
        name=name,
        topic_keywords=topic_keywords or [name.lower()],
    )
