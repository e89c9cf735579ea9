"""Shared ORM models."""
from shared.models.entities import (
    Base,
    SubjectRecord,
    ChatMessageRecord,
    ContentItemRecord,
    TutorContextRecord,
    SessionHandleRecord,
)
