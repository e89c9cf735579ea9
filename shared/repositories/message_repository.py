"""Chat message data access layer."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import ChatMessageRecord

logger = logging.getLogger(__name__)


class MessageRepository:
    """Repository for conversation messages."""

    def __init__(self, db: DBSession):
        self.db = db

    def create(
        self,
        message_id: str,
        user_id: str,
        subject_id: str,
        role: str,
        content: str,
        tool_calls_json: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> ChatMessageRecord:
        """
        Insert a message.

        Raises:
            IntegrityError: if a message with this id already exists
        """
        record = ChatMessageRecord(
            id=message_id,
            user_id=user_id,
            subject_id=subject_id,
            role=role,
            content=content,
            tool_calls_json=tool_calls_json,
            created_at=created_at or datetime.utcnow(),
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def list_by_subject(self, subject_id: str, user_id: Optional[str] = None, limit: int = 500) -> list[ChatMessageRecord]:
        """The newest `limit` messages of a subject, oldest first."""
        query = self.db.query(ChatMessageRecord).filter(ChatMessageRecord.subject_id == subject_id)
        if user_id is not None:
            query = query.filter(ChatMessageRecord.user_id == user_id)
        records = query.order_by(ChatMessageRecord.seq.desc()).limit(limit).all()
        records.reverse()
        return records

    def delete_by_subject(self, subject_id: str) -> int:
        deleted = self.db.query(ChatMessageRecord).filter(ChatMessageRecord.subject_id == subject_id).delete()
        self.db.commit()
        return deleted

    def delete_by_user(self, user_id: str) -> int:
        deleted = self.db.query(ChatMessageRecord).filter(ChatMessageRecord.user_id == user_id).delete()
        self.db.commit()
        return deleted
