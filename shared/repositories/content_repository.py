"""Content feed data access layer."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import ContentItemRecord

logger = logging.getLogger(__name__)


class ContentRepository:
    """Repository for the per-subject interactive content feed."""

    def __init__(self, db: DBSession):
        self.db = db

    def next_order_index(self, subject_id: str) -> int:
        current = (
            self.db.query(func.max(ContentItemRecord.order_index))
            .filter(ContentItemRecord.subject_id == subject_id)
            .scalar()
        )
        return 0 if current is None else current + 1

    def create(
        self,
        content_id: str,
        user_id: str,
        subject_id: str,
        content_type: str,
        title: str,
        data_json: str,
        created_at: Optional[datetime] = None,
    ) -> ContentItemRecord:
        """
        Append an item to the end of the subject's feed.

        Raises:
            IntegrityError: if an item with this id already exists
        """
        record = ContentItemRecord(
            id=content_id,
            user_id=user_id,
            subject_id=subject_id,
            content_type=content_type,
            title=title,
            data_json=data_json,
            order_index=self.next_order_index(subject_id),
            created_at=created_at or datetime.utcnow(),
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def list_by_subject(self, subject_id: str, user_id: Optional[str] = None) -> list[ContentItemRecord]:
        query = self.db.query(ContentItemRecord).filter(ContentItemRecord.subject_id == subject_id)
        if user_id is not None:
            query = query.filter(ContentItemRecord.user_id == user_id)
        return query.order_by(ContentItemRecord.order_index.asc()).all()

    def delete_by_subject(self, subject_id: str) -> int:
        deleted = self.db.query(ContentItemRecord).filter(ContentItemRecord.subject_id == subject_id).delete()
        self.db.commit()
        return deleted

    def delete_by_user(self, user_id: str) -> int:
        deleted = self.db.query(ContentItemRecord).filter(ContentItemRecord.user_id == user_id).delete()
        self.db.commit()
        return deleted
