"""Subject data access layer."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import SubjectRecord

logger = logging.getLogger(__name__)


class SubjectRepository:
    """Repository for subject CRUD operations."""

    def __init__(self, db: DBSession):
        self.db = db

    def get_by_id(self, subject_id: str, user_id: Optional[str] = None) -> Optional[SubjectRecord]:
        query = self.db.query(SubjectRecord).filter(SubjectRecord.id == subject_id)
        if user_id is not None:
            query = query.filter(SubjectRecord.user_id == user_id)
        return query.first()

    def list_by_user(self, user_id: str) -> list[SubjectRecord]:
        """Subjects for a user, most recently active first."""
        return (
            self.db.query(SubjectRecord)
            .filter(SubjectRecord.user_id == user_id)
            .order_by(SubjectRecord.last_active.desc())
            .all()
        )

    def upsert(
        self,
        subject_id: str,
        user_id: str,
        name: str,
        progress: float,
        is_active: bool,
        keywords_json: str,
        lesson_plan_json: Optional[str],
        learning_progress_json: Optional[str],
        created_at: datetime,
        last_active: datetime,
        completed_at: Optional[datetime],
    ) -> SubjectRecord:
        """
        Insert the subject or overwrite this user's existing row.

        Raises:
            IntegrityError: if the id belongs to another user
        """
        record = self.get_by_id(subject_id, user_id)
        if record is None:
            record = SubjectRecord(id=subject_id, user_id=user_id, created_at=created_at)
            self.db.add(record)
        record.name = name
        record.progress = progress
        record.is_active = is_active
        record.keywords_json = keywords_json
        record.lesson_plan_json = lesson_plan_json
        record.learning_progress_json = learning_progress_json
        record.last_active = last_active
        record.completed_at = completed_at
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, subject_id: str, user_id: str) -> bool:
        deleted = (
            self.db.query(SubjectRecord)
            .filter(SubjectRecord.id == subject_id, SubjectRecord.user_id == user_id)
            .delete()
        )
        self.db.commit()
        return deleted > 0

    def delete_by_user(self, user_id: str) -> int:
        deleted = self.db.query(SubjectRecord).filter(SubjectRecord.user_id == user_id).delete()
        self.db.commit()
        return deleted
