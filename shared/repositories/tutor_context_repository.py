"""Tutor context data access layer."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import TutorContextRecord

logger = logging.getLogger(__name__)


class TutorContextRepository:
    """Repository for serialized tutor contexts, one per (user, subject)."""

    def __init__(self, db: DBSession):
        self.db = db

    def get(self, user_id: str, subject_id: str) -> Optional[TutorContextRecord]:
        return (
            self.db.query(TutorContextRecord)
            .filter(TutorContextRecord.user_id == user_id, TutorContextRecord.subject_id == subject_id)
            .first()
        )

    def upsert(self, user_id: str, subject_id: str, context_json: str) -> TutorContextRecord:
        record = self.get(user_id, subject_id)
        if record is None:
            record = TutorContextRecord(user_id=user_id, subject_id=subject_id, context_json=context_json)
            self.db.add(record)
        else:
            record.context_json = context_json
            record.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, user_id: str, subject_id: str) -> bool:
        deleted = (
            self.db.query(TutorContextRecord)
            .filter(TutorContextRecord.user_id == user_id, TutorContextRecord.subject_id == subject_id)
            .delete()
        )
        self.db.commit()
        return deleted > 0

    def delete_by_user(self, user_id: str) -> int:
        deleted = self.db.query(TutorContextRecord).filter(TutorContextRecord.user_id == user_id).delete()
        self.db.commit()
        return deleted
