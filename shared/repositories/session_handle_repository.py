"""Subject session handle data access layer."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import SessionHandleRecord

logger = logging.getLogger(__name__)


class SessionHandleRepository:
    """Repository for the subject -> (thread, assistant) mapping."""

    def __init__(self, db: DBSession):
        self.db = db

    def get(self, subject_id: str) -> Optional[SessionHandleRecord]:
        return self.db.query(SessionHandleRecord).filter(SessionHandleRecord.subject_id == subject_id).first()

    def upsert(self, subject_id: str, thread_id: str, assistant_id: str, model: str) -> SessionHandleRecord:
        record = self.get(subject_id)
        if record is None:
            record = SessionHandleRecord(subject_id=subject_id)
            self.db.add(record)
        record.thread_id = thread_id
        record.assistant_id = assistant_id
        record.model = model
        record.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, subject_id: str) -> bool:
        deleted = self.db.query(SessionHandleRecord).filter(SessionHandleRecord.subject_id == subject_id).delete()
        self.db.commit()
        return deleted > 0
