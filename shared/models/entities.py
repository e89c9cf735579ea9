"""SQLAlchemy ORM database models."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Text, DateTime, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SubjectRecord(Base):
    """Subject table - one row per learner subject."""
    __tablename__ = "subjects"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    progress = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    keywords_json = Column(Text, nullable=False, default="[]")
    lesson_plan_json = Column(Text, nullable=True)        # Serialized LessonPlan
    learning_progress_json = Column(Text, nullable=True)  # Serialized LearningProgress
    created_at = Column(DateTime, default=datetime.utcnow)
    last_active = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_subject_user", "user_id"),
    )


class ChatMessageRecord(Base):
    """Chat message table - conversation history per subject."""
    __tablename__ = "chat_messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)  # Insertion order
    id = Column(String, nullable=False, unique=True)
    user_id = Column(String, nullable=False)
    subject_id = Column(String, nullable=False)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    tool_calls_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_message_subject", "subject_id", "seq"),
    )


class ContentItemRecord(Base):
    """Content feed table - interactive content produced per subject."""
    __tablename__ = "content_feed"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    subject_id = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    data_json = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_content_subject", "subject_id", "order_index"),
    )


class TutorContextRecord(Base):
    """Tutor context table - serialized TutorContext per (user, subject)."""
    __tablename__ = "tutor_contexts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    subject_id = Column(String, nullable=False)
    context_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "subject_id", name="uq_tutor_context_user_subject"),
    )


class SessionHandleRecord(Base):
    """Subject session table - remote thread/assistant ids per subject."""
    __tablename__ = "subject_sessions"

    subject_id = Column(String, primary_key=True)
    thread_id = Column(String, nullable=False)
    assistant_id = Column(String, nullable=False)
    model = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
