"""Pytest configuration and shared fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings, reset_settings
from shared.models.entities import Base
from tutor.models.context import TutorContext, UserProfile
from tutor.models.lesson_plan import create_lesson_plan
from tutor.models.subject import create_subject
from tutor.models.turn_logs import TurnLogStore
from tutor.services.persistence_service import PersistenceService


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep tests independent of a developer's environment and .env file."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(scope="function")
def session_factory():
    """
    Session factory over a fresh in-memory SQLite database.

    StaticPool keeps the single connection alive so worker threads see the
    same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    yield factory

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def test_settings():
    return Settings(
        openai_api_key="test-key",
        llm_model="gpt-4o",
        llm_fallback_models=["gpt-4o-mini"],
        run_poll_interval=0.0,
        run_timeout=5.0,
        max_tool_rounds=3,
        persistence_max_attempts=2,
        persistence_base_delay=0.0,
        persistence_max_delay=0.0,
    )


@pytest.fixture
def mock_persistence(mocker):
    """Persistence collaborator that records calls without a database."""
    return mocker.Mock(spec=PersistenceService)


@pytest.fixture
def turn_logs():
    return TurnLogStore()


@pytest.fixture
def lesson_context():
    """Context for a learner mid-way through a three-lesson Algebra plan."""
    subject = create_subject("Algebra")
    plan = create_lesson_plan("Algebra", ["Variables", "Equations", "Inequalities"], "beginner")
    context = TutorContext(
        user_id="user-1",
        subject=subject,
        lesson_plan=plan,
        profile=UserProfile(learning_goals=["Variables", "Equations", "Inequalities"]),
    )
    context.sync_progress()
    return context
