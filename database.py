"""
Database management layer.

Provides abstraction for database connections, sessions, and health checks.
"""

from contextlib import contextmanager
from typing import Generator
from sqlalchemy import create_engine, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from config import get_settings
import logging

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Manages database connections and sessions.

    Provides:
    - Engine creation (pooled for server databases)
    - Session factory
    - Health checks
    - Context managers for transactions
    """

    def __init__(self, database_url: str | None = None):
        self.settings = get_settings()
        self.database_url = database_url or str(self.settings.database_url)
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False
            )
        return self._session_factory

    def _create_engine(self) -> Engine:
        """
        Create the SQLAlchemy engine.

        SQLite URLs (local development and tests) skip pool sizing, which
        SQLite's default pools do not accept.
        """
        logger.info(f"Creating database engine for: {self._mask_password(self.database_url)}")

        if self.database_url.startswith("sqlite"):
            engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                echo=self.settings.log_level == "DEBUG",
            )
        else:
            engine = create_engine(
                self.database_url,
                poolclass=QueuePool,
                pool_size=self.settings.db_pool_size,
                max_overflow=self.settings.db_max_overflow,
                pool_timeout=self.settings.db_pool_timeout,
                pool_pre_ping=True,  # Verify connections before using
                echo=self.settings.log_level == "DEBUG",  # SQL logging
            )

        logger.info("Database engine created successfully")
        return engine

    def create_tables(self) -> None:
        """Create any missing tables for the registered entities."""
        from shared.models.entities import Base

        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        Usage:
            with db_manager.session_scope() as session:
                session.query(Model).all()

        Raises:
            Exception: Re-raises any exception after rolling back
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database transaction failed: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database health check passed")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self):
        """Close the database engine and dispose of connections."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine closed")

    @staticmethod
    def _mask_password(url: str) -> str:
        """Mask the password in a database URL for logging."""
        if "@" in url and ":" in url:
            parts = url.split("@")
            if len(parts) == 2:
                credentials = parts[0]
                if ":" in credentials:
                    user_pass = credentials.split(":")
                    if len(user_pass) >= 3:
                        # Keep scheme and user, mask password
                        return f"{':'.join(user_pass[:-1])}:****@{parts[1]}"
        return url


# Global database manager instance
_db_manager: DatabaseManager | None = None


def get_db_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def reset_db_manager():
    """Reset the global database manager (useful for testing)."""
    global _db_manager
    if _db_manager:
        _db_manager.close()
    _db_manager = None
