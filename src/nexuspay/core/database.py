"""
Database configuration and connection management.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from nexuspay.config.settings import DatabaseSettings, settings
from nexuspay.core.models import Base


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(self, database: Optional[DatabaseSettings] = None):
        self.database = database or settings.database
        self.engine = create_engine(self.database.url, **self.database.engine_kwargs, future=True)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )
        logger.info(f"Database engine initialized ({self.engine.dialect.name})")

    def create_tables(self):
        """Create all database tables."""
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")

    def drop_tables(self):
        """Drop all database tables."""
        logger.warning("Dropping all database tables...")
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic cleanup."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        """Perform a health check on the database connection."""
        try:
            with self.get_session() as session:
                row = session.execute(text("SELECT 1")).fetchone()
            return {
                "status": "healthy",
                "dialect": self.engine.dialect.name,
                "connection_test": "passed" if row and row[0] == 1 else "failed",
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "dialect": self.engine.dialect.name, "error": str(e)}

    def dispose(self):
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the process-wide database manager."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def get_db() -> Generator[Session, None, None]:
    """Dependency function to get database session in FastAPI endpoints."""
    with get_db_manager().get_session() as session:
        yield session
