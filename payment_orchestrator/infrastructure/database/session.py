"""Database session management with connection pooling"""

from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from payment_orchestrator.config import settings

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SessionFactory = Callable[[], Session]


def get_db() -> Session:
    """Dependency injection for request-scoped database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> SessionFactory:
    """Dependency injection for work that outlives the request (background saga steps)"""
    return SessionLocal
