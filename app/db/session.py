"""Database engine setup.

For test runs (ENV=test) the URL defaults to in-memory SQLite; a ``StaticPool``
keeps every session on the same connection so the schema survives between
sessions.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings

raw_url = settings.DATABASE_URL or "sqlite:///./storage/dev.db"

if raw_url.startswith("sqlite") and ":memory:" in raw_url:
    engine = create_engine(
        raw_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
elif raw_url.startswith("sqlite"):
    engine = create_engine(raw_url, connect_args={"check_same_thread": False}, future=True)
else:
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,
    )
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
