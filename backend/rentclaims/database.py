"""
Rental Claims Core - Database Configuration

One engine per process, built from DATABASE_URL. PostgreSQL in deployment,
SQLite for local runs and tests. Claim, hold and negotiation writes depend on
conditional UPDATEs, so every session runs with autoflush off and commits
explicitly.
"""
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/rental_claims"
)
SQL_ECHO = os.getenv("SQL_ECHO", "").lower() in ("1", "true", "yes")


def engine_options(url: str) -> Dict[str, Any]:
    """Driver-specific engine arguments."""
    if url.startswith("sqlite"):
        # Request handlers and the sweep thread share connections
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine: Engine = create_engine(DATABASE_URL, echo=SQL_ECHO, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts: commit on success, roll back on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """Create any missing tables for the claims core."""
    from .models import db_models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)
