"""
Engine and session handling for Boardrank.

Scripts use get_session(), which commits when the block exits cleanly.
API routes use get_db() and commit themselves, because settlement commits
the participant mapping part-way through a run and routes need to decide
when the rest lands.

Usage:
    from boardrank.db import get_session

    with get_session() as session:
        finalize_active_season(session)

    @app.get("/api/seasons/{season_id}/leaderboard")
    def leaderboard(season_id: str, db: Session = Depends(get_db)):
        ...
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from boardrank.config import settings


def get_engine() -> Engine:
    """
    Build an engine for settings.database_url.

    SQL echo follows LOG_LEVEL=DEBUG. Connections are pinged before use
    since scripts can sit idle between provider calls.
    """
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )


# Created on first use so importing this module never needs a driver
_engine = None


def _get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Flushes are explicit: settlement flushes step by step to map errors per step
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _new_session() -> Session:
    return SessionLocal(bind=_get_engine())


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Session scope for scripts: commit on success, rollback on any exception.

    Example:
        with get_session() as session:
            outcome = TournamentSettlement(session, provider).settle(tournament_id)
    """
    session = _new_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI's Depends(). Routes commit explicitly."""
    db = _new_session()
    try:
        yield db
    finally:
        db.close()
