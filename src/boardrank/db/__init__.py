"""
Database module for Boardrank.

Provides SQLAlchemy ORM models and session management.

Usage:
    from boardrank.db import get_session, Tournament

    with get_session() as session:
        tournament = session.get(Tournament, tournament_id)
"""

from boardrank.db.models import (
    Base,
    User,
    UserRole,
    Season,
    PlayerSeasonRating,
    Tournament,
    TournamentPlayer,
    Match,
    RatingEvent,
)
from boardrank.db.session import get_session, get_engine, get_db, SessionLocal

__all__ = [
    # Base
    "Base",
    # Models
    "User",
    "UserRole",
    "Season",
    "PlayerSeasonRating",
    "Tournament",
    "TournamentPlayer",
    "Match",
    "RatingEvent",
    # Session
    "get_session",
    "get_engine",
    "get_db",
    "SessionLocal",
]
