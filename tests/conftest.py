"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from boardrank.bracket.models import ProviderMatch, ProviderParticipant
from boardrank.db.models import (
    SEASON_ACTIVE,
    TOURNAMENT_REGISTERED,
    Base,
    Season,
    Tournament,
    TournamentPlayer,
    User,
)


@pytest.fixture
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory, one database per test. StaticPool keeps the
    single connection alive so FastAPI's worker threads see the same data.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """A session on a fresh database. Settlement commits, so no outer rollback."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Data helpers
# =============================================================================

@pytest.fixture
def season(db_session):
    season = Season(
        id="season-1",
        status=SEASON_ACTIVE,
        start_at=datetime(2026, 1, 1),
    )
    db_session.add(season)
    db_session.commit()
    return season


@pytest.fixture
def make_user(db_session):
    """Factory: make_user("AAAAA", "alice") -> User."""
    def _make(code, username=None, auth_user_id=None):
        user = User(id=code, auth_user_id=auth_user_id or f"auth-{code.lower()}", username=username)
        db_session.add(user)
        db_session.flush()
        return user
    return _make


@pytest.fixture
def make_tournament(db_session, season):
    """Factory: make_tournament(["AAAAA", "BBBBB"]) -> Tournament with those players registered."""
    counter = {"n": 0}

    def _make(codes=(), slug="cup", state=TOURNAMENT_REGISTERED, url=None, season_id=None):
        counter["n"] += 1
        tournament = Tournament(
            id=f"tournament-{counter['n']}",
            season_id=season_id or season.id,
            name=f"Cup {counter['n']}",
            challonge_url=url or f"https://challonge.com/{slug}",
            challonge_slug=slug,
            state=state,
        )
        db_session.add(tournament)
        db_session.flush()
        for code in codes:
            db_session.add(TournamentPlayer(tournament_id=tournament.id, user_id=code))
        db_session.commit()
        return tournament
    return _make


# =============================================================================
# Bracket provider double
# =============================================================================

def participant_record(participant_id, name, display_name=None):
    """Participant as the Challonge v1 API returns it."""
    return {
        "participant": {
            "id": participant_id,
            "name": name,
            "display_name": display_name,
            "active": True,
        }
    }


def match_record(
    match_id,
    player1_id,
    player2_id,
    winner_id,
    scores_csv="2-1",
    completed_at="2026-03-01T18:00:00Z",
    round_number=1,
    state="complete",
):
    """Match as the Challonge v1 API returns it."""
    loser_id = None
    if winner_id is not None:
        loser_id = player2_id if winner_id == player1_id else player1_id
    return {
        "match": {
            "id": match_id,
            "state": state,
            "player1_id": player1_id,
            "player2_id": player2_id,
            "winner_id": winner_id,
            "loser_id": loser_id,
            "scores_csv": scores_csv,
            "completed_at": completed_at,
            "updated_at": completed_at,
            "started_at": None,
            "round": round_number,
        }
    }


class FakeBracketProvider:
    """In-memory BracketProvider fed with wire-format records."""

    def __init__(self, participants=(), matches=(), error=None):
        self.participants = list(participants)
        self.matches = list(matches)
        self.error = error
        self.calls = []

    def fetch_participants(self, slug):
        self.calls.append(("participants", slug))
        if self.error is not None:
            raise self.error
        return [ProviderParticipant.from_api(record) for record in self.participants]

    def fetch_matches(self, slug):
        self.calls.append(("matches", slug))
        if self.error is not None:
            raise self.error
        return [ProviderMatch.from_api(record) for record in self.matches]


@pytest.fixture
def bracket():
    """Namespace with the provider double and record builders."""
    class Bracket:
        Provider = FakeBracketProvider
        participant = staticmethod(participant_record)
        match = staticmethod(match_record)
    return Bracket
