"""
SQLAlchemy ORM models for Boardrank.

This module defines all database tables and their relationships.
The schema is built around one rating row per (player, season) which is
the single source of truth for a player's current rating. Matches and
rating events are derived records owned by a tournament settlement and
can be deleted wholesale when that settlement is rolled back.

Key design decisions:
- Player ids are the 5-character public codes players paste into their
  Challonge display names, so the code doubles as the primary key
- Matches and rating events are tagged by tournament/match so a rerun
  can delete exactly what a previous settlement produced
- player_season_ratings carries a version column; a concurrent writer
  fails loudly instead of silently overwriting a rating

Tables:
- users: Player profiles (public code, username)
- user_roles: Role assignments from the identity provider
- seasons: Rating seasons (one active at a time)
- player_season_ratings: Current rating per player per season
- tournaments: Challonge brackets attached to a season
- tournament_players: Registrations and Challonge participant mapping
- matches: Completed, rated matches
- rating_events: Per-player before/after/delta for each rated match
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from boardrank.elo.constants import RATING_FLOOR


# =============================================================================
# Constants
# =============================================================================

SEASON_ACTIVE = "active"
SEASON_FINALIZED = "finalized"

TOURNAMENT_REGISTERED = "registered"
TOURNAMENT_RATED = "rated"

ROLE_ADMIN = "admin"
ROLE_PLAYER = "player"


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Identity Models
# =============================================================================

class User(Base):
    """
    Player profile.

    The id is the public 5-character code (see players/codes.py). Players
    put it in their Challonge display name as "[CODE] username", which is
    how settlement maps Challonge participants back to users.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(5), primary_key=True)
    auth_user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(20), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', username='{self.username}')>"


class UserRole(Base):
    """Role granted to an identity-provider user ('admin' or 'player')."""
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    auth_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint("auth_user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint("role IN ('admin', 'player')", name="ck_user_roles_role"),
    )

    def __repr__(self) -> str:
        return f"<UserRole(auth_user_id='{self.auth_user_id}', role='{self.role}')>"


# =============================================================================
# Season Models
# =============================================================================

class Season(Base):
    """
    A rating season.

    Exactly one season is active at a time. Finalizing sets end_at and is
    irreversible. k_factor overrides the configured base K for every
    settlement in this season.
    """
    __tablename__ = "seasons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SEASON_ACTIVE)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    k_factor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tournaments: Mapped[list["Tournament"]] = relationship(back_populates="season")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'finalized')", name="ck_seasons_status"),
        Index("idx_seasons_status_start", "status", "start_at"),
    )

    def __repr__(self) -> str:
        return f"<Season(id='{self.id}', status='{self.status}')>"


class PlayerSeasonRating(Base):
    """
    Current rating of one player in one season.

    Created lazily (rating 1000, zero matches) the first time a player is
    touched by a settlement. Only settlement and rollback mutate it.

    The version column is SQLAlchemy's optimistic concurrency counter: every
    ORM UPDATE is issued as "... WHERE version = <loaded version>", so two
    settlements racing on the same row cannot both succeed.
    """
    __tablename__ = "player_season_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False)
    rating_current: Mapped[int] = mapped_column(Integer, nullable=False, default=RATING_FLOOR)
    matches_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_reached_current_rating_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    user: Mapped["User"] = relationship()

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("user_id", "season_id", name="uq_player_season_ratings_user_season"),
        CheckConstraint("rating_current >= 1000", name="ck_rating_floor"),
        CheckConstraint("matches_played >= 0", name="ck_matches_played_non_negative"),
        Index("idx_player_season_ratings_leaderboard", "season_id", "rating_current"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerSeasonRating(user_id='{self.user_id}', season_id='{self.season_id}', "
            f"rating={self.rating_current})>"
        )


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    A Challonge bracket attached to a season.

    state moves registered -> rated once, when the tournament is settled.
    A rerun keeps it at rated after rolling back and replaying.
    """
    __tablename__ = "tournaments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    challonge_url: Mapped[str] = mapped_column(Text, nullable=False)
    challonge_slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=TOURNAMENT_REGISTERED)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    season: Mapped["Season"] = relationship(back_populates="tournaments")
    players: Mapped[list["TournamentPlayer"]] = relationship(
        back_populates="tournament", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("state IN ('registered', 'rated')", name="ck_tournaments_state"),
        Index("idx_tournaments_season_created", "season_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Tournament(id='{self.id}', name='{self.name}', state='{self.state}')>"


class TournamentPlayer(Base):
    """
    Registration of a player for a tournament.

    Created when the player registers (before seeding). The Challonge
    participant id and display name are filled in by settlement once the
    participant has been matched by its [CODE] prefix.
    """
    __tablename__ = "tournament_players"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[str] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    challonge_participant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    challonge_display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tournament: Mapped["Tournament"] = relationship(back_populates="players")
    user: Mapped["User"] = relationship()

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_tournament_players_tournament_user"),
    )

    def __repr__(self) -> str:
        return f"<TournamentPlayer(tournament_id='{self.tournament_id}', user_id='{self.user_id}')>"


# =============================================================================
# Rating Models
# =============================================================================

class Match(Base):
    """
    A completed Challonge match that was rated.

    One row per completed external match whose two sides both mapped to
    known users. winner_points/loser_points are the post-match ratings and
    always equal the rating_after of the two matching rating events.
    Rows are immutable; rollback deletes them.
    """
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tournament_id: Mapped[str] = mapped_column(ForeignKey("tournaments.id"), nullable=False)
    challonge_match_id: Mapped[int] = mapped_column(Integer, nullable=False)
    p1_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    p2_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    winner_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    scores_csv: Mapped[str] = mapped_column(Text, nullable=False, default="")
    winner_points: Mapped[int] = mapped_column(Integer, nullable=False)
    loser_points: Mapped[int] = mapped_column(Integer, nullable=False)
    score_diff: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    tournament: Mapped["Tournament"] = relationship()
    rating_events: Mapped[list["RatingEvent"]] = relationship(back_populates="match")

    __table_args__ = (
        Index("idx_matches_tournament", "tournament_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Match(id='{self.id}', challonge_match_id={self.challonge_match_id}, "
            f"winner='{self.winner_user_id}')>"
        )


class RatingEvent(Base):
    """
    Rating change of one player in one match.

    Append-only, exactly two per match. delta is always
    rating_after - rating_before, so 1000 plus the sum of a player's season
    deltas reproduces their current rating.
    """
    __tablename__ = "rating_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False)
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    rating_before: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_after: Mapped[int] = mapped_column(Integer, nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    k_factor: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    match: Mapped["Match"] = relationship(back_populates="rating_events")

    __table_args__ = (
        Index("idx_rating_events_match", "match_id"),
        Index("idx_rating_events_season_user", "season_id", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RatingEvent(user_id='{self.user_id}', {self.rating_before} -> "
            f"{self.rating_after}, delta={self.delta})>"
        )
