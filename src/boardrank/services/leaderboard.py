"""
Read side: season standings and per-player rating history.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, select
from sqlalchemy.orm import Session, aliased

from boardrank.db.models import Match, PlayerSeasonRating, RatingEvent, Tournament, User
from boardrank.elo.constants import RATING_FLOOR

DEFAULT_LEADERBOARD_LIMIT = 50
DEFAULT_HISTORY_LIMIT = 100


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    username: str
    rating_current: int
    matches_played: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HistoryEntry:
    id: int
    match_id: str
    tournament_name: str
    opponent_username: Optional[str]
    result: str
    rating_before: int
    rating_after: int
    delta: int
    completed_at: datetime

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["completed_at"] = self.completed_at.isoformat()
        return payload


def get_leaderboard(
    session: Session,
    season_id: str,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
    current_user_id: Optional[str] = None,
) -> list[LeaderboardEntry]:
    """
    Season standings.

    Ordered by rating (desc), then matches played (desc), then who reached
    their current rating first. If current_user_id is ranked but falls
    outside the limit, their entry is appended so they can always see
    where they stand.
    """
    rows = session.execute(
        select(
            PlayerSeasonRating.user_id,
            PlayerSeasonRating.rating_current,
            PlayerSeasonRating.matches_played,
            User.username,
        )
        .join(User, PlayerSeasonRating.user_id == User.id)
        .where(PlayerSeasonRating.season_id == season_id)
        .order_by(
            PlayerSeasonRating.rating_current.desc(),
            PlayerSeasonRating.matches_played.desc(),
            PlayerSeasonRating.first_reached_current_rating_at.asc().nulls_last(),
            PlayerSeasonRating.user_id.asc(),
        )
    ).all()

    entries = [
        LeaderboardEntry(
            rank=index + 1,
            user_id=row.user_id,
            username=row.username or "Unknown Player",
            rating_current=row.rating_current,
            matches_played=row.matches_played or 0,
        )
        for index, row in enumerate(rows)
    ]

    visible = entries[:limit]
    if current_user_id is None or any(e.user_id == current_user_id for e in visible):
        return visible

    for entry in entries[limit:]:
        if entry.user_id == current_user_id:
            return visible + [entry]
    return visible


def get_player_season_stats(session: Session, season_id: str, user_id: str) -> dict:
    """Current rating and match count, defaulting to a fresh player."""
    row = (
        session.query(PlayerSeasonRating)
        .filter(PlayerSeasonRating.season_id == season_id, PlayerSeasonRating.user_id == user_id)
        .first()
    )
    if row is None:
        return {"rating": RATING_FLOOR, "matches_played": 0}
    return {"rating": row.rating_current, "matches_played": row.matches_played}


def get_player_history(
    session: Session,
    season_id: str,
    user_id: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[HistoryEntry]:
    """A player's rating events in a season, newest first, with opponent and result."""
    opponent = aliased(User)
    rows = session.execute(
        select(RatingEvent, Match, Tournament.name, opponent.username)
        .join(Match, RatingEvent.match_id == Match.id)
        .join(Tournament, Match.tournament_id == Tournament.id)
        .outerjoin(opponent, opponent.id == _opponent_of(user_id))
        .where(RatingEvent.season_id == season_id, RatingEvent.user_id == user_id)
        .order_by(RatingEvent.created_at.desc(), RatingEvent.id.desc())
        .limit(limit)
    ).all()

    return [
        HistoryEntry(
            id=event.id,
            match_id=event.match_id,
            tournament_name=tournament_name or "",
            opponent_username=opponent_username,
            result="win" if match.winner_user_id == user_id else "loss",
            rating_before=event.rating_before,
            rating_after=event.rating_after,
            delta=event.delta,
            completed_at=match.completed_at or event.created_at,
        )
        for event, match, tournament_name, opponent_username in rows
    ]


def _opponent_of(user_id: str):
    return case((Match.p1_user_id == user_id, Match.p2_user_id), else_=Match.p1_user_id)
