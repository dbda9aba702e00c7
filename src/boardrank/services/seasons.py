"""
Season and tournament lifecycle.

Covers everything that happens around a settlement:

- Looking up the active season (newest active one wins if data is off)
- Finalizing it (irreversible, stamps end_at)
- Creating tournaments from a Challonge URL inside the active season
- Registering players before the bracket is seeded
- Exporting the "[CODE] username" lines to paste into Challonge

Usage:
    from boardrank.services.seasons import create_tournament, register_player

    with get_session() as session:
        tournament = create_tournament(session, "Friday Cup", "https://challonge.com/fri_cup")
        register_player(session, tournament.id, user.id)
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from boardrank.bracket.client import extract_slug
from boardrank.db.models import (
    SEASON_ACTIVE,
    SEASON_FINALIZED,
    TOURNAMENT_REGISTERED,
    PlayerSeasonRating,
    Season,
    Tournament,
    TournamentPlayer,
    User,
    utcnow,
)
from boardrank.elo.constants import RATING_FLOOR
from boardrank.errors import NotFoundError, TournamentStateError, ValidationError
from boardrank.players.codes import format_display_label

logger = logging.getLogger(__name__)

MIN_TOURNAMENT_NAME_LENGTH = 3


def get_active_season(session: Session) -> Optional[Season]:
    return (
        session.query(Season)
        .filter(Season.status == SEASON_ACTIVE)
        .order_by(Season.start_at.desc())
        .first()
    )


def start_season(session: Session, k_factor: Optional[int] = None) -> Season:
    """
    Open a new active season.

    Raises:
        TournamentStateError: If a season is already active
    """
    if get_active_season(session) is not None:
        raise TournamentStateError("A season is already active. Finalize it first.")
    season = Season(id=str(uuid.uuid4()), status=SEASON_ACTIVE, start_at=utcnow(), k_factor=k_factor)
    session.add(season)
    session.flush()
    logger.info("Started season %s (k_factor=%s)", season.id, k_factor)
    return season


def finalize_active_season(session: Session) -> Season:
    """
    Close the active season. There is no way back to active.

    Raises:
        TournamentStateError: If no season is active
    """
    season = get_active_season(session)
    if season is None:
        raise TournamentStateError("No active season to finalize.")
    season.status = SEASON_FINALIZED
    season.end_at = utcnow()
    session.flush()
    logger.info("Finalized season %s", season.id)
    return season


def create_tournament(session: Session, name: Optional[str], challonge_url: Optional[str]) -> Tournament:
    """
    Attach a Challonge bracket to the active season.

    Raises:
        ValidationError: Name shorter than 3 characters, or a missing or
            unparseable Challonge URL (422)
        TournamentStateError: If no season is active
    """
    name = (name or "").strip()
    challonge_url = (challonge_url or "").strip()

    if len(name) < MIN_TOURNAMENT_NAME_LENGTH:
        raise ValidationError("Name must be at least 3 characters.", status_code=422)
    if not challonge_url:
        raise ValidationError("Challonge URL is required.", status_code=422)

    slug = extract_slug(challonge_url)
    if not slug:
        raise ValidationError("Invalid Challonge URL.", status_code=422)

    season = get_active_season(session)
    if season is None:
        raise TournamentStateError("No active season. Create one before adding tournaments.")

    tournament = Tournament(
        id=str(uuid.uuid4()),
        season_id=season.id,
        name=name,
        challonge_url=challonge_url,
        challonge_slug=slug,
        state=TOURNAMENT_REGISTERED,
    )
    session.add(tournament)
    session.flush()
    logger.info("Created tournament %s (%s) in season %s", tournament.id, slug, season.id)
    return tournament


def register_player(session: Session, tournament_id: str, user_id: str) -> TournamentPlayer:
    """
    Register a player for a tournament that has not been rated yet.

    Registering twice just refreshes the display label.

    Raises:
        ValidationError: Profile missing or username not set (400)
        NotFoundError: Tournament does not exist
        TournamentStateError: Tournament is closed for registration (422)
    """
    user = session.get(User, user_id)
    if user is None:
        raise ValidationError("Complete your profile before registering.")
    if not user.username:
        raise ValidationError("Set a username before joining tournaments.")

    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError("Tournament not found.")
    if tournament.state != TOURNAMENT_REGISTERED:
        raise TournamentStateError("Tournament is not open for registration.", status_code=422)

    label = format_display_label(user.id, user.username)
    registration = (
        session.query(TournamentPlayer)
        .filter(
            TournamentPlayer.tournament_id == tournament_id,
            TournamentPlayer.user_id == user.id,
        )
        .first()
    )
    if registration is None:
        registration = TournamentPlayer(tournament_id=tournament_id, user_id=user.id)
        session.add(registration)
    registration.challonge_display_name = label
    session.flush()
    return registration


def participant_export_lines(session: Session, tournament_id: str) -> list[str]:
    """
    One "[CODE] username" line per registered player, sorted by username.

    This is the list an admin pastes into Challonge's bulk-add box.
    """
    rows = (
        session.query(TournamentPlayer, User.username)
        .join(User, TournamentPlayer.user_id == User.id)
        .filter(TournamentPlayer.tournament_id == tournament_id)
        .order_by(User.username.asc())
        .all()
    )
    lines = []
    for registration, username in rows:
        if registration.challonge_display_name:
            lines.append(registration.challonge_display_name)
        else:
            lines.append(format_display_label(registration.user_id, username or "Unknown"))
    return lines


def ensure_season_rating(session: Session, user_id: str, season_id: str) -> PlayerSeasonRating:
    """Give a player their starting rating row in a season if they have none yet."""
    row = (
        session.query(PlayerSeasonRating)
        .filter(PlayerSeasonRating.user_id == user_id, PlayerSeasonRating.season_id == season_id)
        .first()
    )
    if row is None:
        row = PlayerSeasonRating(
            user_id=user_id,
            season_id=season_id,
            rating_current=RATING_FLOOR,
            matches_played=0,
        )
        session.add(row)
        session.flush()
    return row
