"""
Participant reconciliation.

Maps Challonge participants to registered users via the [CODE] prefix in
their display name, and writes the resolved participant id and display name
back to the registration rows.

A participant whose code is missing or not registered for the tournament is
skipped with a warning; the matches it played are later counted as skipped
by settlement.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from boardrank.bracket.models import ProviderParticipant
from boardrank.db.models import TournamentPlayer
from boardrank.players.codes import extract_player_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappedParticipant:
    """A Challonge participant resolved to an internal user."""
    user_id: str
    display_name: str


def load_registrations(session: Session, tournament_id: str) -> dict[str, str]:
    """
    Registered players of a tournament, keyed by upper-cased public code.

    The user id is the public code, so key and value differ only in case
    for ids that were ever stored lower-cased.
    """
    rows = (
        session.query(TournamentPlayer.user_id)
        .filter(TournamentPlayer.tournament_id == tournament_id)
        .all()
    )
    return {row.user_id.upper(): row.user_id for row in rows}


def build_participant_map(
    participants: Iterable[ProviderParticipant],
    registrations: dict[str, str],
) -> dict[int, MappedParticipant]:
    """
    Resolve Challonge participants to registered users.

    The code is read from display_name, falling back to name. Participants
    without a code, or with a code nobody registered under, are left out.

    Returns:
        Dict of Challonge participant id -> MappedParticipant
    """
    mapped: dict[int, MappedParticipant] = {}

    for participant in participants:
        label = participant.label
        code = extract_player_code(label)
        if code is None:
            logger.warning(
                "Participant %s (%r) has no [CODE] prefix, skipping",
                participant.id, label,
            )
            continue

        user_id = registrations.get(code)
        if user_id is None:
            logger.warning(
                "Participant %s (%r) uses code %s which is not registered, skipping",
                participant.id, label, code,
            )
            continue

        mapped[participant.id] = MappedParticipant(user_id=user_id, display_name=label)

    return mapped


def sync_participant_metadata(
    session: Session,
    tournament_id: str,
    participant_map: dict[int, MappedParticipant],
) -> int:
    """
    Upsert the Challonge participant id and display name per registration.

    Keyed on (tournament_id, user_id). Rows are looked up first and then
    updated or inserted, which works the same on PostgreSQL and SQLite.

    Returns:
        Number of registration rows written
    """
    if not participant_map:
        return 0

    existing = {
        row.user_id: row
        for row in session.query(TournamentPlayer)
        .filter(TournamentPlayer.tournament_id == tournament_id)
        .all()
    }

    for participant_id, mapped in participant_map.items():
        row = existing.get(mapped.user_id)
        if row is None:
            row = TournamentPlayer(tournament_id=tournament_id, user_id=mapped.user_id)
            session.add(row)
            existing[mapped.user_id] = row
        row.challonge_participant_id = participant_id
        row.challonge_display_name = mapped.display_name

    session.flush()
    logger.info(
        "Synced %d participant mappings for tournament %s",
        len(participant_map), tournament_id,
    )
    return len(participant_map)
