"""Unit tests for mapping Challonge participants to registered players."""

from boardrank.bracket.models import ProviderParticipant
from boardrank.db.models import TournamentPlayer
from boardrank.services.participants import (
    MappedParticipant,
    build_participant_map,
    load_registrations,
    sync_participant_metadata,
)


def _participant(pid, name, display_name=None):
    return ProviderParticipant(id=pid, name=name, display_name=display_name)


def test_build_participant_map():
    registrations = {"AAAAA": "AAAAA", "BBBBB": "BBBBB"}
    participants = [
        _participant(1, "[AAAAA] alice"),
        _participant(2, "old name", display_name="[bbbbb] bob"),
        _participant(3, "[ZZZZZ] stranger"),
        _participant(4, "no code"),
    ]

    mapped = build_participant_map(participants, registrations)

    assert mapped == {
        1: MappedParticipant(user_id="AAAAA", display_name="[AAAAA] alice"),
        2: MappedParticipant(user_id="BBBBB", display_name="[bbbbb] bob"),
    }


def test_load_registrations_keys_by_upper_code(db_session, make_tournament):
    tournament = make_tournament(["AAAAA", "bbbbb"])

    assert load_registrations(db_session, tournament.id) == {"AAAAA": "AAAAA", "BBBBB": "bbbbb"}


def test_sync_updates_and_inserts(db_session, make_tournament):
    tournament = make_tournament(["AAAAA"])
    participant_map = {
        11: MappedParticipant(user_id="AAAAA", display_name="[AAAAA] alice"),
        12: MappedParticipant(user_id="BBBBB", display_name="[BBBBB] bob"),
    }

    written = sync_participant_metadata(db_session, tournament.id, participant_map)
    db_session.commit()

    rows = {
        row.user_id: row
        for row in db_session.query(TournamentPlayer).filter_by(tournament_id=tournament.id)
    }
    assert written == 2
    assert (rows["AAAAA"].challonge_participant_id, rows["AAAAA"].challonge_display_name) == (11, "[AAAAA] alice")
    assert rows["BBBBB"].challonge_participant_id == 12


def test_sync_with_empty_map_writes_nothing(db_session, make_tournament):
    tournament = make_tournament(["AAAAA"])
    assert sync_participant_metadata(db_session, tournament.id, {}) == 0
