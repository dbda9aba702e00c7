"""
Normalised Challonge records.

Challonge v1 wraps every record in a single-key object:
    [{"participant": {...}}, ...]
    [{"match": {...}}, ...]

Some proxies and fixtures hand us the inner object directly. Everything is
normalised here into frozen dataclasses so the settlement code only ever
sees one shape.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

MATCH_STATE_COMPLETE = "complete"


def _unwrap(record: dict, key: str) -> dict:
    inner = record.get(key)
    if isinstance(inner, dict):
        return inner
    return record


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Challonge ISO-8601 timestamp into a naive UTC datetime.

    Returns None for missing or unparseable values.

    Example:
        parse_timestamp("2025-03-01T18:30:00.000-05:00")
        # datetime(2025, 3, 1, 23, 30)
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass(frozen=True)
class ProviderParticipant:
    """A Challonge participant (one bracket entry)."""
    id: int
    name: str
    display_name: Optional[str] = None
    active: bool = True

    @classmethod
    def from_api(cls, record: dict) -> "ProviderParticipant":
        data = _unwrap(record, "participant")
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            display_name=data.get("display_name"),
            active=bool(data.get("active", True)),
        )

    @property
    def label(self) -> str:
        """The name shown in the bracket (display name, falling back to name)."""
        return self.display_name or self.name


@dataclass(frozen=True)
class ProviderMatch:
    """A Challonge match. Round numbers are negative in the losers bracket."""
    id: int
    state: str
    player1_id: Optional[int] = None
    player2_id: Optional[int] = None
    winner_id: Optional[int] = None
    loser_id: Optional[int] = None
    scores_csv: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None
    started_at: Optional[str] = None
    round: Optional[int] = None

    @classmethod
    def from_api(cls, record: dict) -> "ProviderMatch":
        data = _unwrap(record, "match")
        return cls(
            id=int(data["id"]),
            state=data.get("state") or "",
            player1_id=_optional_int(data.get("player1_id")),
            player2_id=_optional_int(data.get("player2_id")),
            winner_id=_optional_int(data.get("winner_id")),
            loser_id=_optional_int(data.get("loser_id")),
            scores_csv=data.get("scores_csv"),
            completed_at=data.get("completed_at"),
            updated_at=data.get("updated_at"),
            started_at=data.get("started_at"),
            round=_optional_int(data.get("round")),
        )

    @property
    def is_rateable(self) -> bool:
        """Complete, with both sides and a winner reported."""
        return (
            self.state == MATCH_STATE_COMPLETE
            and self.player1_id is not None
            and self.player2_id is not None
            and self.winner_id is not None
        )

    @property
    def finished_at(self) -> Optional[datetime]:
        """Best available completion time: completed, then updated, then started."""
        for raw in (self.completed_at, self.updated_at, self.started_at):
            parsed = parse_timestamp(raw)
            if parsed is not None:
                return parsed
        return None


def completed_matches_in_order(matches: Iterable[ProviderMatch]) -> list[ProviderMatch]:
    """
    Filter to rateable matches and sort them chronologically.

    The order decides every rating in the tournament, so it must not depend
    on the order Challonge returned the records in. Sort key:
    (finish time ascending, matches without any timestamp last, match id).
    """
    rateable = [m for m in matches if m.is_rateable]

    def sort_key(match: ProviderMatch) -> tuple:
        finished = match.finished_at
        if finished is None:
            return (1, datetime.max, match.id)
        return (0, finished, match.id)

    return sorted(rateable, key=sort_key)
