"""
Bracket provider integration (Challonge).

Usage:
    from boardrank.bracket import ChallongeClient

    client = ChallongeClient.from_settings()
    matches = client.fetch_matches("my-bracket")
"""

from boardrank.bracket.client import BracketProvider, ChallongeClient, extract_slug
from boardrank.bracket.models import (
    ProviderMatch,
    ProviderParticipant,
    completed_matches_in_order,
    parse_timestamp,
)

__all__ = [
    "BracketProvider",
    "ChallongeClient",
    "extract_slug",
    "ProviderMatch",
    "ProviderParticipant",
    "completed_matches_in_order",
    "parse_timestamp",
]
