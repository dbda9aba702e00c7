"""
Player identity module.

Players are identified by a 5-character public code. The code is the
primary key of the profile and the token players embed in their Challonge
display names ("[CODE] username"), which lets settlement map bracket
participants back to profiles without any name matching.
"""

from boardrank.players.codes import (
    PUBLIC_ID_ALPHABET,
    extract_player_code,
    format_display_label,
    generate_public_id,
)
from boardrank.players.identity import ensure_profile, get_roles, is_admin, set_username

__all__ = [
    "PUBLIC_ID_ALPHABET",
    "extract_player_code",
    "format_display_label",
    "generate_public_id",
    "ensure_profile",
    "get_roles",
    "is_admin",
    "set_username",
]
