"""
Public player codes.

Every player gets a 5-character code drawn from an alphabet without the
easily confused characters (no I, O, 0 or 1). Players register in Challonge
as "[CODE] username"; the bracketed prefix is the only link between a
Challonge participant and a user, and it survives any edit to the rest of
the display name.
"""

import re
import secrets
from typing import Optional

PUBLIC_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PUBLIC_ID_LENGTH = 5

_CODE_PREFIX_RE = re.compile(r"^\[([A-Z0-9]{5})\]", re.IGNORECASE)


def generate_public_id(length: int = PUBLIC_ID_LENGTH) -> str:
    """Random public code, e.g. 'K7QXM'."""
    return "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(length))


def extract_player_code(text: Optional[str]) -> Optional[str]:
    """
    Pull the leading [CODE] token out of a Challonge display name.

    Matching is case-insensitive; the code comes back upper-cased.

    Examples:
        extract_player_code("[k7qxm] alice")   # "K7QXM"
        extract_player_code("alice [K7QXM]")   # None
        extract_player_code(None)              # None
    """
    if not text:
        return None
    match = _CODE_PREFIX_RE.match(text.strip())
    return match.group(1).upper() if match else None


def format_display_label(code: str, username: str) -> str:
    """The name a player should use in Challonge: "[CODE] username"."""
    return f"[{code}] {username}"
