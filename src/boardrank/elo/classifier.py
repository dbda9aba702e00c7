"""
Match classification for rating context.

Derives the two per-match inputs the rating function needs from a raw
Challonge match:

- stage: Round robin, double-elimination upper/lower bracket or grand final
- score_gap: Margin of victory summed over all games

Challonge encodes the bracket side in the round number. In a double
elimination bracket losers-bracket rounds are negative and the grand final
is round 0. A tournament with no negative rounds anywhere is treated as a
round robin / pool event and every match is RR.

Score strings look like "3-1,2-3,3-0" (one "a-b" pair per game, player 1
first). Anything malformed is ignored and can only pull the gap back to the
neutral value of 1.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from boardrank.bracket.models import ProviderMatch
from boardrank.elo.constants import Stage

# One game: "<p1>-<p2>", each side an optionally negative integer
_GAME_SCORE_RE = re.compile(r"^\s*(-?\d+)\s*-\s*(-?\d+)\s*$")


@dataclass(frozen=True)
class MatchContext:
    """Stage and margin derived for one match."""
    stage: Stage
    score_gap: int


def is_double_elimination(matches: Iterable[ProviderMatch]) -> bool:
    """True when any match sits in a losers-bracket (negative) round."""
    return any(m.round is not None and m.round < 0 for m in matches)


def derive_stage(round_number: Optional[int], double_elimination: bool) -> Stage:
    """
    Map a Challonge round number to a bracket stage.

    Examples:
        derive_stage(3, False)   # Stage.RR
        derive_stage(0, True)    # Stage.GF
        derive_stage(-2, True)   # Stage.DE_LB
        derive_stage(2, True)    # Stage.DE_UB
    """
    if not double_elimination:
        return Stage.RR
    if round_number is None:
        return Stage.RR
    if round_number == 0:
        return Stage.GF
    if round_number < 0:
        return Stage.DE_LB
    return Stage.DE_UB


def compute_score_gap(scores_csv: Optional[str]) -> int:
    """
    Absolute difference of summed game scores, never below 1.

    Examples:
        compute_score_gap("3-0,3-1")   # 5
        compute_score_gap("2-3")       # 1
        compute_score_gap("")          # 1
        compute_score_gap("w/o")       # 1
    """
    if not scores_csv:
        return 1

    total_p1 = 0
    total_p2 = 0
    for segment in scores_csv.split(","):
        match = _GAME_SCORE_RE.match(segment)
        if not match:
            continue
        total_p1 += int(match.group(1))
        total_p2 += int(match.group(2))

    return max(abs(total_p1 - total_p2), 1)


def classify_match(match: ProviderMatch, double_elimination: bool) -> MatchContext:
    """Derive (stage, score_gap) for one completed match."""
    return MatchContext(
        stage=derive_stage(match.round, double_elimination),
        score_gap=compute_score_gap(match.scores_csv),
    )
