"""
Rating system module.

Implements bracket-aware ELO calculations with:
- Entrants-count K scaling
- Stage multipliers (round robin, upper/lower bracket, grand final)
- Margin-of-victory K scaling
- Gain/loss damping relative to the season's top rating
- A hard rating floor of 1000
"""

from boardrank.elo.calculator import EloContext, EloResult, apply_elo, expected_score
from boardrank.elo.classifier import (
    MatchContext,
    classify_match,
    compute_score_gap,
    derive_stage,
    is_double_elimination,
)
from boardrank.elo.constants import DEFAULT_K_FACTOR, RATING_FLOOR, Stage

__all__ = [
    "EloContext",
    "EloResult",
    "apply_elo",
    "expected_score",
    "MatchContext",
    "classify_match",
    "compute_score_gap",
    "derive_stage",
    "is_double_elimination",
    "DEFAULT_K_FACTOR",
    "RATING_FLOOR",
    "Stage",
]
