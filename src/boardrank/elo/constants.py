"""
Rating system constants.

K factor: Controls rating volatility (how much ratings change per match)
  - The season's k_factor overrides DEFAULT_K_FACTOR
  - Entrants, stage and margin factors scale it per match and per side

Spread: Fixed at the standard 400 (a 400-point gap is ~10:1 odds).

The gain/loss curve breakpoints make rating hard to gain near the top of
the field and soften losses for players sitting near the floor.
"""

from enum import Enum


class Stage(str, Enum):
    """Bracket phase of a match."""
    RR = "RR"          # Round robin / pools, or single elimination
    DE_UB = "DE_UB"    # Double elimination upper bracket
    DE_LB = "DE_LB"    # Double elimination lower bracket
    GF = "GF"          # Grand final


# Every player starts here and can never drop below it
RATING_FLOOR = 1000

# Used when the season has no k_factor override
DEFAULT_K_FACTOR = 28

# Standard logistic spread
SPREAD = 400

# Largest rating change a single match can produce
MAX_DELTA = 1000

# Entrants factor: sqrt(entrants) / ENTRANTS_DIVISOR, clamped
ENTRANTS_DIVISOR = 4
ENTRANTS_FACTOR_MIN = 1.0
ENTRANTS_FACTOR_MAX = 1.5

# Stage multipliers before tapering
STAGE_MULTIPLIERS = {
    Stage.RR: 1.0,
    Stage.DE_UB: 1.05,
    Stage.DE_LB: 1.10,
    Stage.GF: 1.15,
}

# The stage bonus tapers linearly from full at the floor to
# (1 - STAGE_TAPER_STRENGTH) at STAGE_TAPER_CEILING
STAGE_TAPER_CEILING = 2000
STAGE_TAPER_STRENGTH = 0.7

# Margin factor: 1 + MARGIN_STEP per point of score gap above 1, clamped
MARGIN_STEP = 0.25
MARGIN_FACTOR_MAX = 2.0

# Gain/loss damping curve
LOW_BAND_CEILING = 1200       # below this: eased gains and losses
LOW_BAND_WIDTH = 200          # floor -> LOW_BAND_CEILING distance
TOP_RATING_MINIMUM = 1500     # effective top never drops below this

LOW_GAIN_START = 0.8          # gain factor at the floor
LOW_LOSS_START = 0.3          # loss factor at the floor
HIGH_GAIN_END = 0.3           # gain factor reached at the effective top
HIGH_LOSS_END = 1.2           # loss factor reached at the effective top
ABOVE_TOP_GAIN = 0.2
ABOVE_TOP_LOSS = 1.2
