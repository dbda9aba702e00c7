"""
Rating calculator for bracket matches.

Implements the standard ELO expectation with a per-side effective K and a
sign-dependent damping curve:

  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
  Effective K:    K_side = base_K * entrants * stage(side) * margin
  Raw delta:      D_side = K_side * (actual_side - E_side)
  Damped delta:   D_side * (gain if D_side > 0 else loss)(R_side, top)

Because K, the stage taper and the damping are evaluated per side, the two
deltas of one match are generally NOT mirror images. The system is not
zero-sum on purpose.

Ratings are integers and never drop below the 1000 floor.
"""

import math
from dataclasses import dataclass

from boardrank.elo.constants import (
    ABOVE_TOP_GAIN,
    ABOVE_TOP_LOSS,
    DEFAULT_K_FACTOR,
    ENTRANTS_DIVISOR,
    ENTRANTS_FACTOR_MAX,
    ENTRANTS_FACTOR_MIN,
    HIGH_GAIN_END,
    HIGH_LOSS_END,
    LOW_BAND_CEILING,
    LOW_BAND_WIDTH,
    LOW_GAIN_START,
    LOW_LOSS_START,
    MARGIN_FACTOR_MAX,
    MARGIN_STEP,
    MAX_DELTA,
    RATING_FLOOR,
    SPREAD,
    STAGE_MULTIPLIERS,
    STAGE_TAPER_CEILING,
    STAGE_TAPER_STRENGTH,
    TOP_RATING_MINIMUM,
    Stage,
)


@dataclass(frozen=True)
class EloContext:
    """
    Per-match context that scales the base K.

    Attributes:
        entrants_count: Size of the field (<= 0 is treated as neutral)
        stage: Bracket phase of the match
        score_gap: Margin of victory (>= 1 means no margin bonus)
        top_rating: Highest rating currently held in the season
        base_k: Season K factor
    """
    entrants_count: int
    stage: Stage = Stage.RR
    score_gap: float = 1
    top_rating: int = RATING_FLOOR
    base_k: float = DEFAULT_K_FACTOR


@dataclass(frozen=True)
class EloResult:
    """
    Result of a rating calculation.

    delta_a/delta_b are the rounded, clamped deltas produced by the formula.
    new_rating_a/new_rating_b have the floor applied, so when a player at
    the floor loses, new_rating - old_rating can be smaller than |delta|.
    """
    rating_a: int
    rating_b: int
    delta_a: int
    delta_b: int
    new_rating_a: int
    new_rating_b: int
    expected_a: float
    expected_b: float
    k_a: float
    k_b: float

    @property
    def applied_delta_a(self) -> int:
        """Change actually applied to player A after the floor."""
        return self.new_rating_a - self.rating_a

    @property
    def applied_delta_b(self) -> int:
        """Change actually applied to player B after the floor."""
        return self.new_rating_b - self.rating_b

    @property
    def is_zero_sum(self) -> bool:
        return self.delta_a == -self.delta_b

    def __repr__(self) -> str:
        return (
            f"<EloResult(A: {self.rating_a} -> {self.new_rating_a} ({self.delta_a:+d}), "
            f"B: {self.rating_b} -> {self.new_rating_b} ({self.delta_b:+d}))>"
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    # Halves round towards +infinity (-4.5 -> -4, 4.5 -> 5)
    return math.floor(value + 0.5)


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that A beats B under the standard 400-point logistic."""
    try:
        return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / SPREAD))
    except OverflowError:
        return 0.0 if rating_b > rating_a else 1.0


def entrants_factor(entrants_count: int) -> float:
    """Larger fields move ratings more, capped at 1.5x."""
    if entrants_count <= 0:
        return 1.0
    return _clamp(math.sqrt(entrants_count) / ENTRANTS_DIVISOR, ENTRANTS_FACTOR_MIN, ENTRANTS_FACTOR_MAX)


def stage_factor(stage: Stage, rating: float) -> float:
    """
    Stage multiplier for one side, tapered by that side's own rating.

    The bonus above 1.0 shrinks linearly from full strength at the floor to
    30% of its value at 2000 and above, so late-bracket stakes matter less
    for players who are already rated highly.

    Examples:
        stage_factor(Stage.GF, 1000)   # 1.15
        stage_factor(Stage.GF, 2000)   # 1.045
        stage_factor(Stage.RR, 2000)   # 1.0, RR has no bonus to taper
    """
    base = STAGE_MULTIPLIERS[Stage(stage)]
    progress = _clamp((rating - RATING_FLOOR) / (STAGE_TAPER_CEILING - RATING_FLOOR), 0.0, 1.0)
    taper = 1.0 - STAGE_TAPER_STRENGTH * progress
    return 1.0 + (base - 1.0) * taper


def margin_factor(score_gap: float) -> float:
    """Lopsided scores amplify the swing, capped at 2x."""
    return _clamp(1.0 + MARGIN_STEP * max(0.0, score_gap - 1.0), 1.0, MARGIN_FACTOR_MAX)


def gain_loss_factors(rating: float, top_rating: float) -> tuple[float, float]:
    """
    Damping factors (gain, loss) for a player's own rating.

    Three-segment piecewise-linear curve around the current top rating
    (floored at 1500):

        rating < 1200          gain 0.8 -> 1.0, loss 0.3 -> 1.0
        1200 <= rating < mid   gain 1.0,        loss 1.0
        mid <= rating <= top   gain 1.0 -> 0.3, loss 1.0 -> 1.2
        rating > top           gain 0.2,        loss 1.2

    where mid is halfway between 1200 and the effective top.
    """
    top = max(top_rating, TOP_RATING_MINIMUM)
    mid = (LOW_BAND_CEILING + top) / 2

    if rating < LOW_BAND_CEILING:
        t = _clamp((rating - RATING_FLOOR) / LOW_BAND_WIDTH, 0.0, 1.0)
        gain = LOW_GAIN_START + (1.0 - LOW_GAIN_START) * t
        loss = LOW_LOSS_START + (1.0 - LOW_LOSS_START) * t
        return gain, loss

    if rating < mid:
        return 1.0, 1.0

    if rating <= top:
        t = (rating - mid) / (top - mid)
        gain = 1.0 - (1.0 - HIGH_GAIN_END) * t
        loss = 1.0 + (HIGH_LOSS_END - 1.0) * t
        return gain, loss

    return ABOVE_TOP_GAIN, ABOVE_TOP_LOSS


def _damped_delta(raw_delta: float, rating: float, top_rating: float) -> int:
    gain, loss = gain_loss_factors(rating, top_rating)
    if raw_delta > 0:
        adjusted = raw_delta * gain
    elif raw_delta < 0:
        adjusted = raw_delta * loss
    else:
        adjusted = 0.0
    return int(_clamp(_round_half_up(adjusted), -MAX_DELTA, MAX_DELTA))


def apply_elo(
    rating_a: int,
    rating_b: int,
    score_a: int,
    context: EloContext,
) -> EloResult:
    """
    Calculate rating changes for a single completed match.

    Args:
        rating_a: Player A's rating before the match (already >= 1000)
        rating_b: Player B's rating before the match (already >= 1000)
        score_a: 1 if player A won, 0 if player B won
        context: Entrants, stage, margin, top rating and base K

    Returns:
        EloResult with deltas and new ratings for both players

    Raises:
        ValueError: If score_a is not 0/1 or any numeric input is non-finite

    Example:
        # Two fresh players in an 8-player round robin, A wins 2-1
        result = apply_elo(1000, 1000, 1, EloContext(entrants_count=8))
        # result.delta_a == 11, result.delta_b == -4, result.new_rating_b == 1000
    """
    if score_a not in (0, 1):
        raise ValueError(f"score_a must be 0 or 1, got {score_a!r}")

    for name, value in (
        ("rating_a", rating_a),
        ("rating_b", rating_b),
        ("score_gap", context.score_gap),
        ("top_rating", context.top_rating),
        ("base_k", context.base_k),
    ):
        if not math.isfinite(value):
            raise ValueError(f"{name} must be finite, got {value!r}")

    exp_a = expected_score(rating_a, rating_b)
    exp_b = 1.0 - exp_a

    shared = context.base_k * entrants_factor(context.entrants_count) * margin_factor(context.score_gap)
    k_a = shared * stage_factor(context.stage, rating_a)
    k_b = shared * stage_factor(context.stage, rating_b)

    actual_a = float(score_a)
    actual_b = 1.0 - actual_a

    delta_a = _damped_delta(k_a * (actual_a - exp_a), rating_a, context.top_rating)
    delta_b = _damped_delta(k_b * (actual_b - exp_b), rating_b, context.top_rating)

    return EloResult(
        rating_a=rating_a,
        rating_b=rating_b,
        delta_a=delta_a,
        delta_b=delta_b,
        new_rating_a=max(RATING_FLOOR, rating_a + delta_a),
        new_rating_b=max(RATING_FLOOR, rating_b + delta_b),
        expected_a=exp_a,
        expected_b=exp_b,
        k_a=k_a,
        k_b=k_b,
    )
