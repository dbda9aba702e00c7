"""Unit tests for stage and score-gap classification."""

import pytest

from boardrank.bracket.models import ProviderMatch
from boardrank.elo.classifier import (
    classify_match,
    compute_score_gap,
    derive_stage,
    is_double_elimination,
)
from boardrank.elo.constants import Stage


def _match(match_id, round_number, scores_csv="2-1"):
    return ProviderMatch(
        id=match_id,
        state="complete",
        player1_id=1,
        player2_id=2,
        winner_id=1,
        scores_csv=scores_csv,
        round=round_number,
    )


@pytest.mark.parametrize(
    "round_number, double_elimination, expected",
    [
        (3, False, Stage.RR),
        (-1, False, Stage.RR),
        (0, True, Stage.GF),
        (-2, True, Stage.DE_LB),
        (2, True, Stage.DE_UB),
        (None, True, Stage.RR),
    ],
)
def test_derive_stage(round_number, double_elimination, expected):
    assert derive_stage(round_number, double_elimination) is expected


def test_double_elimination_detected_from_negative_round():
    assert is_double_elimination([_match(1, 1), _match(2, -1)])
    assert not is_double_elimination([_match(1, 1), _match(2, 2), _match(3, None)])


@pytest.mark.parametrize(
    "scores_csv, expected",
    [
        ("3-0,3-1", 5),
        ("2-3", 1),
        ("10-2", 8),
        ("", 1),
        (None, 1),
        ("w/o", 1),
        ("3-1,garbage,2-0", 4),
        ("-1-3", 4),
        (" 4 - 1 ", 3),
    ],
)
def test_compute_score_gap(scores_csv, expected):
    assert compute_score_gap(scores_csv) == expected


def test_classify_match_combines_stage_and_gap():
    context = classify_match(_match(7, -3, "3-0"), double_elimination=True)
    assert context.stage is Stage.DE_LB
    assert context.score_gap == 3
