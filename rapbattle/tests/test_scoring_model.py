"""
Scoring Model Tests

Pure validation and normalization; no database involved.
"""
import pytest

from rapbattle.errors import RubricInvalidError, ValidationFailedError
from rapbattle.orm.round import Round, RoundKind, RoundScoring, RubricCriterion
from rapbattle.services import scoring_service


def _rubric_round() -> Round:
    round_obj = Round(kind=RoundKind.BRACKET, number=1, scoring=RoundScoring.RUBRIC)
    round_obj.criteria.extend([
        RubricCriterion(key="flow", name="Flow", weight=2.0, min_value=0, max_value=10, position=0),
        RubricCriterion(key="lyrics", name="Lyrics", weight=1.0, min_value=0, max_value=10, position=1),
        RubricCriterion(key="delivery", name="Delivery", weight=1.0, min_value=0, max_value=10, position=2),
    ])
    return round_obj


# =============================================================================
# Rubric
# =============================================================================

class TestRubricTotals:

    def test_weighted_normalized_total(self):
        line = scoring_service.score_line(_rubric_round(), rubric={"flow": 8, "lyrics": 6, "delivery": 10})
        # (2*0.8 + 1*0.6 + 1*1.0) / 4 = 0.8
        assert line.total_score == pytest.approx(80.0)
        assert line.rubric == {"flow": 8.0, "lyrics": 6.0, "delivery": 10.0}

    def test_bounds_are_inclusive(self):
        low = scoring_service.score_line(_rubric_round(), rubric={"flow": 0, "lyrics": 0, "delivery": 0})
        high = scoring_service.score_line(_rubric_round(), rubric={"flow": 10, "lyrics": 10, "delivery": 10})
        assert low.total_score == pytest.approx(0.0)
        assert high.total_score == pytest.approx(100.0)

    def test_non_zero_minimum(self):
        criteria = [RubricCriterion(key="bars", name="Bars", weight=1.0, min_value=1, max_value=5)]
        assert scoring_service.rubric_total({"bars": 3}, criteria) == pytest.approx(50.0)

    def test_value_above_max_rejected(self):
        with pytest.raises(RubricInvalidError) as exc_info:
            scoring_service.score_line(_rubric_round(), rubric={"flow": 11, "lyrics": 5, "delivery": 5})
        assert exc_info.value.code == "rubric_invalid"
        assert exc_info.value.details["out_of_bounds"][0]["key"] == "flow"

    def test_value_below_min_rejected(self):
        with pytest.raises(RubricInvalidError):
            scoring_service.score_line(_rubric_round(), rubric={"flow": -1, "lyrics": 5, "delivery": 5})

    def test_missing_key_rejected(self):
        with pytest.raises(RubricInvalidError) as exc_info:
            scoring_service.score_line(_rubric_round(), rubric={"flow": 5, "lyrics": 5})
        assert exc_info.value.details["missing_keys"] == ["delivery"]

    def test_unknown_key_rejected(self):
        with pytest.raises(RubricInvalidError) as exc_info:
            scoring_service.score_line(
                _rubric_round(),
                rubric={"flow": 5, "lyrics": 5, "delivery": 5, "swagger": 9},
            )
        assert exc_info.value.details["unknown_keys"] == ["swagger"]

    def test_non_numeric_value_rejected(self):
        with pytest.raises(RubricInvalidError):
            scoring_service.score_line(_rubric_round(), rubric={"flow": "8", "lyrics": 5, "delivery": 5})

    def test_boolean_is_not_a_number(self):
        with pytest.raises(RubricInvalidError):
            scoring_service.score_line(_rubric_round(), rubric={"flow": True, "lyrics": 5, "delivery": 5})

    def test_missing_payload_rejected(self):
        with pytest.raises(RubricInvalidError):
            scoring_service.score_line(_rubric_round(), rubric=None)

    def test_round_without_criteria_rejected(self):
        round_obj = Round(kind=RoundKind.BRACKET, number=1, scoring=RoundScoring.RUBRIC)
        with pytest.raises(RubricInvalidError):
            scoring_service.score_line(round_obj, rubric={"flow": 5})


# =============================================================================
# Pass/fail and points
# =============================================================================

class TestPassFailAndPoints:

    def test_pass_fail_totals(self):
        round_obj = Round(kind=RoundKind.QUALIFIER1, number=1, scoring=RoundScoring.PASS_FAIL)
        assert scoring_service.score_line(round_obj, passed=True).total_score == 100.0
        assert scoring_service.score_line(round_obj, passed=False).total_score == 0.0

    def test_pass_fail_requires_boolean(self):
        round_obj = Round(kind=RoundKind.QUALIFIER1, number=1, scoring=RoundScoring.PASS_FAIL)
        with pytest.raises(ValidationFailedError):
            scoring_service.score_line(round_obj, passed=None)

    def test_points_scaled_to_hundred(self):
        round_obj = Round(kind=RoundKind.QUALIFIER1, number=1, scoring=RoundScoring.POINTS)
        line = scoring_service.score_line(round_obj, score=40)
        assert line.score == 40.0
        assert line.total_score == pytest.approx(scoring_service.points_total(40))
        assert scoring_service.points_total(5, points_max=10) == pytest.approx(50.0)

    def test_points_out_of_range_rejected(self):
        round_obj = Round(kind=RoundKind.QUALIFIER1, number=1, scoring=RoundScoring.POINTS)
        with pytest.raises(ValidationFailedError):
            scoring_service.score_line(round_obj, score=-1)

    def test_points_requires_number(self):
        round_obj = Round(kind=RoundKind.QUALIFIER1, number=1, scoring=RoundScoring.POINTS)
        with pytest.raises(ValidationFailedError):
            scoring_service.score_line(round_obj, score=None)


def test_mean_of_empty_is_none():
    assert scoring_service.mean([]) is None
    assert scoring_service.mean([10.0, 20.0]) == pytest.approx(15.0)
