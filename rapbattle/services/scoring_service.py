"""
Scoring Model

Turns one judge's raw opinion into a validated, normalized line:
- pass_fail: total = 100 if pass else 0
- points:    total = score scaled from 0..POINTS_MAX to 0..100
- rubric:    total = sum(w * normalized(value)) / sum(w), scaled to 0..100

Invalid payloads are rejected before anything is persisted. Values are
never clamped into range on the way in.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from rapbattle.config.settings import settings
from rapbattle.errors import RubricInvalidError, ValidationFailedError
from rapbattle.orm.round import Round, RoundScoring, RubricCriterion


@dataclass(frozen=True)
class ScoredLine:
    """A validated opinion about one judged entity."""
    passed: Optional[bool]
    score: Optional[float]
    rubric: Optional[Dict[str, float]]
    total_score: float


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def validate_rubric(
    values: Optional[Mapping[str, Any]],
    criteria: Iterable[RubricCriterion]
) -> Dict[str, float]:
    """
    Check a rubric payload against the round's criteria.

    Every declared key must be present, no undeclared key may appear,
    and every value must lie in [min_value, max_value].
    """
    criteria = list(criteria)
    if not criteria:
        raise RubricInvalidError("Round has no rubric criteria defined")
    if not isinstance(values, Mapping):
        raise RubricInvalidError("Rubric must be an object of criterion -> value")

    declared = {c.key for c in criteria}
    missing = sorted(declared - set(values))
    unknown = sorted(set(values) - declared)
    if missing or unknown:
        raise RubricInvalidError(
            "Rubric keys do not match the round criteria",
            details={"missing_keys": missing, "unknown_keys": unknown},
        )

    cleaned: Dict[str, float] = {}
    out_of_bounds: List[Dict[str, Any]] = []
    for criterion in criteria:
        value = values[criterion.key]
        if not _is_number(value):
            raise RubricInvalidError(
                f"Rubric value for '{criterion.key}' must be a number",
                details={"key": criterion.key},
            )
        if value < criterion.min_value or value > criterion.max_value:
            out_of_bounds.append({
                "key": criterion.key,
                "value": value,
                "min_value": criterion.min_value,
                "max_value": criterion.max_value,
            })
            continue
        cleaned[criterion.key] = float(value)

    if out_of_bounds:
        raise RubricInvalidError("Rubric values out of bounds", details={"out_of_bounds": out_of_bounds})
    return cleaned


def rubric_total(
    values: Mapping[str, float],
    criteria: Iterable[RubricCriterion],
    scale_max: Optional[float] = None
) -> float:
    """Weight-normalized rubric total on a 0..scale_max range."""
    if scale_max is None:
        scale_max = settings.RUBRIC_SCALE_MAX

    weighted_sum = 0.0
    weight_sum = 0.0
    for criterion in criteria:
        span = criterion.max_value - criterion.min_value
        value = _clamp(values[criterion.key], criterion.min_value, criterion.max_value)
        weighted_sum += criterion.weight * ((value - criterion.min_value) / span)
        weight_sum += criterion.weight

    if weight_sum <= 0:
        raise RubricInvalidError("Rubric criteria weights must be positive")
    return weighted_sum / weight_sum * scale_max


def pass_fail_total(passed: bool) -> float:
    return 100.0 if passed else 0.0


def points_total(score: float, points_max: Optional[float] = None) -> float:
    if points_max is None:
        points_max = settings.POINTS_MAX
    return score / points_max * 100.0


def score_line(
    round_obj: Round,
    passed: Optional[bool] = None,
    score: Optional[float] = None,
    rubric: Optional[Mapping[str, Any]] = None,
) -> ScoredLine:
    """Validate and total one opinion under the round's scoring discipline."""
    scoring = round_obj.scoring

    if scoring == RoundScoring.PASS_FAIL:
        if not isinstance(passed, bool):
            raise ValidationFailedError("pass_fail rounds require a boolean 'pass'")
        return ScoredLine(passed=passed, score=None, rubric=None, total_score=pass_fail_total(passed))

    if scoring == RoundScoring.POINTS:
        if not _is_number(score):
            raise ValidationFailedError("points rounds require a numeric 'score'")
        if score < 0 or score > settings.POINTS_MAX:
            raise ValidationFailedError(
                "Score out of range",
                details={"score": score, "min": 0, "max": settings.POINTS_MAX},
            )
        return ScoredLine(passed=passed, score=float(score), rubric=None, total_score=points_total(score))

    criteria = list(round_obj.criteria)
    cleaned = validate_rubric(rubric, criteria)
    return ScoredLine(
        passed=passed,
        score=None,
        rubric=cleaned,
        total_score=rubric_total(cleaned, criteria),
    )


def mean(values: Iterable[float]) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)
