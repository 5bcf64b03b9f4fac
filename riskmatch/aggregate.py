"""Generic weighting primitives used by every higher-level scorer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

WEIGHT_TOLERANCE = 0.01


class ValidationError(ValueError):
    """Malformed weighting input (a programmer error, never coerced)."""


@dataclass(frozen=True)
class ScoreStats:
    min: float
    max: float
    mean: float
    median: float
    count: int

    def to_dict(self) -> dict[str, float | int]:
        return {"min": self.min, "max": self.max, "mean": self.mean,
                "median": self.median, "count": self.count}


def weighted_sum(values: Sequence[float] | None, weights: Sequence[float] | None) -> float:
    if not values or not weights:
        return 0
    if len(values) != len(weights):
        raise ValidationError(
            f"Values length ({len(values)}) must match weights length ({len(weights)})"
        )
    return sum(v * w for v, w in zip(values, weights))


def weighted_average(values: Sequence[float] | None, weights: Sequence[float] | None) -> float:
    """``weighted_sum / sum(weights)``; 0 when there is no weight to divide by."""
    if not values or not weights:
        return 0
    total = sum(weights)
    if total == 0:
        return 0
    return weighted_sum(values, weights) / total


def scale_score(score: float, from_min: float, from_max: float, to_min: float, to_max: float) -> float:
    """Clamp *score* into the source range and map it linearly onto the target range."""
    clamped = max(from_min, min(from_max, score))
    from_range = from_max - from_min
    if from_range == 0:
        return to_min
    return to_min + (clamped - from_min) / from_range * (to_max - to_min)


def calculate_score_stats(scores: Sequence[float | None] | None) -> ScoreStats:
    values = sorted(s for s in (scores or ()) if s is not None)
    if not values:
        return ScoreStats(min=0, max=0, mean=0, median=0, count=0)
    count = len(values)
    mid = count // 2
    median = (values[mid - 1] + values[mid]) / 2 if count % 2 == 0 else values[mid]
    return ScoreStats(
        min=values[0], max=values[-1], mean=sum(values) / count, median=median, count=count,
    )


# ---------------------------------------------------------------------------
# Weight tables
# ---------------------------------------------------------------------------


def sum_weights(weights: Sequence[float] | None) -> float:
    return sum(weights or ())


def validate_weights(weights: Sequence[float] | None, tolerance: float = WEIGHT_TOLERANCE) -> bool:
    """True if *weights* sum to 1.0 within *tolerance*."""
    if not weights:
        return False
    return abs(sum_weights(weights) - 1.0) <= tolerance


def normalize_weights(weights: Sequence[float] | None) -> list[float]:
    """Rescale *weights* to sum to 1.0; all-zero weights are split equally."""
    if not weights:
        return []
    total = sum_weights(weights)
    if total == 0:
        return [1.0 / len(weights)] * len(weights)
    return [w / total for w in weights]


def require_valid_weights(weights: Sequence[float] | None, context: str = "weights") -> None:
    total = sum_weights(weights)
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValidationError(
            f"{context} sum to {total:.4f}, must equal 1.0 (±{WEIGHT_TOLERANCE})"
        )
