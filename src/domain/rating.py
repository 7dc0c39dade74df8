"""
Incremental rating aggregation
==============================

Formula
-------
new_average = (average x total + rating) / (total + 1)

The same incremental mean is applied to every breakdown dimension present
in a review.  Absent dimensions are left untouched.

Two divisor policies exist for dimensions:

* **per-dimension** (default): each dimension keeps its own sample count,
  so an unrated dimension never gets diluted.
* **legacy**: dimensions are divided by the global ``total``, as aggregates
  written before per-dimension counts existed were.  This under-weights
  dimensions that were skipped on earlier reviews.  Only useful to keep
  existing aggregates bit-for-bit compatible.

Complexity: O(dimensions) per rating, no history scan.
"""

from __future__ import annotations

from typing import Mapping, Optional

from .entities import DimensionRating, RatingSnapshot
from .enums import RatingDimension
from .errors import InvalidRating

MIN_RATING = 1
MAX_RATING = 5


def validate_rating(value: float, label: str = "rating") -> None:
    if not MIN_RATING <= value <= MAX_RATING:
        raise InvalidRating(
            f"{label} must be between {MIN_RATING} and {MAX_RATING}, got {value}"
        )


def incremental_mean(average: float, count: int, sample: float) -> float:
    return (average * count + sample) / (count + 1)


def fold_rating(
    snapshot: RatingSnapshot,
    rating: float,
    breakdown: Optional[Mapping[RatingDimension, float]] = None,
    *,
    legacy_breakdown: bool = False,
) -> RatingSnapshot:
    """Return a new snapshot with *rating* folded in."""
    validate_rating(rating)
    breakdown = breakdown or {}
    for dimension, value in breakdown.items():
        validate_rating(value, dimension.value)

    dimensions = dict(snapshot.breakdown)
    for dimension, value in breakdown.items():
        current = dimensions.get(dimension, DimensionRating())
        divisor = snapshot.total if legacy_breakdown else current.count
        dimensions[dimension] = DimensionRating(
            average=incremental_mean(current.average, divisor, value),
            count=current.count + 1,
        )

    return RatingSnapshot(
        average=incremental_mean(snapshot.average, snapshot.total, rating),
        total=snapshot.total + 1,
        breakdown=dimensions,
        version=snapshot.version,
    )
