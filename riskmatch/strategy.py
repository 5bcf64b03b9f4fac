"""Strategy matrix: gaps bucketed into remediation timelines.

- immediate  (priority 8-10, ``0-6 months``)
- near_term  (priority 4-7,  ``6-18 months``)
- strategic  (priority 1-3,  ``18+ months``)

Each bucket carries an effort histogram, a cost estimate built from
``COST_RANGE_MIDPOINTS`` and up to three vendors covering its gaps.
"""
from __future__ import annotations

from collections import Counter
from typing import Iterable

from riskmatch.config import get_settings
from riskmatch.gaps import gap_sort_key, round_half_up
from riskmatch.types import (
    CostRange,
    EffortRange,
    Gap,
    StrategyMatrix,
    TimelineBucket,
    Vendor,
    VendorRecommendation,
    VendorStatus,
)

COST_RANGE_MIDPOINTS: dict[CostRange, int] = {
    CostRange.UNDER_10K: 5_000,
    CostRange.RANGE_10K_50K: 30_000,
    CostRange.RANGE_50K_100K: 75_000,
    CostRange.RANGE_100K_250K: 175_000,
    CostRange.OVER_250K: 400_000,
}

IMMEDIATE_TIMELINE = "0-6 months"
NEAR_TERM_TIMELINE = "6-18 months"
STRATEGIC_TIMELINE = "18+ months"


def assign_bucket(priority: int) -> str:
    if priority >= 8:
        return "immediate"
    if priority >= 4:
        return "near_term"
    return "strategic"


def sum_cost_ranges(gaps: Iterable[Gap]) -> str:
    """Human-readable cost estimate (±30%) for *gaps*; gaps without a cost are skipped."""
    costs = [COST_RANGE_MIDPOINTS[g.estimated_cost] for g in gaps if g.estimated_cost is not None]
    if not costs:
        return "€0"
    total = sum(costs)
    if total < 10_000:
        return f"€{round_half_up(total / 1000)}K estimated"
    lower = round_half_up(total * 0.7)
    upper = round_half_up(total * 1.3)
    return f"€{round_half_up(lower / 1000)}K-€{round_half_up(upper / 1000)}K estimated"


def effort_distribution(gaps: Iterable[Gap]) -> dict[str, int]:
    counts = Counter(g.estimated_effort for g in gaps if g.estimated_effort is not None)
    return {e.value: counts.get(e, 0) for e in EffortRange}


def find_top_vendors(
    gaps: list[Gap], vendors: Iterable[Vendor], limit: int | None = None,
) -> list[VendorRecommendation]:
    """Rank approved vendors by how many of *gaps* they cover.

    Ties go to the higher rating, then the larger review count, then name and id.
    """
    if not gaps:
        return []
    if limit is None:
        limit = get_settings().top_vendor_limit
    recs: list[VendorRecommendation] = []
    for v in vendors:
        if v.status is not VendorStatus.APPROVED:
            continue
        covered = [g.category for g in gaps if g.category in v.categories]
        if not covered:
            continue
        recs.append(VendorRecommendation(
            vendor_id=v.id, vendor_name=v.name, gaps_covered=len(covered),
            covered_categories=tuple(sorted(set(covered))),
            rating=v.rating, review_count=v.review_count,
        ))
    recs.sort(key=lambda r: (-r.gaps_covered, -r.rating, -r.review_count, r.vendor_name, r.vendor_id))
    return recs[:limit]


def build_bucket(gaps: list[Gap], timeline: str, vendors: list[Vendor]) -> TimelineBucket:
    ordered = sorted(gaps, key=gap_sort_key)
    return TimelineBucket(
        timeline=timeline,
        gaps=tuple(ordered),
        gap_count=len(ordered),
        effort_distribution=effort_distribution(ordered),
        estimated_cost_range=sum_cost_ranges(ordered),
        top_vendors=tuple(find_top_vendors(ordered, vendors)),
    )


def build_strategy_matrix(gaps: Iterable[Gap], vendors: Iterable[Vendor]) -> StrategyMatrix:
    vendors = list(vendors)
    buckets: dict[str, list[Gap]] = {"immediate": [], "near_term": [], "strategic": []}
    for gap in gaps:
        buckets[assign_bucket(gap.priority)].append(gap)
    return StrategyMatrix(
        immediate=build_bucket(buckets["immediate"], IMMEDIATE_TIMELINE, vendors),
        near_term=build_bucket(buckets["near_term"], NEAR_TERM_TIMELINE, vendors),
        strategic=build_bucket(buckets["strategic"], STRATEGIC_TIMELINE, vendors),
    )
