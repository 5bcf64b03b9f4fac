"""Vendor match scoring: base fit (0-100) plus priority boosts (0-40).

Base fit
--------
- **risk area coverage** (0-40): share of the assessment's gaps whose
  category the vendor covers
- **size fit** (0-20): exact company-size segment 20, adjacent segment 15
- **geo coverage** (0-20): share of required jurisdictions covered
- **price** (0-20): budget overlap 20, within tolerance 10

Priority boosts
---------------
- **top priority** (20/15/10): vendor covers the organization's #1/#2/#3
  ranked priority; only the highest-ranked match counts
- **features** (0-10): share of must-have features the vendor lists
- **deployment** (0-5) and **speed** (0-5)
"""
from __future__ import annotations

import logging
import math
from typing import Iterable

from riskmatch.config import get_settings
from riskmatch.types import (
    BaseScore,
    BudgetRange,
    CompanySize,
    DeploymentPreference,
    Gap,
    ImplementationUrgency,
    OrganizationPriorities,
    PriorityBoost,
    Vendor,
    VendorMatchScore,
    VendorStatus,
)

log = logging.getLogger(__name__)

RISK_AREA_COVERAGE_MAX = 40
SIZE_FIT_MAX = 20
GEO_COVERAGE_MAX = 20
PRICE_MAX = 20

SIZE_FIT_EXACT = 20
SIZE_FIT_ADJACENT = 15

TOP_PRIORITY_BOOSTS = (20, 15, 10)
FEATURE_BOOST_MAX = 10
DEPLOYMENT_BOOST = 5
SPEED_BOOST = 5
FAST_IMPLEMENTATION_DAYS = 90
DEFAULT_IMPLEMENTATION_DAYS = 365

MAX_TOTAL_SCORE = 140

BUDGET_BOUNDS: dict[BudgetRange, tuple[float, float]] = {
    BudgetRange.UNDER_10K: (0, 10_000),
    BudgetRange.RANGE_10K_50K: (10_000, 50_000),
    BudgetRange.RANGE_50K_100K: (50_000, 100_000),
    BudgetRange.RANGE_100K_250K: (100_000, 250_000),
    BudgetRange.OVER_250K: (250_000, math.inf),
}

ADJACENT_SEGMENTS: dict[CompanySize, tuple[CompanySize, ...]] = {
    CompanySize.STARTUP: (CompanySize.SMB,),
    CompanySize.SMB: (CompanySize.STARTUP, CompanySize.MIDMARKET),
    CompanySize.MIDMARKET: (CompanySize.SMB, CompanySize.ENTERPRISE),
    CompanySize.ENTERPRISE: (CompanySize.MIDMARKET,),
}


# ---------------------------------------------------------------------------
# Base score
# ---------------------------------------------------------------------------


def calculate_risk_area_coverage(vendor: Vendor, gaps: list[Gap]) -> float:
    if not gaps:
        return RISK_AREA_COVERAGE_MAX
    covered = sum(1 for g in gaps if g.category in vendor.categories)
    return covered / len(gaps) * RISK_AREA_COVERAGE_MAX


def calculate_size_fit(priorities: OrganizationPriorities, vendor: Vendor) -> float:
    size = priorities.company_size
    if size is None or not vendor.target_segments:
        return 0
    if size in vendor.target_segments:
        return SIZE_FIT_EXACT
    if any(s in vendor.target_segments for s in ADJACENT_SEGMENTS[size]):
        return SIZE_FIT_ADJACENT
    return 0


def calculate_geo_coverage(priorities: OrganizationPriorities, vendor: Vendor) -> float:
    required = priorities.jurisdictions
    if not required:
        return GEO_COVERAGE_MAX
    coverage = {j.strip().lower() for j in vendor.geographic_coverage}
    if "global" in coverage:
        return GEO_COVERAGE_MAX
    matched = sum(1 for j in required if j.strip().lower() in coverage)
    return matched / len(required) * GEO_COVERAGE_MAX


def budget_bounds(budget: BudgetRange | None) -> tuple[float, float]:
    if budget is None:
        return (0, math.inf)
    return BUDGET_BOUNDS[budget]


def calculate_price_score(
    priorities: OrganizationPriorities, vendor: Vendor, tolerance: float | None = None,
) -> float:
    if vendor.pricing_range is None:
        return PRICE_MAX / 2
    tolerance = tolerance or get_settings().price_tolerance
    user_min, user_max = budget_bounds(priorities.budget_range)
    vendor_min, vendor_max = budget_bounds(vendor.pricing_range)
    if not (user_min > vendor_max or user_max < vendor_min):
        return PRICE_MAX
    if vendor_min <= user_max * tolerance:
        return PRICE_MAX / 2
    return 0


def calculate_base_score(
    vendor: Vendor, priorities: OrganizationPriorities, gaps: list[Gap],
) -> BaseScore:
    return BaseScore(
        risk_area_coverage=calculate_risk_area_coverage(vendor, gaps),
        size_fit=calculate_size_fit(priorities, vendor),
        geo_coverage=calculate_geo_coverage(priorities, vendor),
        price_score=calculate_price_score(priorities, vendor),
    )


# ---------------------------------------------------------------------------
# Priority boost
# ---------------------------------------------------------------------------


def normalize_priority(priority: str | None) -> str | None:
    """``"transaction-monitoring"`` -> ``"TRANSACTION_MONITORING"``; blank -> None."""
    if not priority or not priority.strip():
        return None
    return priority.strip().upper().replace("-", "_").replace(" ", "_")


def calculate_top_priority_boost(
    vendor: Vendor, priorities: OrganizationPriorities,
) -> tuple[float, str | None, int | None]:
    """Return (boost, matched priority as entered, rank 1-3)."""
    categories = {normalize_priority(c) for c in vendor.categories}
    for rank, (boost, priority) in enumerate(zip(TOP_PRIORITY_BOOSTS, priorities.ranked_priorities), 1):
        normalized = normalize_priority(priority)
        if normalized and normalized in categories:
            return boost, priority, rank
    return 0, None, None


def calculate_feature_boost(
    vendor: Vendor, priorities: OrganizationPriorities,
) -> tuple[float, tuple[str, ...]]:
    required = priorities.must_have_features
    if not required:
        return FEATURE_BOOST_MAX, ()
    offered = {f.strip().lower() for f in vendor.features}
    missing = tuple(f for f in required if f.strip().lower() not in offered)
    covered = len(required) - len(missing)
    return round(covered / len(required) * FEATURE_BOOST_MAX, 2), missing


def calculate_deployment_boost(vendor: Vendor, priorities: OrganizationPriorities) -> float:
    preference = priorities.deployment_preference
    if preference is None:
        return 0
    if preference is DeploymentPreference.FLEXIBLE:
        return DEPLOYMENT_BOOST
    options = vendor.deployment_options.lower().replace("-", "_").replace(" ", "_")
    if preference.value.lower() in options:
        return DEPLOYMENT_BOOST
    return 0


def calculate_speed_boost(vendor: Vendor, priorities: OrganizationPriorities) -> float:
    if priorities.implementation_urgency is not ImplementationUrgency.IMMEDIATE:
        return 0
    timeline = vendor.implementation_timeline
    if timeline is None:
        timeline = DEFAULT_IMPLEMENTATION_DAYS
    return SPEED_BOOST if timeline <= FAST_IMPLEMENTATION_DAYS else 0


def calculate_priority_boost(vendor: Vendor, priorities: OrganizationPriorities) -> PriorityBoost:
    top, matched, rank = calculate_top_priority_boost(vendor, priorities)
    features, missing = calculate_feature_boost(vendor, priorities)
    return PriorityBoost(
        top_priority_boost=top,
        feature_boost=features,
        deployment_boost=calculate_deployment_boost(vendor, priorities),
        speed_boost=calculate_speed_boost(vendor, priorities),
        matched_priority=matched,
        matched_rank=rank,
        missing_features=missing,
    )


# ---------------------------------------------------------------------------
# Totals, tiers and reasons
# ---------------------------------------------------------------------------


def classify_match(total_score: float) -> str:
    if total_score >= 120:
        return "Highly Relevant"
    if total_score >= 100:
        return "Good Match"
    return "Fair Match"


def match_summary(total_score: float) -> str:
    if total_score >= 120:
        return "Excellent match - Highly recommended"
    if total_score >= 100:
        return "Strong match - Recommended"
    if total_score >= 80:
        return "Good match - Worth considering"
    return "Partial match - May require evaluation"


def generate_match_reasons(vendor: Vendor, base: BaseScore, boost: PriorityBoost) -> list[str]:
    """One reason per non-zero contribution, highest-weight factors first."""
    reasons: list[str] = []

    if boost.matched_priority:
        reasons.append(f"Covers your #{boost.matched_rank} priority: {boost.matched_priority}")

    if base.risk_area_coverage > 0:
        pct = round(base.risk_area_coverage / RISK_AREA_COVERAGE_MAX * 100)
        reasons.append(f"Addresses {pct}% of your identified compliance gaps")

    if boost.feature_boost >= FEATURE_BOOST_MAX:
        reasons.append("Has all must-have features you specified")
    elif boost.feature_boost > 0:
        reasons.append(f"Has some must-have features, missing: {', '.join(boost.missing_features)}")

    if base.price_score == PRICE_MAX:
        reasons.append("Within your budget range")
    elif base.price_score > 0:
        if vendor.pricing_range is None:
            reasons.append("Pricing not published; budget fit unconfirmed")
        else:
            reasons.append("Slightly above budget but within tolerance")

    if base.size_fit == SIZE_FIT_EXACT:
        reasons.append("Designed for companies your size")
    elif base.size_fit > 0:
        reasons.append("Well-suited for companies your size")

    if base.geo_coverage == GEO_COVERAGE_MAX:
        reasons.append("Full coverage for all your jurisdictions")
    elif base.geo_coverage >= 15:
        reasons.append("Covers most of your required jurisdictions")
    elif base.geo_coverage > 0:
        reasons.append("Partial coverage for your jurisdictions")

    if boost.deployment_boost > 0:
        reasons.append("Supports your preferred deployment model")

    if boost.speed_boost > 0:
        reasons.append(f"Fast implementation timeline (≤{FAST_IMPLEMENTATION_DAYS} days)")

    return reasons


def score_vendor_match(
    gaps: Iterable[Gap], priorities: OrganizationPriorities, vendor: Vendor,
) -> VendorMatchScore:
    gaps = list(gaps)
    base = calculate_base_score(vendor, priorities, gaps)
    boost = calculate_priority_boost(vendor, priorities)
    total = min(base.total_base + boost.total_boost, MAX_TOTAL_SCORE)
    return VendorMatchScore(
        vendor_id=vendor.id,
        vendor_name=vendor.name,
        base_score=base,
        priority_boost=boost,
        total_score=total,
        quality=classify_match(total),
        match_reasons=tuple(generate_match_reasons(vendor, base, boost)),
    )


def rank_vendor_matches(
    gaps: Iterable[Gap],
    priorities: OrganizationPriorities,
    vendors: Iterable[Vendor],
    limit: int | None = None,
    min_score: float = 0,
) -> list[VendorMatchScore]:
    """Score every approved vendor and return the best *limit* at or above *min_score*."""
    gaps = list(gaps)
    if limit is None:
        limit = get_settings().vendor_match_limit
    scores = [
        score_vendor_match(gaps, priorities, v)
        for v in vendors if v.status is VendorStatus.APPROVED
    ]
    scores = [s for s in scores if s.total_score >= min_score]
    scores.sort(key=lambda s: (-s.total_score, s.vendor_name, s.vendor_id))
    log.info("Ranked %d vendor matches across %d gaps", len(scores), len(gaps))
    return scores[:limit]
