"""Tests for vendor match scoring."""
from __future__ import annotations

from dataclasses import replace

import pytest

from riskmatch.matching import (
    calculate_deployment_boost,
    calculate_feature_boost,
    calculate_geo_coverage,
    calculate_price_score,
    calculate_risk_area_coverage,
    calculate_size_fit,
    calculate_speed_boost,
    calculate_top_priority_boost,
    classify_match,
    match_summary,
    normalize_priority,
    rank_vendor_matches,
    score_vendor_match,
)
from riskmatch.types import (
    BudgetRange,
    CompanySize,
    DeploymentPreference,
    Gap,
    ImplementationUrgency,
    OrganizationPriorities,
    RemediationWindow,
    Severity,
    Vendor,
    VendorStatus,
)


def _gap(category):
    return Gap(
        category=category, title=category, severity=Severity.HIGH, priority=7,
        priority_score=7.0, remediation_window=RemediationWindow.SHORT_TERM,
    )


GAPS = [_gap("KYC"), _gap("Sanctions"), _gap("Training")]

PRIORITIES = OrganizationPriorities(
    ranked_priorities=("sanctions", "kyc"),
    budget_range=BudgetRange.RANGE_50K_100K,
    must_have_features=("API", "Audit trail"),
    deployment_preference=DeploymentPreference.CLOUD,
    implementation_urgency=ImplementationUrgency.IMMEDIATE,
    company_size=CompanySize.MIDMARKET,
    jurisdictions=("US", "EU"),
)

BEST = Vendor(
    id="1", name="Complyo",
    categories=("KYC", "Sanctions", "Training"),
    target_segments=(CompanySize.MIDMARKET,),
    geographic_coverage=("Global",),
    pricing_range=BudgetRange.RANGE_50K_100K,
    features=("api", "audit trail", "SSO"),
    deployment_options="Cloud, On-Premise",
    implementation_timeline=60,
)

WEAK = Vendor(id="2", name="Exporta", categories=("Export",))


class TestBaseScore:
    def test_risk_area_coverage(self):
        assert calculate_risk_area_coverage(BEST, GAPS) == 40
        assert calculate_risk_area_coverage(Vendor(id="x", name="x", categories=("KYC",)), GAPS) == pytest.approx(40 / 3)
        assert calculate_risk_area_coverage(WEAK, []) == 40

    def test_size_fit(self):
        adjacent = Vendor(id="x", name="x", target_segments=(CompanySize.SMB,))
        distant = Vendor(id="x", name="x", target_segments=(CompanySize.STARTUP,))
        assert calculate_size_fit(PRIORITIES, BEST) == 20
        assert calculate_size_fit(PRIORITIES, adjacent) == 15
        assert calculate_size_fit(PRIORITIES, distant) == 0
        assert calculate_size_fit(OrganizationPriorities(), BEST) == 0
        assert calculate_size_fit(PRIORITIES, WEAK) == 0

    def test_geo_coverage(self):
        partial = Vendor(id="x", name="x", geographic_coverage=("us", "EU"))
        three = OrganizationPriorities(jurisdictions=("US", "EU", "UK"))
        assert calculate_geo_coverage(PRIORITIES, BEST) == 20
        assert calculate_geo_coverage(three, partial) == pytest.approx(40 / 3)
        assert calculate_geo_coverage(OrganizationPriorities(), WEAK) == 20

    def test_price_overlap_including_touching_ranges(self):
        low_budget = OrganizationPriorities(budget_range=BudgetRange.RANGE_10K_50K)
        assert calculate_price_score(PRIORITIES, BEST) == 20
        assert calculate_price_score(low_budget, BEST) == 20

    def test_price_out_of_range(self):
        low_budget = OrganizationPriorities(budget_range=BudgetRange.RANGE_10K_50K)
        pricey = Vendor(id="x", name="x", pricing_range=BudgetRange.RANGE_100K_250K)
        assert calculate_price_score(low_budget, pricey, tolerance=1.25) == 0

    def test_price_within_tolerance(self):
        tiny = OrganizationPriorities(budget_range=BudgetRange.UNDER_10K)
        assert calculate_price_score(tiny, BEST, tolerance=5.0) == 10

    def test_price_unknown(self):
        assert calculate_price_score(PRIORITIES, WEAK) == 10

    def test_no_budget_matches_everything(self):
        assert calculate_price_score(OrganizationPriorities(), BEST) == 20


class TestPriorityBoost:
    def test_normalize_priority(self):
        assert normalize_priority(" transaction-monitoring ") == "TRANSACTION_MONITORING"
        assert normalize_priority("  ") is None
        assert normalize_priority(None) is None

    def test_top_priority_rank(self):
        ranked = OrganizationPriorities(ranked_priorities=("Training", "kyc", "sanctions"))
        kyc_only = Vendor(id="x", name="x", categories=("KYC",))
        sanctions_only = Vendor(id="x", name="x", categories=("Sanctions",))
        assert calculate_top_priority_boost(BEST, ranked) == (20, "Training", 1)
        assert calculate_top_priority_boost(kyc_only, ranked) == (15, "kyc", 2)
        assert calculate_top_priority_boost(sanctions_only, ranked) == (10, "sanctions", 3)
        assert calculate_top_priority_boost(WEAK, ranked) == (0, None, None)

    def test_feature_boost(self):
        three = OrganizationPriorities(must_have_features=("API", "Audit trail", "SSO"))
        partial = Vendor(id="x", name="x", features=("api",))
        assert calculate_feature_boost(BEST, three) == (10, ())
        assert calculate_feature_boost(partial, three) == (3.33, ("Audit trail", "SSO"))
        assert calculate_feature_boost(WEAK, OrganizationPriorities()) == (10, ())

    def test_deployment_boost(self):
        def pref(p):
            return OrganizationPriorities(deployment_preference=p)

        assert calculate_deployment_boost(BEST, pref(DeploymentPreference.ON_PREMISE)) == 5
        assert calculate_deployment_boost(BEST, pref(DeploymentPreference.HYBRID)) == 0
        assert calculate_deployment_boost(WEAK, pref(DeploymentPreference.FLEXIBLE)) == 5
        assert calculate_deployment_boost(BEST, pref(None)) == 0

    def test_speed_boost(self):
        urgent = OrganizationPriorities(implementation_urgency=ImplementationUrgency.IMMEDIATE)
        planned = OrganizationPriorities(implementation_urgency=ImplementationUrgency.PLANNED)
        assert calculate_speed_boost(Vendor(id="x", name="x", implementation_timeline=90), urgent) == 5
        assert calculate_speed_boost(Vendor(id="x", name="x", implementation_timeline=91), urgent) == 0
        assert calculate_speed_boost(Vendor(id="x", name="x", implementation_timeline=0), urgent) == 5
        assert calculate_speed_boost(WEAK, urgent) == 0
        assert calculate_speed_boost(BEST, planned) == 0


class TestClassification:
    @pytest.mark.parametrize("score,quality", [
        (140, "Highly Relevant"), (120, "Highly Relevant"), (119.99, "Good Match"),
        (100, "Good Match"), (99.99, "Fair Match"), (0, "Fair Match"),
    ])
    def test_quality_tiers(self, score, quality):
        assert classify_match(score) == quality

    def test_summary(self):
        assert match_summary(125).startswith("Excellent")
        assert match_summary(100).startswith("Strong")
        assert match_summary(80).startswith("Good")
        assert match_summary(79).startswith("Partial")


class TestScoreVendorMatch:
    def test_perfect_vendor(self):
        match = score_vendor_match(GAPS, PRIORITIES, BEST)
        assert match.base_score.total_base == 100
        assert match.priority_boost.total_boost == 40
        assert match.total_score == 140
        assert match.quality == "Highly Relevant"
        assert list(match.match_reasons) == [
            "Covers your #1 priority: sanctions",
            "Addresses 100% of your identified compliance gaps",
            "Has all must-have features you specified",
            "Within your budget range",
            "Designed for companies your size",
            "Full coverage for all your jurisdictions",
            "Supports your preferred deployment model",
            "Fast implementation timeline (≤90 days)",
        ]

    def test_weak_vendor(self):
        match = score_vendor_match(GAPS, PRIORITIES, WEAK)
        assert match.total_score == 10
        assert match.quality == "Fair Match"
        assert match.priority_boost.missing_features == ("API", "Audit trail")
        assert list(match.match_reasons) == ["Pricing not published; budget fit unconfirmed"]

    def test_partial_features_reason(self):
        vendor = Vendor(id="3", name="Half", features=("API",))
        match = score_vendor_match(GAPS, PRIORITIES, vendor)
        assert "Has some must-have features, missing: Audit trail" in match.match_reasons

    def test_to_dict(self):
        data = score_vendor_match(GAPS, PRIORITIES, BEST).to_dict()
        assert data["base_score"]["total_base"] == 100
        assert data["priority_boost"]["total_boost"] == 40
        assert data["priority_boost"]["matched_rank"] == 1


class TestRankVendorMatches:
    def test_order_filter_and_limit(self):
        twin = replace(BEST, id="9", name="Aardvark")
        pending = Vendor(id="5", name="Pending", categories=("KYC",), status=VendorStatus.PENDING)
        ranked = rank_vendor_matches(GAPS, PRIORITIES, [WEAK, BEST, pending, twin], limit=10)
        assert [m.vendor_name for m in ranked] == ["Aardvark", "Complyo", "Exporta"]

        assert len(rank_vendor_matches(GAPS, PRIORITIES, [WEAK, BEST, twin], limit=1)) == 1
        above = rank_vendor_matches(GAPS, PRIORITIES, [WEAK, BEST], limit=10, min_score=80)
        assert [m.vendor_name for m in above] == ["Complyo"]

    def test_zero_limit_returns_nothing(self):
        assert rank_vendor_matches(GAPS, PRIORITIES, [WEAK, BEST], limit=0) == []
