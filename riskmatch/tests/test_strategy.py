"""Tests for the remediation strategy matrix."""
from __future__ import annotations

import pytest

from riskmatch.strategy import (
    IMMEDIATE_TIMELINE,
    NEAR_TERM_TIMELINE,
    STRATEGIC_TIMELINE,
    assign_bucket,
    build_strategy_matrix,
    effort_distribution,
    find_top_vendors,
    sum_cost_ranges,
)
from riskmatch.types import (
    CostRange,
    EffortRange,
    Gap,
    RemediationWindow,
    Severity,
    Vendor,
    VendorStatus,
)


def _gap(category, priority=5, severity=Severity.MEDIUM, cost=None, effort=None):
    return Gap(
        category=category, title=category, severity=severity, priority=priority,
        priority_score=float(priority), remediation_window=RemediationWindow.MEDIUM_TERM,
        estimated_effort=effort, estimated_cost=cost,
    )


@pytest.fixture()
def vendors() -> list[Vendor]:
    return [
        Vendor(id="1", name="Alder", categories=("KYC", "Sanctions"), rating=4.0, review_count=10),
        Vendor(id="2", name="Birch", categories=("KYC", "Sanctions"), rating=4.5, review_count=3),
        Vendor(id="3", name="Cedar", categories=("KYC",), rating=5.0, review_count=50),
        Vendor(id="4", name="Dogwood", categories=("KYC", "Sanctions", "Training"),
               rating=5.0, status=VendorStatus.PENDING),
        Vendor(id="5", name="Elm", categories=("Export",), rating=5.0),
    ]


class TestAssignBucket:
    @pytest.mark.parametrize("priority,bucket", [
        (10, "immediate"), (8, "immediate"), (7, "near_term"),
        (4, "near_term"), (3, "strategic"), (1, "strategic"),
    ])
    def test_boundaries(self, priority, bucket):
        assert assign_bucket(priority) == bucket


class TestSumCostRanges:
    def test_empty(self):
        assert sum_cost_ranges([]) == "€0"

    def test_gaps_without_cost_skipped(self):
        assert sum_cost_ranges([_gap("A")]) == "€0"

    def test_small_total_is_single_figure(self):
        assert sum_cost_ranges([_gap("A", cost=CostRange.UNDER_10K)]) == "€5K estimated"

    def test_range_rounded_half_up(self):
        gaps = [_gap("A", cost=CostRange.RANGE_10K_50K), _gap("B", cost=CostRange.RANGE_50K_100K)]
        assert sum_cost_ranges(gaps) == "€74K-€137K estimated"


class TestEffortDistribution:
    def test_all_keys_present(self):
        gaps = [_gap("A", effort=EffortRange.SMALL), _gap("B", effort=EffortRange.SMALL), _gap("C")]
        assert effort_distribution(gaps) == {"SMALL": 2, "MEDIUM": 0, "LARGE": 0}


class TestFindTopVendors:
    def test_ranked_by_coverage_then_rating(self, vendors):
        gaps = [_gap("KYC"), _gap("Sanctions")]
        recs = find_top_vendors(gaps, vendors, limit=3)
        assert [r.vendor_name for r in recs] == ["Birch", "Alder", "Cedar"]
        assert recs[0].gaps_covered == 2
        assert recs[0].covered_categories == ("KYC", "Sanctions")

    def test_only_approved(self, vendors):
        recs = find_top_vendors([_gap("Training")], vendors, limit=3)
        assert recs == []

    def test_limit(self, vendors):
        assert len(find_top_vendors([_gap("KYC")], vendors, limit=1)) == 1
        assert find_top_vendors([_gap("KYC")], vendors, limit=0) == []

    def test_no_gaps(self, vendors):
        assert find_top_vendors([], vendors) == []


class TestBuildStrategyMatrix:
    def test_buckets(self, vendors):
        gaps = [
            _gap("KYC", priority=9, cost=CostRange.UNDER_10K, effort=EffortRange.SMALL),
            _gap("Sanctions", priority=10, severity=Severity.CRITICAL),
            _gap("Training", priority=5),
            _gap("Export", priority=2),
        ]
        matrix = build_strategy_matrix(gaps, vendors)
        assert matrix.immediate.timeline == IMMEDIATE_TIMELINE
        assert matrix.near_term.timeline == NEAR_TERM_TIMELINE
        assert matrix.strategic.timeline == STRATEGIC_TIMELINE
        assert [g.category for g in matrix.immediate.gaps] == ["Sanctions", "KYC"]
        assert matrix.immediate.gap_count == 2
        assert matrix.immediate.estimated_cost_range == "€5K estimated"
        assert matrix.immediate.effort_distribution["SMALL"] == 1
        assert matrix.near_term.top_vendors == ()
        assert [v.vendor_name for v in matrix.strategic.top_vendors] == ["Elm"]

    def test_empty_matrix(self, vendors):
        matrix = build_strategy_matrix([], vendors)
        data = matrix.to_dict()
        for key in ("immediate", "near_term", "strategic"):
            assert data[key]["gap_count"] == 0
            assert data[key]["estimated_cost_range"] == "€0"
            assert data[key]["top_vendors"] == []

    def test_rebuild_is_identical(self, vendors):
        gaps = [
            _gap("KYC", priority=8, cost=CostRange.RANGE_10K_50K),
            _gap("Sanctions", priority=8, cost=CostRange.OVER_250K),
            _gap("Training", priority=4, cost=CostRange.UNDER_10K),
        ]
        first = build_strategy_matrix(gaps, vendors)
        second = build_strategy_matrix(list(reversed(gaps)), vendors)
        assert first == second
        assert first.immediate.estimated_cost_range == "€301K-€559K estimated"
