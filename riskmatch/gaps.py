"""Gap and risk derivation from low-scoring answers.

Answers scoring below the gap threshold are grouped by category (the
question's ``category_tag``).  Each group yields one :class:`Gap` and one
:class:`Risk`.  Output order is deterministic: priority desc, severity desc,
category asc.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Iterable

from riskmatch.config import Settings, get_settings
from riskmatch.tiers import get_multiplier, parse_tier
from riskmatch.types import (
    Answer,
    CostRange,
    EffortRange,
    Gap,
    Impact,
    Likelihood,
    RemediationWindow,
    Risk,
    RiskLevel,
    Severity,
)

log = logging.getLogger(__name__)

# Most severe first
SEVERITY_ORDER = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)
SEVERITY_RANK = {s: len(SEVERITY_ORDER) - i for i, s in enumerate(SEVERITY_ORDER)}

LIKELIHOOD_RANK = {lvl: i + 1 for i, lvl in enumerate(Likelihood)}
IMPACT_RANK = {lvl: i + 1 for i, lvl in enumerate(Impact)}
_IMPACTS = list(Impact)

SEVERITY_LIKELIHOOD = {
    Severity.CRITICAL: Likelihood.CERTAIN,
    Severity.HIGH: Likelihood.LIKELY,
    Severity.MEDIUM: Likelihood.POSSIBLE,
    Severity.LOW: Likelihood.UNLIKELY,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Per-answer classification
# ---------------------------------------------------------------------------


def severity_for_score(score: float) -> Severity:
    """Score band: 0 -> CRITICAL, 1 -> HIGH, 2 -> MEDIUM, 3+ -> LOW."""
    if score < 0.5:
        return Severity.CRITICAL
    if score < 1.5:
        return Severity.HIGH
    if score < 2.5:
        return Severity.MEDIUM
    return Severity.LOW


def calculate_gap_severity(answer: Answer) -> Severity:
    """Score band, escalated one level for foundational questions in regulated sections."""
    severity = severity_for_score(answer.score or 0)
    if answer.question.is_foundational and answer.section.regulatory_priority.strip():
        idx = SEVERITY_ORDER.index(severity)
        severity = SEVERITY_ORDER[max(0, idx - 1)]
    return severity


def calculate_priority_score(score: float, is_foundational: bool, section_weight: float) -> float:
    """Urgency on 1-10: lower answers, foundational questions and heavy sections rank higher."""
    priority = (5 - score) * 2
    if is_foundational:
        priority += 2
    priority += section_weight * 5
    return max(1.0, min(10.0, priority))


def priority_to_window(priority: int) -> RemediationWindow:
    if priority >= 9:
        return RemediationWindow.IMMEDIATE
    if priority >= 6:
        return RemediationWindow.SHORT_TERM
    if priority >= 3:
        return RemediationWindow.MEDIUM_TERM
    return RemediationWindow.LONG_TERM


def estimate_effort(section_weight: float, is_foundational: bool, score: float) -> EffortRange:
    if section_weight > 0.25 and is_foundational and score < 2.0:
        return EffortRange.LARGE
    if 0.15 <= section_weight <= 0.25 or is_foundational:
        return EffortRange.MEDIUM
    return EffortRange.SMALL


def estimate_cost(
    effort: EffortRange, severity: Severity, section_weight: float, is_foundational: bool,
) -> CostRange:
    if effort is EffortRange.LARGE and severity is Severity.CRITICAL:
        return CostRange.OVER_250K if section_weight > 0.20 else CostRange.RANGE_100K_250K
    if effort is EffortRange.LARGE or (effort is EffortRange.MEDIUM and is_foundational):
        return CostRange.RANGE_50K_100K
    if effort is EffortRange.MEDIUM or is_foundational:
        return CostRange.RANGE_10K_50K
    return CostRange.UNDER_10K


# ---------------------------------------------------------------------------
# Risk grid
# ---------------------------------------------------------------------------


def risk_matrix_score(likelihood: Likelihood, impact: Impact) -> int:
    return LIKELIHOOD_RANK[likelihood] * IMPACT_RANK[impact]


def risk_level_for(likelihood: Likelihood, impact: Impact) -> RiskLevel:
    """5x5 grid lookup: <5 LOW, 5-9 MEDIUM, 10-14 HIGH, >=15 CRITICAL."""
    score = risk_matrix_score(likelihood, impact)
    if score >= 15:
        return RiskLevel.CRITICAL
    if score >= 10:
        return RiskLevel.HIGH
    if score >= 5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def impact_for(section_weight: float, is_foundational: bool) -> Impact:
    if section_weight > 0.25:
        impact = Impact.MAJOR
    elif section_weight >= 0.15:
        impact = Impact.MODERATE
    elif section_weight >= 0.05:
        impact = Impact.MINOR
    else:
        impact = Impact.NEGLIGIBLE
    if is_foundational:
        impact = _IMPACTS[min(len(_IMPACTS) - 1, _IMPACTS.index(impact) + 1)]
    return impact


def control_effectiveness(answers: Iterable[Answer]) -> float | None:
    """Mean evidence-adjusted score as a percentage over answers citing classified evidence."""
    values = [
        (a.score or 0) / 5 * get_multiplier(a.evidence_tier) * 100
        for a in answers if parse_tier(a.evidence_tier) is not None
    ]
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def average_control_effectiveness(risks: Iterable[Risk]) -> float | None:
    values = [r.control_effectiveness for r in risks if r.control_effectiveness is not None]
    if not values:
        return None
    return sum(values) / len(values)


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def _worst(answers: list[Answer]) -> Answer:
    return min(answers, key=lambda a: (a.score, -a.section.weight, a.question.id))


def _build_gap(category: str, answers: list[Answer]) -> Gap:
    worst = _worst(answers)
    severity = min((calculate_gap_severity(a) for a in answers), key=SEVERITY_ORDER.index)
    priority_score = max(
        calculate_priority_score(a.score, a.question.is_foundational, a.section.weight)
        for a in answers
    )
    priority = max(1, min(10, round_half_up(priority_score)))
    is_foundational = any(a.question.is_foundational for a in answers)
    effort = estimate_effort(worst.section.weight, worst.question.is_foundational, worst.score)
    cost = estimate_cost(effort, severity, worst.section.weight, worst.question.is_foundational)
    return Gap(
        category=category,
        title=f"{category}: {worst.question.text}" if worst.question.text else category,
        severity=severity,
        priority=priority,
        priority_score=round(priority_score, 2),
        remediation_window=priority_to_window(priority),
        estimated_effort=effort,
        estimated_cost=cost,
        is_foundational=is_foundational,
        lowest_score=worst.score,
        question_ids=tuple(sorted(a.question.id for a in answers)),
    )


def _build_risk(gap: Gap, answers: list[Answer]) -> Risk:
    worst = _worst(answers)
    likelihood = SEVERITY_LIKELIHOOD[gap.severity]
    impact = impact_for(worst.section.weight, worst.question.is_foundational)
    return Risk(
        category=gap.category,
        title=f"Unremediated {gap.category.lower()} gap",
        likelihood=likelihood,
        impact=impact,
        risk_level=risk_level_for(likelihood, impact),
        control_effectiveness=control_effectiveness(answers),
    )


def gap_sort_key(gap: Gap) -> tuple[int, int, str]:
    return (-gap.priority, -SEVERITY_RANK[gap.severity], gap.category)


def derive_gaps_and_risks(
    answers: Iterable[Answer], settings: Settings | None = None,
) -> tuple[list[Gap], list[Risk]]:
    """Derive one gap and one risk per category of below-threshold answers."""
    threshold = (settings or get_settings()).gap_threshold
    groups: dict[str, list[Answer]] = defaultdict(list)
    for a in answers:
        if a.score is not None and a.score < threshold:
            groups[a.category].append(a)

    gaps = sorted((_build_gap(cat, grp) for cat, grp in groups.items()), key=gap_sort_key)
    risks = [_build_risk(g, groups[g.category]) for g in gaps]
    if gaps:
        log.info("Derived %d gaps (%d critical)", len(gaps),
                 sum(1 for g in gaps if g.severity is Severity.CRITICAL))
    return gaps, risks
