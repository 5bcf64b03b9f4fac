"""Shared business logic for the riskmatch API and batch jobs.

Loads ORM rows, converts them into the immutable core records, runs the pure
scoring core and writes derived gaps/risks back.  Functions that mutate the
session leave committing to the caller.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from riskmatch.aggregate import ValidationError, calculate_score_stats, validate_weights
from riskmatch.config import Settings, get_settings
from riskmatch.gaps import average_control_effectiveness, derive_gaps_and_risks
from riskmatch.matching import rank_vendor_matches
from riskmatch.models import (
    Assessment,
    AssessmentAnswer,
    AssessmentGap,
    AssessmentPriorities,
    AssessmentRisk,
    Template,
    TemplateQuestion,
    TemplateSection,
    VendorProfile,
)
from riskmatch.scorer import AssessmentScore, compute_risk_band, score_assessment
from riskmatch.strategy import build_strategy_matrix
from riskmatch.types import (
    Answer,
    AssessmentStatus,
    BudgetRange,
    CompanySize,
    CostRange,
    DeploymentPreference,
    EffortRange,
    Gap,
    Impact,
    ImplementationUrgency,
    Likelihood,
    OrganizationPriorities,
    Question,
    RemediationWindow,
    Risk,
    RiskLevel,
    Section,
    Severity,
    StrategyMatrix,
    Vendor,
    VendorMatchScore,
    VendorStatus,
    parse_enum,
)
from riskmatch.utils import json_list

log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """A referenced row does not exist."""


class AssessmentStateError(RuntimeError):
    """The assessment is not in a state that allows the operation."""


def get_entity(session: Session, model, entity_id: int):
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


def require_entity(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = get_entity(session, model, entity_id)
    if obj is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    return obj


# ---------------------------------------------------------------------------
# ORM -> core records
# ---------------------------------------------------------------------------


def to_core_section(row: TemplateSection) -> Section:
    return Section(
        id=str(row.id), title=row.title, weight=row.weight,
        regulatory_priority=row.regulatory_priority or "",
    )


def to_core_question(row: TemplateQuestion) -> Question:
    return Question(
        id=str(row.id), text=row.text, weight=row.weight,
        category_tag=row.category_tag or "", is_foundational=bool(row.is_foundational),
    )


def to_core_answers(assessment: Assessment) -> list[Answer]:
    """One core answer per template question; questions without a row count as skipped."""
    by_question = {a.question_id: a for a in assessment.answers}
    answers: list[Answer] = []
    for section_row in assessment.template.sections:
        section = to_core_section(section_row)
        for q_row in section_row.questions:
            row = by_question.get(q_row.id)
            answers.append(Answer(
                question=to_core_question(q_row),
                section=section,
                score=row.score if row else None,
                evidence_tier=row.evidence_tier if row else None,
                explanation=row.explanation if row else "",
                source_reference=row.source_reference if row else "",
            ))
    return answers


def to_core_vendor(row: VendorProfile) -> Vendor:
    segments = (parse_enum(CompanySize, s) for s in json_list(row.target_segments_json))
    return Vendor(
        id=str(row.id),
        name=row.name,
        categories=json_list(row.categories_json),
        target_segments=tuple(s for s in segments if s is not None),
        geographic_coverage=json_list(row.geographic_coverage_json),
        pricing_range=parse_enum(BudgetRange, row.pricing_range),
        features=json_list(row.features_json),
        deployment_options=row.deployment_options or "",
        implementation_timeline=row.implementation_timeline,
        rating=row.rating or 0.0,
        review_count=row.review_count or 0,
        status=parse_enum(VendorStatus, row.status) or VendorStatus.PENDING,
    )


def to_core_priorities(row: AssessmentPriorities | None) -> OrganizationPriorities:
    if row is None:
        return OrganizationPriorities()
    return OrganizationPriorities(
        ranked_priorities=json_list(row.ranked_priorities_json)[:3],
        budget_range=parse_enum(BudgetRange, row.budget_range),
        must_have_features=json_list(row.must_have_features_json),
        deployment_preference=parse_enum(DeploymentPreference, row.deployment_preference),
        implementation_urgency=parse_enum(ImplementationUrgency, row.implementation_urgency),
        company_size=parse_enum(CompanySize, row.company_size),
        jurisdictions=json_list(row.jurisdictions_json),
    )


def to_core_gap(row: AssessmentGap) -> Gap:
    return Gap(
        category=row.category,
        title=row.title,
        severity=Severity(row.severity),
        priority=row.priority,
        priority_score=row.priority_score,
        remediation_window=RemediationWindow(row.remediation_window),
        estimated_effort=parse_enum(EffortRange, row.estimated_effort),
        estimated_cost=parse_enum(CostRange, row.estimated_cost),
        is_foundational=bool(row.is_foundational),
        lowest_score=row.lowest_score,
        question_ids=json_list(row.question_ids_json),
    )


def to_core_risk(row: AssessmentRisk) -> Risk:
    return Risk(
        category=row.category, title=row.title,
        likelihood=Likelihood(row.likelihood), impact=Impact(row.impact),
        risk_level=RiskLevel(row.risk_level),
        control_effectiveness=row.control_effectiveness,
    )


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def template_detail(template: Template) -> dict:
    return {
        "id": template.id, "name": template.name, "category": template.category,
        "sections": [
            {
                "id": s.id, "title": s.title, "weight": s.weight,
                "regulatory_priority": s.regulatory_priority,
                "questions": [
                    {"id": q.id, "text": q.text, "weight": q.weight,
                     "category_tag": q.category_tag, "is_foundational": q.is_foundational}
                    for q in s.questions
                ],
            }
            for s in template.sections
        ],
        "weights_valid": template_weights_valid(template),
    }


def template_weights_valid(template: Template) -> bool:
    """True if section weights and each section's question weights sum to 1.0."""
    if not validate_weights([s.weight for s in template.sections]):
        return False
    return all(validate_weights([q.weight for q in s.questions]) for s in template.sections if s.questions)


def gap_summary(row: AssessmentGap) -> dict:
    return {
        "id": row.id, "category": row.category, "title": row.title,
        "severity": row.severity, "priority": row.priority,
        "priority_score": row.priority_score, "remediation_window": row.remediation_window,
        "estimated_effort": row.estimated_effort, "estimated_cost": row.estimated_cost,
        "is_foundational": row.is_foundational, "lowest_score": row.lowest_score,
        "question_ids": list(json_list(row.question_ids_json)),
    }


def risk_summary(row: AssessmentRisk) -> dict:
    return {
        "id": row.id, "category": row.category, "title": row.title,
        "likelihood": row.likelihood, "impact": row.impact, "risk_level": row.risk_level,
        "control_effectiveness": row.control_effectiveness,
    }


def _gap_order(row: AssessmentGap) -> tuple:
    return (-row.priority, [s.value for s in Severity].index(row.severity), row.category)


def assessment_detail(assessment: Assessment) -> dict:
    risks = [to_core_risk(r) for r in assessment.risks]
    return {
        "id": assessment.id,
        "template_id": assessment.template_id,
        "template_name": assessment.template.name,
        "organization_name": assessment.organization_name,
        "status": assessment.status,
        "risk_score": assessment.risk_score,
        "risk_band": compute_risk_band(assessment.risk_score) if assessment.risk_score is not None else None,
        "error": assessment.error,
        "answer_count": sum(1 for a in assessment.answers if a.score is not None),
        "completed_at": assessment.completed_at.isoformat() if assessment.completed_at else None,
        "gaps": [gap_summary(g) for g in sorted(assessment.gaps, key=_gap_order)],
        "risks": [risk_summary(r) for r in assessment.risks],
        "average_control_effectiveness": average_control_effectiveness(risks),
    }


def vendor_summary(row: VendorProfile) -> dict:
    return {
        "id": row.id, "name": row.name, "status": row.status,
        "categories": list(json_list(row.categories_json)),
        "target_segments": list(json_list(row.target_segments_json)),
        "geographic_coverage": list(json_list(row.geographic_coverage_json)),
        "pricing_range": row.pricing_range,
        "features": list(json_list(row.features_json)),
        "deployment_options": row.deployment_options,
        "implementation_timeline": row.implementation_timeline,
        "rating": row.rating, "review_count": row.review_count,
    }


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def create_template(session: Session, data: dict[str, Any]) -> Template:
    template = Template(name=data["name"], category=data.get("category", ""))
    for s_idx, s in enumerate(data.get("sections", [])):
        section = TemplateSection(
            title=s["title"], weight=s["weight"],
            regulatory_priority=s.get("regulatory_priority", ""), order=s_idx,
        )
        for q_idx, q in enumerate(s.get("questions", [])):
            section.questions.append(TemplateQuestion(
                text=q["text"], weight=q["weight"], category_tag=q.get("category_tag", ""),
                is_foundational=q.get("is_foundational", False), order=q_idx,
            ))
        template.sections.append(section)
    session.add(template)
    return template


def replace_answers(session: Session, assessment: Assessment, answers: list[dict[str, Any]]) -> None:
    """Swap the full answer set of an analysis run (answers are never patched piecemeal)."""
    if assessment.status == AssessmentStatus.COMPLETED.value:
        raise AssessmentStateError(f"Assessment {assessment.id} is completed; answers are frozen")
    counts = Counter(a["question_id"] for a in answers)
    dupes = sorted(qid for qid, n in counts.items() if n > 1)
    if dupes:
        raise ValidationError(f"Duplicate answers for questions: {dupes}")
    valid_ids = {q.id for s in assessment.template.sections for q in s.questions}
    unknown = sorted({a["question_id"] for a in answers} - valid_ids)
    if unknown:
        raise ValidationError(f"Questions not in template: {unknown}")
    assessment.answers.clear()
    session.flush()
    for a in answers:
        assessment.answers.append(AssessmentAnswer(
            question_id=a["question_id"], score=a.get("score"),
            evidence_tier=a.get("evidence_tier"), explanation=a.get("explanation", ""),
            source_reference=a.get("source_reference", ""),
        ))
    assessment.status = AssessmentStatus.IN_PROGRESS.value
    assessment.error = ""


def set_priorities(session: Session, assessment: Assessment, data: dict[str, Any]) -> AssessmentPriorities:
    row = assessment.priorities
    if row is None:
        row = AssessmentPriorities(assessment_id=assessment.id)
        session.add(row)
        assessment.priorities = row
    row.ranked_priorities_json = json.dumps(data.get("ranked_priorities", []))
    row.budget_range = data.get("budget_range")
    row.must_have_features_json = json.dumps(data.get("must_have_features", []))
    row.deployment_preference = data.get("deployment_preference")
    row.implementation_urgency = data.get("implementation_urgency")
    row.company_size = data.get("company_size")
    row.jurisdictions_json = json.dumps(data.get("jurisdictions", []))
    return row


def create_vendor(session: Session, data: dict[str, Any]) -> VendorProfile:
    row = VendorProfile(
        name=data["name"], status=data.get("status", VendorStatus.APPROVED.value),
        categories_json=json.dumps(data.get("categories", [])),
        target_segments_json=json.dumps(data.get("target_segments", [])),
        geographic_coverage_json=json.dumps(data.get("geographic_coverage", [])),
        pricing_range=data.get("pricing_range"),
        features_json=json.dumps(data.get("features", [])),
        deployment_options=data.get("deployment_options", ""),
        implementation_timeline=data.get("implementation_timeline"),
        rating=data.get("rating", 0.0), review_count=data.get("review_count", 0),
    )
    session.add(row)
    return row


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def run_assessment_scoring(
    session: Session, assessment: Assessment, settings: Settings | None = None,
) -> AssessmentScore:
    """Score an assessment, replace its gaps/risks and mark it COMPLETED (caller must commit).

    A completed assessment's score is history and cannot be recomputed here.
    """
    if assessment.status == AssessmentStatus.COMPLETED.value:
        raise AssessmentStateError(f"Assessment {assessment.id} is already completed")
    if not any(a.score is not None for a in assessment.answers):
        raise AssessmentStateError(f"Assessment {assessment.id} has no analyzed answers")

    answers = to_core_answers(assessment)
    result = score_assessment(answers)
    gaps, risks = derive_gaps_and_risks(answers, settings)

    session.execute(delete(AssessmentGap).where(AssessmentGap.assessment_id == assessment.id))
    session.execute(delete(AssessmentRisk).where(AssessmentRisk.assessment_id == assessment.id))
    for g in gaps:
        session.add(AssessmentGap(
            assessment_id=assessment.id, category=g.category, title=g.title,
            severity=g.severity.value, priority=g.priority, priority_score=g.priority_score,
            remediation_window=g.remediation_window.value,
            estimated_effort=g.estimated_effort.value if g.estimated_effort else None,
            estimated_cost=g.estimated_cost.value if g.estimated_cost else None,
            is_foundational=g.is_foundational, lowest_score=g.lowest_score,
            question_ids_json=json.dumps(list(g.question_ids)),
        ))
    for r in risks:
        session.add(AssessmentRisk(
            assessment_id=assessment.id, category=r.category, title=r.title,
            likelihood=r.likelihood.value, impact=r.impact.value, risk_level=r.risk_level.value,
            control_effectiveness=r.control_effectiveness,
        ))

    assessment.risk_score = result.risk_score
    assessment.status = AssessmentStatus.COMPLETED.value
    assessment.completed_at = datetime.now(UTC)
    assessment.error = ""
    session.flush()
    session.expire(assessment, ["gaps", "risks"])
    log.info("Scored assessment %s: %.2f (%s), %d gaps",
             assessment.id, result.risk_score, result.risk_band, len(gaps))
    return result


def score_isolated(session: Session, assessment_id: int, settings: Settings | None = None) -> str | None:
    """Score and commit one assessment; on failure roll back, mark it FAILED and return the error."""
    try:
        assessment = require_entity(session, Assessment, assessment_id, "Assessment")
        run_assessment_scoring(session, assessment, settings)
        session.commit()
        return None
    except Exception as exc:
        log.warning("Scoring failed for assessment %s: %s", assessment_id, exc)
        session.rollback()
        assessment = get_entity(session, Assessment, assessment_id)
        if assessment is not None and assessment.status != AssessmentStatus.COMPLETED.value:
            assessment.status = AssessmentStatus.FAILED.value
            assessment.error = str(exc)
            session.commit()
        return str(exc)


def pending_assessment_ids(session: Session) -> list[int]:
    return list(session.execute(
        select(Assessment.id)
        .where(Assessment.status == AssessmentStatus.IN_PROGRESS.value)
        .order_by(Assessment.id)
    ).scalars())


def score_assessments(
    session: Session, assessment_ids: list[int] | None = None, settings: Settings | None = None,
) -> dict[str, Any]:
    """Score several assessments; one failure never blocks the rest."""
    if assessment_ids is None:
        assessment_ids = pending_assessment_ids(session)
    errors: dict[int, str] = {}
    for assessment_id in assessment_ids:
        err = score_isolated(session, assessment_id, settings)
        if err is not None:
            errors[assessment_id] = err
    return {"scored": len(assessment_ids) - len(errors), "failed": len(errors), "errors": errors}


def breakdown(assessment: Assessment) -> AssessmentScore:
    return score_assessment(to_core_answers(assessment))


def approved_vendors(session: Session) -> list[Vendor]:
    rows = session.execute(
        select(VendorProfile).where(VendorProfile.status == VendorStatus.APPROVED.value)
    ).scalars().all()
    return [to_core_vendor(r) for r in rows]


def strategy_matrix_for(session: Session, assessment: Assessment) -> StrategyMatrix:
    gaps = [to_core_gap(g) for g in assessment.gaps]
    return build_strategy_matrix(gaps, approved_vendors(session))


def vendor_matches_for(
    session: Session, assessment: Assessment, limit: int | None = None, min_score: float | None = None,
) -> list[VendorMatchScore]:
    gaps = [to_core_gap(g) for g in assessment.gaps]
    priorities = to_core_priorities(assessment.priorities)
    if min_score is None:
        min_score = get_settings().match_threshold
    return rank_vendor_matches(gaps, priorities, approved_vendors(session), limit=limit, min_score=min_score)


def compute_stats(session: Session) -> dict:
    assessments = session.execute(select(Assessment)).scalars().all()
    by_status: Counter[str] = Counter()
    by_band: Counter[str] = Counter()
    gaps_by_severity: Counter[str] = Counter()
    risks_by_level: Counter[str] = Counter()
    scores: list[float] = []
    risks: list[Risk] = []
    for a in assessments:
        by_status[a.status] += 1
        if a.risk_score is not None:
            scores.append(a.risk_score)
            by_band[compute_risk_band(a.risk_score)] += 1
        for g in a.gaps:
            gaps_by_severity[g.severity] += 1
        for r in a.risks:
            risks_by_level[r.risk_level] += 1
            risks.append(to_core_risk(r))
    return {
        "total": len(assessments),
        "completed": by_status.get(AssessmentStatus.COMPLETED.value, 0),
        "by_status": dict(by_status), "by_risk_band": dict(by_band),
        "gaps_by_severity": dict(gaps_by_severity), "risks_by_level": dict(risks_by_level),
        "risk_score_stats": calculate_score_stats(scores).to_dict(),
        "average_control_effectiveness": average_control_effectiveness(risks),
    }
