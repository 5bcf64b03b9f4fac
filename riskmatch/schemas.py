"""Pydantic request/response schemas for the riskmatch API."""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from riskmatch.tiers import parse_tier
from riskmatch.types import (
    BudgetRange,
    CompanySize,
    DeploymentPreference,
    ImplementationUrgency,
    VendorStatus,
    parse_enum,
)


def _enum_name(enum_cls, value: str | None) -> str | None:
    if value is None or value == "":
        return None
    parsed = parse_enum(enum_cls, value)
    if parsed is None:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"must be one of: {allowed}")
    return parsed.value


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class QuestionIn(BaseModel):
    text: str
    weight: float = Field(ge=0)
    category_tag: str = ""
    is_foundational: bool = False


class SectionIn(BaseModel):
    title: str
    weight: float = Field(ge=0)
    regulatory_priority: str = ""
    questions: list[QuestionIn] = []


class TemplateCreate(BaseModel):
    name: str
    category: str = ""
    sections: list[SectionIn] = []


class QuestionOut(BaseModel):
    id: int
    text: str
    weight: float
    category_tag: str
    is_foundational: bool


class SectionOut(BaseModel):
    id: int
    title: str
    weight: float
    regulatory_priority: str
    questions: list[QuestionOut] = []


class TemplateOut(BaseModel):
    id: int
    name: str
    category: str
    sections: list[SectionOut] = []
    weights_valid: bool


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


class AssessmentCreate(BaseModel):
    template_id: int
    organization_name: str = ""


class AnswerIn(BaseModel):
    question_id: int
    score: float | None = Field(None, ge=0, le=5)
    evidence_tier: str | None = None
    explanation: str = ""
    source_reference: str = ""

    @field_validator("evidence_tier")
    @classmethod
    def tier_or_none(cls, v: str | None) -> str | None:
        # Unknown tiers are stored as NULL and scored as the weakest tier.
        tier = parse_tier(v)
        return tier.value if tier else None


class AnswersReplace(BaseModel):
    answers: list[AnswerIn]


class GapOut(BaseModel):
    id: int
    category: str
    title: str
    severity: str
    priority: int
    priority_score: float
    remediation_window: str
    estimated_effort: str | None = None
    estimated_cost: str | None = None
    is_foundational: bool
    lowest_score: float
    question_ids: list[str] = []


class RiskOut(BaseModel):
    id: int
    category: str
    title: str
    likelihood: str
    impact: str
    risk_level: str
    control_effectiveness: float | None = None


class AssessmentOut(BaseModel):
    id: int
    template_id: int
    template_name: str
    organization_name: str
    status: str
    risk_score: float | None = None
    risk_band: str | None = None
    error: str = ""
    answer_count: int
    completed_at: str | None = None
    gaps: list[GapOut] = []
    risks: list[RiskOut] = []
    average_control_effectiveness: float | None = None


class PrioritiesIn(BaseModel):
    ranked_priorities: list[str] = Field(default_factory=list, max_length=3)
    budget_range: str | None = None
    must_have_features: list[str] = Field(default_factory=list, max_length=5)
    deployment_preference: str | None = None
    implementation_urgency: str | None = None
    company_size: str | None = None
    jurisdictions: list[str] = []

    @field_validator("budget_range")
    @classmethod
    def _budget(cls, v: str | None) -> str | None:
        return _enum_name(BudgetRange, v)

    @field_validator("deployment_preference")
    @classmethod
    def _deployment(cls, v: str | None) -> str | None:
        return _enum_name(DeploymentPreference, v)

    @field_validator("implementation_urgency")
    @classmethod
    def _urgency(cls, v: str | None) -> str | None:
        return _enum_name(ImplementationUrgency, v)

    @field_validator("company_size")
    @classmethod
    def _size(cls, v: str | None) -> str | None:
        return _enum_name(CompanySize, v)


class BatchScoreRequest(BaseModel):
    assessment_ids: list[int] | None = None


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------


class VendorIn(BaseModel):
    name: str
    status: str = "APPROVED"
    categories: list[str] = []
    target_segments: list[str] = []
    geographic_coverage: list[str] = []
    pricing_range: str | None = None
    features: list[str] = []
    deployment_options: str = ""
    implementation_timeline: int | None = Field(None, ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        return _enum_name(VendorStatus, v) or VendorStatus.APPROVED.value

    @field_validator("pricing_range")
    @classmethod
    def _pricing(cls, v: str | None) -> str | None:
        return _enum_name(BudgetRange, v)

    @field_validator("target_segments")
    @classmethod
    def _segments(cls, v: list[str]) -> list[str]:
        return [s for s in (_enum_name(CompanySize, x) for x in v) if s]


class VendorOut(VendorIn):
    id: int


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class StatsOut(BaseModel):
    total: int
    completed: int
    by_status: dict[str, int]
    by_risk_band: dict[str, int]
    gaps_by_severity: dict[str, int]
    risks_by_level: dict[str, int]
    risk_score_stats: dict[str, float | int]
    average_control_effectiveness: float | None = None
