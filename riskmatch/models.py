from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Template(Base):
    __tablename__ = "templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="")  # FINANCIAL_CRIME | TRADE_COMPLIANCE | ...

    sections: Mapped[list[TemplateSection]] = relationship(
        "TemplateSection", back_populates="template", cascade="all, delete-orphan",
        order_by="TemplateSection.order",
    )


class TemplateSection(Base):
    __tablename__ = "template_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(Integer, ForeignKey("templates.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    weight: Mapped[float] = mapped_column(Float, default=0.0)
    regulatory_priority: Mapped[str] = mapped_column(Text, default="")
    order: Mapped[int] = mapped_column(Integer, default=0)

    template: Mapped[Template] = relationship("Template", back_populates="sections")
    questions: Mapped[list[TemplateQuestion]] = relationship(
        "TemplateQuestion", back_populates="section", cascade="all, delete-orphan",
        order_by="TemplateQuestion.order",
    )


class TemplateQuestion(Base):
    __tablename__ = "template_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    section_id: Mapped[int] = mapped_column(Integer, ForeignKey("template_sections.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, default="")
    weight: Mapped[float] = mapped_column(Float, default=0.0)
    category_tag: Mapped[str] = mapped_column(String(100), default="")
    is_foundational: Mapped[bool] = mapped_column(Boolean, default=False)
    order: Mapped[int] = mapped_column(Integer, default=0)

    section: Mapped[TemplateSection] = relationship("TemplateSection", back_populates="questions")


class Assessment(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(Integer, ForeignKey("templates.id"), nullable=False)
    organization_name: Mapped[str] = mapped_column(String(300), default="")
    status: Mapped[str] = mapped_column(String(30), default="DRAFT")  # DRAFT | IN_PROGRESS | COMPLETED | FAILED
    risk_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    error: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    template: Mapped[Template] = relationship("Template")
    answers: Mapped[list[AssessmentAnswer]] = relationship(
        "AssessmentAnswer", back_populates="assessment", cascade="all, delete-orphan",
    )
    gaps: Mapped[list[AssessmentGap]] = relationship(
        "AssessmentGap", back_populates="assessment", cascade="all, delete-orphan",
    )
    risks: Mapped[list[AssessmentRisk]] = relationship(
        "AssessmentRisk", back_populates="assessment", cascade="all, delete-orphan",
    )
    priorities: Mapped[AssessmentPriorities | None] = relationship(
        "AssessmentPriorities", back_populates="assessment", cascade="all, delete-orphan",
        uselist=False,
    )


class AssessmentAnswer(Base):
    __tablename__ = "assessment_answers"
    __table_args__ = (UniqueConstraint("assessment_id", "question_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = mapped_column(Integer, ForeignKey("assessments.id"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("template_questions.id"), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0-5, NULL = skipped
    evidence_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)  # TIER_0 | TIER_1 | TIER_2
    explanation: Mapped[str] = mapped_column(Text, default="")
    source_reference: Mapped[str] = mapped_column(Text, default="")
    analyzed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="answers")
    question: Mapped[TemplateQuestion] = relationship("TemplateQuestion")


class AssessmentGap(Base):
    __tablename__ = "assessment_gaps"
    __table_args__ = (UniqueConstraint("assessment_id", "category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = mapped_column(Integer, ForeignKey("assessments.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(Text, default="")
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    priority_score: Mapped[float] = mapped_column(Float, default=0.0)
    remediation_window: Mapped[str] = mapped_column(String(20), default="")
    estimated_effort: Mapped[str | None] = mapped_column(String(20), nullable=True)
    estimated_cost: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_foundational: Mapped[bool] = mapped_column(Boolean, default=False)
    lowest_score: Mapped[float] = mapped_column(Float, default=0.0)
    question_ids_json: Mapped[str] = mapped_column(Text, default="[]")

    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="gaps")


class AssessmentRisk(Base):
    __tablename__ = "assessment_risks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = mapped_column(Integer, ForeignKey("assessments.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(Text, default="")
    likelihood: Mapped[str] = mapped_column(String(20), nullable=False)
    impact: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)
    control_effectiveness: Mapped[float | None] = mapped_column(Float, nullable=True)

    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="risks")


class AssessmentPriorities(Base):
    __tablename__ = "assessment_priorities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("assessments.id"), nullable=False, unique=True,
    )
    ranked_priorities_json: Mapped[str] = mapped_column(Text, default="[]")
    budget_range: Mapped[str | None] = mapped_column(String(30), nullable=True)
    must_have_features_json: Mapped[str] = mapped_column(Text, default="[]")
    deployment_preference: Mapped[str | None] = mapped_column(String(20), nullable=True)
    implementation_urgency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    company_size: Mapped[str | None] = mapped_column(String(20), nullable=True)
    jurisdictions_json: Mapped[str] = mapped_column(Text, default="[]")

    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="priorities")


class VendorProfile(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="APPROVED")
    categories_json: Mapped[str] = mapped_column(Text, default="[]")
    target_segments_json: Mapped[str] = mapped_column(Text, default="[]")
    geographic_coverage_json: Mapped[str] = mapped_column(Text, default="[]")
    pricing_range: Mapped[str | None] = mapped_column(String(30), nullable=True)
    features_json: Mapped[str] = mapped_column(Text, default="[]")
    deployment_options: Mapped[str] = mapped_column(Text, default="")
    implementation_timeline: Mapped[int | None] = mapped_column(Integer, nullable=True)  # days
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
