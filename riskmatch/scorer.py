"""Answer scoring: weighted aggregation of evidence-adjusted answer scores.

Architecture
------------
Every answered question contributes::

    contribution = score * question.weight * section.weight * tier_multiplier

The assessment score is the weighted average of ``score * tier_multiplier``
using ``question.weight * section.weight`` as the weight, i.e. the sum of
contributions divided by the sum of combined weights over *answered*
questions, rescaled from the 0-5 answer scale onto 0-100.

- Skipped questions (``score is None``) are left out of both sides of the
  division; they never count as zero.
- ``is_foundational`` does not touch the score.  The gap deriver reads it.

Because section weights multiply question weights, a few low answers in a
heavy section outweigh many perfect answers in light sections.  Two
assessments with similar raw averages can therefore land far apart; the
per-section breakdown from :func:`score_assessment` shows where.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Iterable

from riskmatch.aggregate import ScoreStats, calculate_score_stats, scale_score, weighted_average
from riskmatch.tiers import get_multiplier, parse_tier
from riskmatch.types import Answer, EvidenceTier

log = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 5.0


# ---------------------------------------------------------------------------
# Per-question
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    section_id: str
    raw_score: float
    evidence_tier: EvidenceTier
    tier_multiplier: float
    final_score: float
    combined_weight: float
    weighted_contribution: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id, "section_id": self.section_id,
            "raw_score": self.raw_score, "evidence_tier": self.evidence_tier.value,
            "tier_multiplier": self.tier_multiplier, "final_score": self.final_score,
            "combined_weight": self.combined_weight,
            "weighted_contribution": self.weighted_contribution,
        }


def score_answer(answer: Answer) -> QuestionScore:
    """Score one answered question. Raises ``ValueError`` for a skipped one."""
    if answer.score is None:
        raise ValueError(f"Question {answer.question.id} was not answered")
    multiplier = get_multiplier(answer.evidence_tier)
    tier = parse_tier(answer.evidence_tier) or EvidenceTier.TIER_0
    combined = answer.question.weight * answer.section.weight
    final = answer.score * multiplier
    return QuestionScore(
        question_id=answer.question.id,
        section_id=answer.section.id,
        raw_score=answer.score,
        evidence_tier=tier,
        tier_multiplier=multiplier,
        final_score=final,
        combined_weight=combined,
        weighted_contribution=final * combined,
    )


def _answered(answers: Iterable[Answer]) -> list[Answer]:
    return [a for a in answers if a.answered]


def _to_percent(question_scores: list[QuestionScore]) -> tuple[float, float]:
    """Return (weighted average on 0-5, same rescaled to 0-100)."""
    avg = weighted_average(
        [q.final_score for q in question_scores],
        [q.combined_weight for q in question_scores],
    )
    return avg, scale_score(avg, SCORE_MIN, SCORE_MAX, 0, 100)


# ---------------------------------------------------------------------------
# Assessment level
# ---------------------------------------------------------------------------


def compute_assessment_risk_score(answers: Iterable[Answer]) -> float:
    """Aggregate answers into the 0-100 assessment score (2 decimals)."""
    scores = [score_answer(a) for a in _answered(answers)]
    _, percent = _to_percent(scores)
    return round(percent, 2)


def compute_risk_band(score: float) -> str:
    if score >= 80:
        return "Low"
    if score >= 60:
        return "Medium"
    if score >= 40:
        return "High"
    return "Critical"


@dataclass(frozen=True)
class SectionScore:
    section_id: str
    title: str
    weight: float
    score: float  # 0-5
    scaled_score: float  # 0-100
    answered: int
    skipped: int
    question_scores: tuple[QuestionScore, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "section_id": self.section_id, "title": self.title, "weight": self.weight,
            "score": self.score, "scaled_score": self.scaled_score,
            "answered": self.answered, "skipped": self.skipped,
            "question_scores": [q.to_dict() for q in self.question_scores],
        }


@dataclass(frozen=True)
class AssessmentScore:
    risk_score: float
    risk_band: str
    sections: tuple[SectionScore, ...]
    answer_stats: ScoreStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.risk_score, "risk_band": self.risk_band,
            "sections": [s.to_dict() for s in self.sections],
            "answer_stats": self.answer_stats.to_dict(),
        }


def score_assessment(answers: Iterable[Answer]) -> AssessmentScore:
    """Score an assessment and keep the per-section breakdown.

    Sections are listed in the order they first appear in *answers*.
    """
    answers = list(answers)
    by_section: OrderedDict[str, list[Answer]] = OrderedDict()
    for a in answers:
        by_section.setdefault(a.section.id, []).append(a)

    sections: list[SectionScore] = []
    for section_id, section_answers in by_section.items():
        section = section_answers[0].section
        answered = _answered(section_answers)
        q_scores = [score_answer(a) for a in answered]
        if not q_scores:
            log.warning("Section %r has no answered questions", section.title)
        # Section weight is constant inside a section, so question weights alone decide.
        avg = weighted_average(
            [q.final_score for q in q_scores], [a.question.weight for a in answered],
        )
        sections.append(SectionScore(
            section_id=section_id,
            title=section.title,
            weight=section.weight,
            score=round(avg, 4),
            scaled_score=round(scale_score(avg, SCORE_MIN, SCORE_MAX, 0, 100), 2),
            answered=len(q_scores),
            skipped=len(section_answers) - len(q_scores),
            question_scores=tuple(q_scores),
        ))

    risk_score = compute_assessment_risk_score(answers)
    return AssessmentScore(
        risk_score=risk_score,
        risk_band=compute_risk_band(risk_score),
        sections=tuple(sections),
        answer_stats=calculate_score_stats([a.score for a in answers]),
    )
