"""Immutable records and closed enums shared by the scoring core.

Inputs (questions, sections, answers, vendors, priorities) are built by the
service layer from ORM rows; outputs (gaps, risks, matrices, match scores) are
plain records with ``to_dict()`` so the API layer can serialize them without
reaching back into the core.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class EvidenceTier(str, Enum):
    TIER_0 = "TIER_0"  # self-declared
    TIER_1 = "TIER_1"  # policy document
    TIER_2 = "TIER_2"  # system-generated


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RemediationWindow(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    SHORT_TERM = "SHORT_TERM"
    MEDIUM_TERM = "MEDIUM_TERM"
    LONG_TERM = "LONG_TERM"


class EffortRange(str, Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class CostRange(str, Enum):
    UNDER_10K = "UNDER_10K"
    RANGE_10K_50K = "RANGE_10K_50K"
    RANGE_50K_100K = "RANGE_50K_100K"
    RANGE_100K_250K = "RANGE_100K_250K"
    OVER_250K = "OVER_250K"


# Budget ranges share the cost range vocabulary.
BudgetRange = CostRange


class Likelihood(str, Enum):
    RARE = "RARE"
    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    LIKELY = "LIKELY"
    CERTAIN = "CERTAIN"


class Impact(str, Enum):
    NEGLIGIBLE = "NEGLIGIBLE"
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    CATASTROPHIC = "CATASTROPHIC"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AssessmentStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CompanySize(str, Enum):
    STARTUP = "STARTUP"
    SMB = "SMB"
    MIDMARKET = "MIDMARKET"
    ENTERPRISE = "ENTERPRISE"


class DeploymentPreference(str, Enum):
    CLOUD = "CLOUD"
    ON_PREMISE = "ON_PREMISE"
    HYBRID = "HYBRID"
    FLEXIBLE = "FLEXIBLE"


class ImplementationUrgency(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    PLANNED = "PLANNED"
    STRATEGIC = "STRATEGIC"
    LONG_TERM = "LONG_TERM"


class VendorStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


def parse_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Coerce *value* to a member of *enum_cls*, or ``None`` if it isn't one.

    Accepts members, names in any case, and hyphenated spellings
    (``"on-premise"``) as they arrive from JSON payloads.
    """
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls[key]
    except KeyError:
        return None


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class _Record:
    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))  # type: ignore[call-overload]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Section(_Record):
    id: str
    title: str
    weight: float
    regulatory_priority: str = ""


@dataclass(frozen=True)
class Question(_Record):
    id: str
    text: str
    weight: float
    category_tag: str = ""
    is_foundational: bool = False


@dataclass(frozen=True)
class Answer(_Record):
    question: Question
    section: Section
    score: float | None = None  # 0-5; None = unanswered / skipped
    evidence_tier: EvidenceTier | str | None = None
    explanation: str = ""
    source_reference: str = ""

    @property
    def answered(self) -> bool:
        return self.score is not None

    @property
    def category(self) -> str:
        return self.question.category_tag or self.section.title


@dataclass(frozen=True)
class Vendor(_Record):
    id: str
    name: str
    categories: tuple[str, ...] = ()
    target_segments: tuple[CompanySize, ...] = ()
    geographic_coverage: tuple[str, ...] = ()
    pricing_range: BudgetRange | None = None
    features: tuple[str, ...] = ()
    deployment_options: str = ""
    implementation_timeline: int | None = None  # days
    rating: float = 0.0
    review_count: int = 0
    status: VendorStatus = VendorStatus.APPROVED


@dataclass(frozen=True)
class OrganizationPriorities(_Record):
    ranked_priorities: tuple[str, ...] = ()
    budget_range: BudgetRange | None = None
    must_have_features: tuple[str, ...] = ()
    deployment_preference: DeploymentPreference | None = None
    implementation_urgency: ImplementationUrgency | None = None
    company_size: CompanySize | None = None
    jurisdictions: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Gap(_Record):
    category: str
    title: str
    severity: Severity
    priority: int
    priority_score: float
    remediation_window: RemediationWindow
    estimated_effort: EffortRange | None = None
    estimated_cost: CostRange | None = None
    is_foundational: bool = False
    lowest_score: float = 0.0
    question_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Risk(_Record):
    category: str
    title: str
    likelihood: Likelihood
    impact: Impact
    risk_level: RiskLevel
    control_effectiveness: float | None = None


@dataclass(frozen=True)
class VendorRecommendation(_Record):
    vendor_id: str
    vendor_name: str
    gaps_covered: int
    covered_categories: tuple[str, ...]
    rating: float = 0.0
    review_count: int = 0


@dataclass(frozen=True)
class TimelineBucket(_Record):
    timeline: str
    gaps: tuple[Gap, ...]
    gap_count: int
    effort_distribution: dict[str, int]
    estimated_cost_range: str
    top_vendors: tuple[VendorRecommendation, ...]


@dataclass(frozen=True)
class StrategyMatrix(_Record):
    immediate: TimelineBucket
    near_term: TimelineBucket
    strategic: TimelineBucket


@dataclass(frozen=True)
class BaseScore(_Record):
    risk_area_coverage: float
    size_fit: float
    geo_coverage: float
    price_score: float

    @property
    def total_base(self) -> float:
        return self.risk_area_coverage + self.size_fit + self.geo_coverage + self.price_score

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "total_base": self.total_base}


@dataclass(frozen=True)
class PriorityBoost(_Record):
    top_priority_boost: float
    feature_boost: float
    deployment_boost: float
    speed_boost: float
    matched_priority: str | None = None
    matched_rank: int | None = None
    missing_features: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_boost(self) -> float:
        return self.top_priority_boost + self.feature_boost + self.deployment_boost + self.speed_boost

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "total_boost": self.total_boost}


@dataclass(frozen=True)
class VendorMatchScore(_Record):
    vendor_id: str
    vendor_name: str
    base_score: BaseScore
    priority_boost: PriorityBoost
    total_score: float
    quality: str
    match_reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "base_score": self.base_score.to_dict(),
            "priority_boost": self.priority_boost.to_dict(),
            "total_score": self.total_score,
            "quality": self.quality,
            "match_reasons": list(self.match_reasons),
        }
