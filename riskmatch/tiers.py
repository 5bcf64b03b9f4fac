"""Evidence tier multipliers.

Unclassified evidence is treated as the weakest kind: anything that is not a
recognizable tier scores like self-declared evidence.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from riskmatch.types import EvidenceTier, parse_enum

log = logging.getLogger(__name__)

TIER_MULTIPLIERS: dict[EvidenceTier, float] = {
    EvidenceTier.TIER_2: 1.0,
    EvidenceTier.TIER_1: 0.8,
    EvidenceTier.TIER_0: 0.6,
}

DEFAULT_MULTIPLIER = TIER_MULTIPLIERS[EvidenceTier.TIER_0]

# Best first
TIER_ORDER = (EvidenceTier.TIER_2, EvidenceTier.TIER_1, EvidenceTier.TIER_0)


def parse_tier(value: Any) -> EvidenceTier | None:
    """Normalize an externally supplied tier value, ``None`` if unrecognizable."""
    return parse_enum(EvidenceTier, value)


def get_multiplier(tier: EvidenceTier | str | None) -> float:
    """Return the score multiplier for *tier* (0.6 for unknown or missing)."""
    parsed = parse_tier(tier)
    if parsed is None:
        if tier not in (None, ""):
            log.warning("Unrecognized evidence tier %r, using %.1f", tier, DEFAULT_MULTIPLIER)
        return DEFAULT_MULTIPLIER
    return TIER_MULTIPLIERS[parsed]


def get_best_tier(tiers: Iterable[EvidenceTier | str | None] | None) -> EvidenceTier:
    """Return the highest-confidence tier in *tiers*, ``TIER_0`` if none."""
    present = {parse_tier(t) for t in (tiers or ())}
    for tier in TIER_ORDER:
        if tier in present:
            return tier
    return EvidenceTier.TIER_0
