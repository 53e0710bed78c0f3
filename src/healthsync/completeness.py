"""Completeness score and data-quality tier.

Score formula (weights from sync_config.yaml):
    - core metrics present / 9 * 50           (max 50)
    - 2 points per other metric present       (max 30)
    - days covered / 90 * 20                  (max 20)

The sum is floored to an integer.  Tiers are evaluated in order, first match
wins:

    score >= 80 and core complete  -> GOLD
    score >= 60 and core complete  -> SILVER
    score >= 40                    -> BRONZE
    otherwise                      -> NONE

"Core complete" means at least 7 of the 9 core metrics are present.
Attestation consumers re-derive the tier from a persisted score with
``tier_for()``, so both sides must use this exact arithmetic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from src.healthsync.config_loader import CompletenessRubric
from src.healthsync.metrics import CORE_METRICS, normalize_metric_key

_CORE_KEYS = frozenset(normalize_metric_key(kind) for kind in CORE_METRICS)


class Tier(str, Enum):
    """Data-quality tier, valued by its wire name."""

    NONE = "NONE"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"

    @property
    def min_score(self) -> int:
        return {Tier.NONE: 0, Tier.BRONZE: 40, Tier.SILVER: 60, Tier.GOLD: 80}[self]


@dataclass(frozen=True)
class CompletenessResult:
    """Outcome of scoring one set of present metrics over a date range.

    Attributes:
        score:         Integer 0–100.
        tier:          Tier derived from score and core coverage.
        core_complete: True when >= 7 of the 9 core metrics are present.
        days_covered:  Whole days between start and end.
    """

    score: int
    tier: Tier
    core_complete: bool
    days_covered: int


def tier_for(
    score: int, core_complete: bool, rubric: CompletenessRubric | None = None
) -> Tier:
    """Return the tier for a score; core coverage gates GOLD and SILVER only."""
    rubric = rubric or CompletenessRubric()
    if score >= rubric.gold_threshold and core_complete:
        return Tier.GOLD
    if score >= rubric.silver_threshold and core_complete:
        return Tier.SILVER
    if score >= rubric.bronze_threshold:
        return Tier.BRONZE
    return Tier.NONE


def tier_from_attestation(score_basis_points: int, core_complete: bool) -> Tier:
    """Re-derive the tier of an attestation whose score is stored in basis points."""
    return tier_for(score_basis_points // 100, core_complete)


def whole_days(start: datetime, end: datetime) -> int:
    """Whole days elapsed from ``start`` to ``end`` (0 if end precedes start)."""
    return max(0, (end - start).days)


def score_completeness(
    metrics_present: Iterable[str],
    start: datetime,
    end: datetime,
    rubric: CompletenessRubric | None = None,
) -> CompletenessResult:
    """Score the completeness of an export.

    Args:
        metrics_present: Metric kinds (raw or normalized keys) that yielded data.
        start:           Start of the exported range.
        end:             End of the exported range.
        rubric:          Weights/thresholds; the bundled defaults if None.

    Returns:
        CompletenessResult.
    """
    rubric = rubric or CompletenessRubric()
    present = {normalize_metric_key(m) for m in metrics_present}

    core_present = len(present & _CORE_KEYS)
    other_present = len(present - _CORE_KEYS)

    core_complete = core_present >= rubric.core_complete_threshold
    core_score = (core_present / rubric.core_metric_count) * rubric.core_weight
    other_score = min(rubric.other_cap, other_present * rubric.other_points_per_metric)

    days_covered = whole_days(start, end)
    days_score = min(
        rubric.days_weight, days_covered / rubric.full_credit_days * rubric.days_weight
    )

    score = int(math.floor(core_score + other_score + days_score))
    score = min(max(score, 0), 100)

    return CompletenessResult(
        score=score,
        tier=tier_for(score, core_complete, rubric),
        core_complete=core_complete,
        days_covered=days_covered,
    )
