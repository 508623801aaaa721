"""
Induction ranker: turns per-trainset scores into a ranked, explained plan.

Usage flow
----------
1. score_trainset(...) per active trainset           (scorer.py)
2. build_recommendation(trainset, trainset_score)
   -> InductionRecommendation (priority not yet assigned)
3. rank_recommendations(recommendations)
   -> list[InductionRecommendation] ordered best first, priority 1..N

Decision thresholds (first match wins)
--------------------------------------
    score <  maintenance_below (50)  → maintenance
    score <  standby_below     (70)  → standby
    otherwise                        → revenue_service

Ties on score keep the order the recommendations arrived in; there is no
secondary sort key.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from metro_induction.induction.scorer import TrainsetScore
from metro_induction.models.fleet import Trainset
from metro_induction.taxonomy.fleet_taxonomy import InductionDecisionType

DEFAULT_MAINTENANCE_BELOW = 50
DEFAULT_STANDBY_BELOW = 70


@dataclass(frozen=True)
class InductionRecommendation:
    """One trainset's entry in a generated (not yet committed) plan.

    Attributes:
        trainset_id:     Trainset PK.
        trainset_number: Fleet number, for display.
        decision:        Recommended induction outcome.
        score:           Integer readiness score.
        priority:        1-based dense rank; ``None`` until ranked.
        reasoning:       ``"Score: {score}/100. {constraints}"``.
        constraints:     Risk conditions from the scorer.
        conflicts:       Conflict alerts; always empty from the generator.
    """

    trainset_id:     int
    trainset_number: str
    decision:        InductionDecisionType
    score:           int
    reasoning:       str
    constraints:     list[str] = field(default_factory=list)
    conflicts:       list[str] = field(default_factory=list)
    priority:        Optional[int] = None

    def to_payload(self) -> dict[str, Any]:
        """Shape this recommendation as a ``save_decisions`` entry."""
        return {
            "trainset_id":     self.trainset_id,
            "decision":        self.decision.value,
            "priority":        self.priority,
            "reasoning":       self.reasoning,
            "constraints":     list(self.constraints),
            "conflict_alerts": list(self.conflicts),
        }

    def to_dict(self) -> dict[str, Any]:
        """Flat dict for JSON/CSV output."""
        return {
            "priority":        self.priority,
            "trainset_id":     self.trainset_id,
            "trainset_number": self.trainset_number,
            "decision":        self.decision.value,
            "score":           self.score,
            "reasoning":       self.reasoning,
            "constraints":     list(self.constraints),
            "conflicts":       list(self.conflicts),
        }


def determine_decision(
    score: int,
    maintenance_below: int = DEFAULT_MAINTENANCE_BELOW,
    standby_below: int = DEFAULT_STANDBY_BELOW,
) -> InductionDecisionType:
    """Map a score onto an induction decision.

    Args:
        score:             Integer readiness score.
        maintenance_below: Scores strictly below this go to maintenance.
        standby_below:     Scores strictly below this (and not maintenance)
                           go to standby.

    Returns:
        The ``InductionDecisionType``.
    """
    if score < maintenance_below:
        return InductionDecisionType.MAINTENANCE
    if score < standby_below:
        return InductionDecisionType.STANDBY
    return InductionDecisionType.REVENUE_SERVICE


def build_reasoning(score: int, constraints: list[str]) -> str:
    """Build the reasoning string.

    With no constraints the result ends in ``"100. "`` (trailing space kept).
    """
    return f"Score: {score}/100. " + ". ".join(constraints)


def build_recommendation(
    trainset: Trainset,
    result: TrainsetScore,
    maintenance_below: int = DEFAULT_MAINTENANCE_BELOW,
    standby_below: int = DEFAULT_STANDBY_BELOW,
) -> InductionRecommendation:
    """Combine a trainset and its score into an unranked recommendation."""
    if trainset.trainset_id is None:
        raise ValueError(f"Trainset {trainset.trainset_number} has no trainset_id.")
    return InductionRecommendation(
        trainset_id=trainset.trainset_id,
        trainset_number=trainset.trainset_number,
        decision=determine_decision(result.score, maintenance_below, standby_below),
        score=result.score,
        reasoning=build_reasoning(result.score, result.constraints),
        constraints=list(result.constraints),
        conflicts=[],
    )


def rank_recommendations(
    recommendations: list[InductionRecommendation],
) -> list[InductionRecommendation]:
    """Order by score descending and assign dense priorities ``1..N``.

    ``sorted`` is stable, so equal scores keep their input order.

    Args:
        recommendations: Unranked recommendations in enumeration order.

    Returns:
        New list of recommendations with ``priority`` set.
    """
    ordered = sorted(recommendations, key=lambda r: r.score, reverse=True)
    return [replace(rec, priority=i + 1) for i, rec in enumerate(ordered)]
