"""
Tests for metro_induction/induction/ranker.py.

What we test
------------
determine_decision():
  - Boundaries 49/50/69/70 with the default thresholds.
  - Negative scores go to maintenance.
  - Custom thresholds are respected.

build_reasoning():
  - With no constraints the string ends "100. " (trailing space kept).
  - Constraints are joined with ". ".

build_recommendation():
  - Carries id, number, score and decision; conflicts are always empty.
  - A trainset without a PK is rejected.

rank_recommendations():
  - Ordered by score descending; priorities dense 1..N.
  - Equal scores keep their input order.
  - Input list is not mutated; empty input gives empty output.

InductionRecommendation.to_payload():
  - Shape matches a save_decisions entry.
"""

from __future__ import annotations

import pytest

from conftest import make_trainset

from metro_induction.induction.ranker import (
    InductionRecommendation,
    build_reasoning,
    build_recommendation,
    determine_decision,
    rank_recommendations,
)
from metro_induction.induction.scorer import TrainsetScore
from metro_induction.taxonomy.fleet_taxonomy import InductionDecisionType


def _rec(trainset_id: int, score: int) -> InductionRecommendation:
    return InductionRecommendation(
        trainset_id=trainset_id,
        trainset_number=f"KM-{trainset_id:03d}",
        decision=determine_decision(score),
        score=score,
        reasoning=build_reasoning(score, []),
    )


class TestDetermineDecision:
    @pytest.mark.parametrize(
        "score, expected",
        [
            (100, InductionDecisionType.REVENUE_SERVICE),
            (70, InductionDecisionType.REVENUE_SERVICE),
            (69, InductionDecisionType.STANDBY),
            (50, InductionDecisionType.STANDBY),
            (49, InductionDecisionType.MAINTENANCE),
            (0, InductionDecisionType.MAINTENANCE),
            (-80, InductionDecisionType.MAINTENANCE),
        ],
    )
    def test_default_thresholds(self, score, expected):
        assert determine_decision(score) == expected

    def test_custom_thresholds(self):
        assert determine_decision(60, maintenance_below=65, standby_below=90) == (
            InductionDecisionType.MAINTENANCE
        )
        assert determine_decision(80, maintenance_below=65, standby_below=90) == (
            InductionDecisionType.STANDBY
        )


class TestBuildReasoning:
    def test_no_constraints_keeps_trailing_space(self):
        assert build_reasoning(100, []) == "Score: 100/100. "

    def test_single_constraint(self):
        assert build_reasoning(70, ["2 high priority job cards open"]) == (
            "Score: 70/100. 2 high priority job cards open"
        )

    def test_multiple_constraints_joined(self):
        text = build_reasoning(
            20,
            ["rolling_stock certificate expires soon", "1 high priority job cards open"],
        )
        assert text == (
            "Score: 20/100. rolling_stock certificate expires soon. "
            "1 high priority job cards open"
        )

    def test_negative_score(self):
        assert build_reasoning(-30, []).startswith("Score: -30/100.")


class TestBuildRecommendation:
    def test_fields_carried(self):
        trainset = make_trainset("KM-007", trainset_id=7)
        result = TrainsetScore(score=50, constraints=["telecom certificate expires soon"])
        rec = build_recommendation(trainset, result)
        assert rec.trainset_id == 7
        assert rec.trainset_number == "KM-007"
        assert rec.score == 50
        assert rec.decision == InductionDecisionType.STANDBY
        assert rec.constraints == ["telecom certificate expires soon"]
        assert rec.conflicts == []
        assert rec.priority is None

    def test_constraints_copied(self):
        trainset = make_trainset(trainset_id=1)
        result = TrainsetScore(score=100, constraints=[])
        rec = build_recommendation(trainset, result)
        result.constraints.append("late addition")
        assert rec.constraints == []

    def test_missing_trainset_id_rejected(self):
        with pytest.raises(ValueError, match="no trainset_id"):
            build_recommendation(make_trainset(), TrainsetScore(score=100))


class TestRankRecommendations:
    def test_ordered_by_score_descending(self):
        ranked = rank_recommendations([_rec(1, 50), _rec(2, 100), _rec(3, 70)])
        assert [r.trainset_id for r in ranked] == [2, 3, 1]

    def test_priorities_dense(self):
        ranked = rank_recommendations([_rec(i, s) for i, s in enumerate([20, 90, 50, 70], 1)])
        assert [r.priority for r in ranked] == [1, 2, 3, 4]

    def test_ties_keep_input_order(self):
        ranked = rank_recommendations([_rec(4, 100), _rec(1, 100), _rec(9, 100), _rec(2, 40)])
        assert [r.trainset_id for r in ranked] == [4, 1, 9, 2]
        assert [r.priority for r in ranked] == [1, 2, 3, 4]

    def test_input_not_mutated(self):
        recs = [_rec(1, 50), _rec(2, 100)]
        rank_recommendations(recs)
        assert all(r.priority is None for r in recs)
        assert [r.trainset_id for r in recs] == [1, 2]

    def test_empty(self):
        assert rank_recommendations([]) == []


class TestToPayload:
    def test_shape(self):
        rec = rank_recommendations([_rec(3, 70)])[0]
        assert rec.to_payload() == {
            "trainset_id": 3,
            "decision": "revenue_service",
            "priority": 1,
            "reasoning": "Score: 70/100. ",
            "constraints": [],
            "conflict_alerts": [],
        }

    def test_to_dict_includes_display_fields(self):
        d = rank_recommendations([_rec(3, 40)])[0].to_dict()
        assert d["trainset_number"] == "KM-003"
        assert d["score"] == 40
        assert d["decision"] == "maintenance"
