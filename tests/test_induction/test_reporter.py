"""Tests for induction/reporter.py: CSV and JSON plan files."""

from __future__ import annotations

import csv
import json

from conftest import DECISION_DATE

from metro_induction.induction.ranker import (
    InductionRecommendation,
    build_reasoning,
    rank_recommendations,
)
from metro_induction.induction.reporter import write_plan_csv, write_plan_json
from metro_induction.models.induction import ScoringParameters
from metro_induction.taxonomy.fleet_taxonomy import InductionDecisionType


def _plan() -> list[InductionRecommendation]:
    constraints = ["rolling_stock certificate expires soon", "1 high priority job cards open"]
    return rank_recommendations([
        InductionRecommendation(
            trainset_id=2, trainset_number="KM-002",
            decision=InductionDecisionType.MAINTENANCE, score=20,
            reasoning=build_reasoning(20, constraints), constraints=constraints,
        ),
        InductionRecommendation(
            trainset_id=1, trainset_number="KM-001",
            decision=InductionDecisionType.REVENUE_SERVICE, score=100,
            reasoning=build_reasoning(100, []),
        ),
    ])


class TestWritePlanCsv:
    def test_rows_in_priority_order(self, tmp_path):
        path = write_plan_csv(_plan(), tmp_path, DECISION_DATE)
        assert path.name == "induction_plan_2025-03-01.csv"

        with path.open(encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["trainset_number"] for r in rows] == ["KM-001", "KM-002"]
        assert rows[0]["priority"] == "1"
        assert rows[1]["constraints"] == (
            "rolling_stock certificate expires soon; 1 high priority job cards open"
        )

    def test_creates_directory(self, tmp_path):
        path = write_plan_csv([], tmp_path / "nested" / "out", DECISION_DATE)
        assert path.exists()


class TestWritePlanJson:
    def test_payload(self, tmp_path):
        params = ScoringParameters(penalty_expiring_certificate=52, penalty_high_priority_jobs=28)
        path = write_plan_json(_plan(), tmp_path, DECISION_DATE, params, run_slug="run-1")
        payload = json.loads(path.read_text(encoding="utf-8"))

        assert payload["schema_version"] == "v1"
        assert payload["decision_date"] == "2025-03-01"
        assert payload["run_slug"] == "run-1"
        assert payload["parameters"] == {
            "penalty_expiring_certificate": 52,
            "penalty_high_priority_jobs": 28,
        }
        assert payload["summary"] == {"revenue_service": 1, "maintenance": 1}
        assert [p["priority"] for p in payload["plan"]] == [1, 2]
        assert payload["plan"][0]["reasoning"] == "Score: 100/100. "
