"""
Induction plan writer: CSV and JSON output for a ranked plan.

Pure I/O, no DB access.

Output files (written by InductionStage)
----------------------------------------
  data/outputs/induction/
    induction_plan_{date}.csv   -- one row per trainset, priority order
    induction_plan_{date}.json  -- same data plus penalties and run slug
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from pathlib import Path

from metro_induction.induction.ranker import InductionRecommendation
from metro_induction.models.induction import ScoringParameters
from metro_induction.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

PLAN_SCHEMA_VERSION = "v1"

_CSV_FIELDS = [
    "priority", "trainset_id", "trainset_number", "decision",
    "score", "constraints", "reasoning",
]


def write_plan_csv(
    recommendations: list[InductionRecommendation],
    output_dir: Path,
    decision_date: date,
) -> Path:
    """Write a ranked plan to CSV.

    ``constraints`` are joined with ``"; "`` in a single column.

    Returns:
        Path to the written CSV file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / f"induction_plan_{decision_date.isoformat()}.csv"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_FIELDS)
        writer.writeheader()
        for rec in recommendations:
            writer.writerow(
                {
                    "priority":        rec.priority,
                    "trainset_id":     rec.trainset_id,
                    "trainset_number": rec.trainset_number,
                    "decision":        rec.decision.value,
                    "score":           rec.score,
                    "constraints":     "; ".join(rec.constraints),
                    "reasoning":       rec.reasoning,
                }
            )

    logger.info("Induction plan CSV written: %s (%d rows)", csv_path, len(recommendations))
    return csv_path


def write_plan_json(
    recommendations: list[InductionRecommendation],
    output_dir: Path,
    decision_date: date,
    params: ScoringParameters,
    run_slug: str = "",
) -> Path:
    """Write a ranked plan to structured JSON.

    Args:
        recommendations: Ranked plan.
        output_dir:      Target directory (created if missing).
        decision_date:   Plan date; used in the filename.
        params:          Penalties the plan was scored with.
        run_slug:        Pipeline run UUID for provenance.

    Returns:
        Path to the written JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = output_dir / f"induction_plan_{decision_date.isoformat()}.json"

    counts: dict[str, int] = {}
    for rec in recommendations:
        counts[rec.decision.value] = counts.get(rec.decision.value, 0) + 1

    payload = {
        "schema_version": PLAN_SCHEMA_VERSION,
        "decision_date":  decision_date.isoformat(),
        "generated_at":   utcnow().isoformat(),
        "run_slug":       run_slug,
        "parameters":     params.model_dump(),
        "summary":        counts,
        "plan":           [rec.to_dict() for rec in recommendations],
    }

    with json_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info("Induction plan JSON written: %s", json_path)
    return json_path
