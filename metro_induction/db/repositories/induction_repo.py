"""
Repositories for induction outputs, the parameter store, and run metadata.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from metro_induction.db.repositories.base import BaseRepository
from metro_induction.models.induction import (
    DecisionPayload,
    InductionDecision,
    OptimizationParameter,
    PENALTY_NAMES,
    ParameterValue,
    coerce_penalty,
)
from metro_induction.models.meta import RunMetadata
from metro_induction.taxonomy.fleet_taxonomy import InductionDecisionType
from metro_induction.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class InductionDecisionRepository(BaseRepository):
    """Read/write access to ``induction_decisions``."""

    def replace_for_date(
        self,
        decision_date: date,
        decisions: list[DecisionPayload],
        actor: str,
        approved_at: Optional[datetime] = None,
    ) -> list[InductionDecision]:
        """Atomically replace every decision for ``decision_date``.

        Deletes all existing rows for the date and inserts ``decisions``
        inside one savepoint; a failure part-way restores the previous set.
        Rows for other dates are never touched.

        Args:
            decision_date: Plan date being replaced.
            decisions: Validated payloads to insert.
            actor: Identity stamped into ``approved_by``.
            approved_at: Commit timestamp; defaults to now (UTC).

        Returns:
            The committed decisions, ordered by priority.
        """
        stamp = (approved_at or utcnow()).isoformat()
        day = decision_date.isoformat()

        with self.savepoint("replace_decisions"):
            deleted = self.execute(
                "DELETE FROM induction_decisions WHERE decision_date = ?;", (day,)
            ).rowcount
            self.executemany(
                """
                INSERT INTO induction_decisions (
                    decision_date, trainset_id, decision, priority, reasoning,
                    constraints, conflict_alerts, approved_by, approved_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        day,
                        d.trainset_id,
                        d.decision.value,
                        d.priority,
                        d.reasoning,
                        json.dumps(d.constraints),
                        json.dumps(d.conflict_alerts),
                        actor,
                        stamp,
                    )
                    for d in decisions
                ],
            )

        logger.info(
            "Replaced induction plan for %s: deleted=%d inserted=%d actor=%s",
            day, deleted, len(decisions), actor,
        )
        return self.get_for_date(decision_date)

    def get_for_date(self, decision_date: date) -> list[InductionDecision]:
        """Fetch a date's decisions ordered by priority (1 first)."""
        rows = self.fetchall(
            """
            SELECT * FROM induction_decisions
            WHERE decision_date = ?
            ORDER BY priority, decision_id;
            """,
            (decision_date.isoformat(),),
        )
        return [_row_to_decision(r) for r in rows]

    def record_outcome(
        self,
        decision_date: date,
        trainset_id: int,
        actual_outcome: str,
        performance_score: Optional[float] = None,
    ) -> bool:
        """Attach an observed outcome to a committed decision.

        Returns:
            ``True`` if a decision row was updated.
        """
        cursor = self.execute(
            """
            UPDATE induction_decisions SET
                actual_outcome    = ?,
                performance_score = ?
            WHERE decision_date = ? AND trainset_id = ?;
            """,
            (actual_outcome, performance_score, decision_date.isoformat(), trainset_id),
        )
        return cursor.rowcount > 0

    def count_for_date(self, decision_date: date) -> int:
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM induction_decisions WHERE decision_date = ?;",
            (decision_date.isoformat(),),
        )
        return int(row["n"]) if row else 0


class OptimizationParameterRepository(BaseRepository):
    """Read/write access to ``optimization_params`` (the parameter store)."""

    def upsert(
        self,
        name: str,
        value: ParameterValue,
        description: str,
        actor: str,
        updated_at: Optional[datetime] = None,
    ) -> int:
        """Insert a parameter or overwrite the existing one with the same name.

        A single ``INSERT ... ON CONFLICT DO UPDATE`` against the UNIQUE
        ``parameter_name`` column, so concurrent callers can never create a
        duplicate row.

        The two scoring penalties are checked before the write; fractional,
        negative, bool and string values never reach the store.

        Returns:
            The ``param_id`` (existing or new).

        Raises:
            ParameterValidationError: If ``name`` is a penalty and ``value``
                is not a non-negative integer.
        """
        if name in PENALTY_NAMES:
            value = coerce_penalty(name, value)
        self.execute(
            """
            INSERT INTO optimization_params (
                parameter_name, value_json, description, last_updated, updated_by
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(parameter_name) DO UPDATE SET
                value_json   = excluded.value_json,
                description  = excluded.description,
                last_updated = excluded.last_updated,
                updated_by   = excluded.updated_by;
            """,
            (
                name,
                json.dumps(value),
                description,
                (updated_at or utcnow()).isoformat(),
                actor,
            ),
        )
        row = self.fetchone(
            "SELECT param_id FROM optimization_params WHERE parameter_name = ?;", (name,)
        )
        assert row is not None
        logger.debug("Upserted parameter %s=%r by %s", name, value, actor)
        return int(row["param_id"])

    def get_by_name(self, name: str) -> Optional[OptimizationParameter]:
        """Fetch a parameter by name, or ``None``."""
        row = self.fetchone(
            "SELECT * FROM optimization_params WHERE parameter_name = ?;", (name,)
        )
        return _row_to_parameter(row) if row else None

    def get_all(self) -> list[OptimizationParameter]:
        """Fetch every stored parameter, ordered by name."""
        rows = self.fetchall("SELECT * FROM optimization_params ORDER BY parameter_name;")
        return [_row_to_parameter(r) for r in rows]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM optimization_params;")
        return int(row["n"]) if row else 0


class RunMetadataRepository(BaseRepository):
    """Read/write access to ``run_metadata``."""

    def insert_run(self, run: RunMetadata) -> int:
        """Insert a new run record and return its ``run_id``."""
        self.execute(
            """
            INSERT INTO run_metadata (
                run_slug, pipeline_stage, status, actor, decision_date,
                config_snapshot, rows_processed, error_message, started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                run.run_slug,
                run.pipeline_stage,
                run.status,
                run.actor,
                run.decision_date,
                json.dumps(run.config_snapshot, default=str),
                run.rows_processed,
                run.error_message,
                run.started_at.isoformat(),
                run.finished_at.isoformat() if run.finished_at else None,
            ),
        )
        return self.last_insert_rowid()

    def update_run(self, run: RunMetadata) -> None:
        """Update the mutable fields of an existing run record.

        Raises:
            ValueError: If ``run.run_id`` is ``None``.
        """
        if run.run_id is None:
            raise ValueError("Cannot update RunMetadata without a run_id.")
        self.execute(
            """
            UPDATE run_metadata SET
                status         = ?,
                rows_processed = ?,
                error_message  = ?,
                finished_at    = ?
            WHERE run_id = ?;
            """,
            (
                run.status,
                run.rows_processed,
                run.error_message,
                run.finished_at.isoformat() if run.finished_at else None,
                run.run_id,
            ),
        )

    def get_run_by_slug(self, run_slug: str) -> Optional[RunMetadata]:
        """Fetch a run by its UUID slug."""
        row = self.fetchone("SELECT * FROM run_metadata WHERE run_slug = ?;", (run_slug,))
        return _row_to_run(row) if row else None

    def get_recent_runs(
        self,
        pipeline_stage: Optional[str] = None,
        limit: int = 20,
    ) -> list[RunMetadata]:
        """Fetch recent runs, most recent first, optionally filtered by stage."""
        if pipeline_stage:
            rows = self.fetchall(
                """
                SELECT * FROM run_metadata
                WHERE pipeline_stage = ?
                ORDER BY started_at DESC LIMIT ?;
                """,
                (pipeline_stage, limit),
            )
        else:
            rows = self.fetchall(
                "SELECT * FROM run_metadata ORDER BY started_at DESC LIMIT ?;",
                (limit,),
            )
        return [_row_to_run(r) for r in rows]


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_decision(row: sqlite3.Row) -> InductionDecision:
    return InductionDecision(
        decision_id=row["decision_id"],
        decision_date=date.fromisoformat(row["decision_date"]),
        trainset_id=row["trainset_id"],
        decision=InductionDecisionType(row["decision"]),
        priority=row["priority"],
        reasoning=row["reasoning"],
        constraints=json.loads(row["constraints"]),
        conflict_alerts=json.loads(row["conflict_alerts"]),
        approved_by=row["approved_by"],
        approved_at=(
            datetime.fromisoformat(row["approved_at"]) if row["approved_at"] else None
        ),
        actual_outcome=row["actual_outcome"],
        performance_score=row["performance_score"],
    )


def _row_to_parameter(row: sqlite3.Row) -> OptimizationParameter:
    return OptimizationParameter(
        param_id=row["param_id"],
        parameter_name=row["parameter_name"],
        value=json.loads(row["value_json"]),
        description=row["description"],
        last_updated=datetime.fromisoformat(row["last_updated"]),
        updated_by=row["updated_by"],
    )


def _row_to_run(row: sqlite3.Row) -> RunMetadata:
    return RunMetadata(
        run_id=row["run_id"],
        run_slug=row["run_slug"],
        pipeline_stage=row["pipeline_stage"],
        status=row["status"],
        actor=row["actor"],
        decision_date=row["decision_date"],
        config_snapshot=json.loads(row["config_snapshot"]),
        rows_processed=row["rows_processed"],
        error_message=row["error_message"],
        started_at=datetime.fromisoformat(row["started_at"]),
        finished_at=(
            datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None
        ),
    )
