"""
InductionStage: the nightly induction run.

Flow
----
  1. Read the current penalties from the parameter store.
  2. Score and rank every ``active`` trainset for the decision date.
  3. Replace the committed plan for that date (stamped with the actor).
  4. Write CSV + JSON plan files to ``config.data.output_dir``.

Returns the number of decisions committed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from metro_induction.models.meta import RunMetadata
from metro_induction.pipeline.base import PipelineStage
from metro_induction.utils.time_utils import parse_decision_date

logger = logging.getLogger(__name__)


class InductionStage(PipelineStage):
    """Generate, commit and report the induction plan for one date."""

    stage_name = "induct"

    def _execute(
        self,
        run: RunMetadata,
        decision_date: str | None = None,
        write_reports: bool = True,
        **kwargs,
    ) -> int:
        """Generate and commit the plan.

        Args:
            run:           In-progress RunMetadata (mutable).
            decision_date: ISO date to plan for; required.
            write_reports: If ``False``, skip the CSV/JSON files.

        Returns:
            Number of decisions committed.
        """
        from metro_induction.db.connection import get_connection
        from metro_induction.db.migrations import ensure_schema
        from metro_induction.induction.reporter import write_plan_csv, write_plan_json
        from metro_induction.induction.service import InductionService

        if decision_date is None:
            raise ValueError("InductionStage requires decision_date.")
        as_of = parse_decision_date(decision_date)
        run.decision_date = as_of.isoformat()
        self._persist_run(run)

        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            ensure_schema(conn)
            service = InductionService(conn, self.config.scoring, self.config.tuning)
            params = service.current_parameters()
            plan = service.generate_recommendations(as_of, params=params)
            committed = service.save_decisions(as_of, plan, actor=run.actor)

        if write_reports:
            output_dir = Path(self.config.data.output_dir)
            write_plan_csv(plan, output_dir, as_of)
            write_plan_json(plan, output_dir, as_of, params, run_slug=run.run_slug)

        logger.info(
            "Induction plan for %s committed: %d decision(s)", as_of.isoformat(), len(committed)
        )
        return len(committed)
