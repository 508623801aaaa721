"""
TuneStage: recompute the scoring penalties from current fleet statistics.

Returns the number of parameters written (always 2 on success).
"""

from __future__ import annotations

import logging

from metro_induction.induction.tuner import TuningResult
from metro_induction.models.meta import RunMetadata
from metro_induction.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class TuneStage(PipelineStage):
    """Auto-tune ``penalty_high_priority_jobs`` and ``penalty_expiring_certificate``.

    After a successful run, ``result`` holds the stored values and stats.
    """

    stage_name = "tune"
    result: TuningResult | None = None

    def _execute(
        self,
        run: RunMetadata,
        lookback_days: int | None = None,
        **kwargs,
    ) -> int:
        from metro_induction.db.connection import get_connection
        from metro_induction.db.migrations import ensure_schema
        from metro_induction.induction.service import InductionService

        self._persist_run(run)

        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            ensure_schema(conn)
            service = InductionService(conn, self.config.scoring, self.config.tuning)
            self.result = service.train_from_history(
                actor=run.actor, lookback_days=lookback_days
            )

        logger.debug(
            "Tuned penalties: high_priority_jobs=%d expiring_certificate=%d",
            self.result.penalty_high_priority_jobs,
            self.result.penalty_expiring_certificate,
        )
        return 2
