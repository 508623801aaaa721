"""
SeedFleetStage: load a fleet seed document and export the fleet snapshot.

Returns the total number of records written across all tables.
"""

from __future__ import annotations

import logging
from pathlib import Path

from metro_induction.models.meta import RunMetadata
from metro_induction.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class SeedFleetStage(PipelineStage):
    """Load trainsets, certificates, job cards and alerts from JSON."""

    stage_name = "seed"

    def _execute(
        self,
        run: RunMetadata,
        seed_path: str | None = None,
        **kwargs,
    ) -> int:
        from metro_induction.db.connection import get_connection
        from metro_induction.db.migrations import ensure_schema
        from metro_induction.fleet.seed_loader import load_fleet_seed

        path = Path(seed_path or self.config.data.fleet_seed_file)
        output_dir = Path(self.config.data.processed_dir) / "fleet"

        self._persist_run(run)

        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            ensure_schema(conn)
            result = load_fleet_seed(conn, path, output_dir)

        total = result.trainsets + result.certificates + result.job_cards + result.alerts
        logger.info("Fleet seed from %s: %d record(s) written", path, total)
        return total
