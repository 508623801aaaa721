"""
Abstract base class for all pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(actor=..., **kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with final status.
  4. ``_execute()`` is the stage-specific implementation (overridden by subclasses).

Every run is auditable: the ``run_metadata`` row records who triggered it,
the full config snapshot, and the final status. Stages never swallow
exceptions; failures are recorded and re-raised.

Usage::

    class MyStage(PipelineStage):
        stage_name = "induct"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            # Do work, return row count
            return 42

    stage = MyStage(config=app_config)
    result = stage.run(actor="ops-supervisor", decision_date="2025-03-01")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from uuid import uuid4

from metro_induction.config import AppConfig
from metro_induction.models.meta import RunMetadata
from metro_induction.utils.logging import run_logger
from metro_induction.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Subclasses must:
      1. Set ``stage_name`` class variable.
      2. Implement ``_execute(run, **kwargs) -> int``.

    Attributes:
        stage_name: String identifier matching a valid ``RunMetadata.pipeline_stage``.
        config: The application configuration for this run.
        db_path: Path to the SQLite database (defaults to ``config.database.db_path``).
    """

    stage_name: str  # Override in subclass

    def __init__(
        self,
        config: AppConfig,
        db_path: str | None = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path

    def run(self, actor: str, **kwargs) -> RunMetadata:
        """Execute this pipeline stage.

        Args:
            actor: Identity that triggered the run; stamped on the run record
                and on every row the stage writes.
            **kwargs: Stage-specific keyword arguments passed to ``_execute()``.

        Returns:
            ``RunMetadata`` with final ``status``, ``rows_processed``,
            and ``finished_at`` set.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'`` in the run record.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            actor=actor,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        log = run_logger(logger, self.stage_name, actor, run.run_slug)
        log.info("Stage [%s] starting | actor=%s", self.stage_name, actor)

        try:
            rows = self._execute(run=run, **kwargs)
            run.status = "success"
            run.rows_processed = rows
            run.finished_at = utcnow()
            log.info("Stage [%s] completed | rows=%d", self.stage_name, rows)

        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            log.error("Stage [%s] FAILED: %s", self.stage_name, exc)
            self._persist_run(run)
            raise

        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific implementation.

        Args:
            run: The in-progress ``RunMetadata`` record (mutable).
            **kwargs: Stage-specific parameters.

        Returns:
            Integer count of rows/records processed.
        """
        ...

    def _persist_run(self, run: RunMetadata) -> None:
        """Insert or update the ``RunMetadata`` record.

        Errors are logged rather than raised so that a run-record failure
        never masks the original pipeline error.
        """
        try:
            from metro_induction.db.connection import get_connection
            from metro_induction.db.migrations import ensure_schema
            from metro_induction.db.repositories.induction_repo import RunMetadataRepository

            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                ensure_schema(conn)
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error(
                "Failed to persist RunMetadata for run_slug=%s: %s",
                run.run_slug, exc,
            )
