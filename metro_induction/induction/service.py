"""
Induction service: the boundary operations of the induction planner.

``InductionService`` wires the pure scorer, ranker and tuner over the SQLite
repositories. It holds no state beyond the connection and its configuration;
transaction boundaries belong to the caller's ``get_connection()`` block,
except for the decision replace, which is atomic on its own.

Operations
----------
generate_recommendations(date)          read-only; ranked plan for active trainsets
save_decisions(date, decisions, actor)  validate, then atomically replace the date
seed_default_parameters(actor)          overwrite both penalties with 50 / 30
train_from_history(lookback_days, ...)  auto-tune both penalties

Every writing operation takes an opaque ``actor`` string that is stamped onto
the written rows. The service performs no role checks.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import ValidationError

from metro_induction.config import ScoringConfig, TuningConfig
from metro_induction.db.repositories.alert_repo import AlertRepository
from metro_induction.db.repositories.fleet_repo import (
    FitnessCertificateRepository,
    JobCardRepository,
    TrainsetRepository,
)
from metro_induction.db.repositories.induction_repo import (
    InductionDecisionRepository,
    OptimizationParameterRepository,
)
from metro_induction.errors import DecisionValidationError, RecordNotFoundError
from metro_induction.induction.ranker import (
    InductionRecommendation,
    build_recommendation,
    rank_recommendations,
)
from metro_induction.induction.scorer import score_trainset
from metro_induction.induction.tuner import (
    TuningResult,
    count_tuning_inputs,
    tune_penalties,
)
from metro_induction.models.fleet import (
    Alert,
    FitnessCertificate,
    FleetStats,
    JobCard,
    Trainset,
)
from metro_induction.models.induction import (
    DEFAULT_PENALTY_EXPIRING_CERTIFICATE,
    DEFAULT_PENALTY_HIGH_PRIORITY_JOBS,
    PENALTY_EXPIRING_CERTIFICATE,
    PENALTY_HIGH_PRIORITY_JOBS,
    DecisionPayload,
    InductionDecision,
    ScoringParameters,
)
from metro_induction.taxonomy.fleet_taxonomy import JobCardStatus, TrainsetStatus
from metro_induction.utils.time_utils import parse_decision_date, utcnow

logger = logging.getLogger(__name__)

DecisionInput = Union[DecisionPayload, InductionRecommendation, Mapping[str, Any]]

_SEED_DESCRIPTIONS = {
    PENALTY_EXPIRING_CERTIFICATE:
        "Penalty applied when a fitness certificate expires before tomorrow",
    PENALTY_HIGH_PRIORITY_JOBS:
        "Penalty applied when there are open HIGH priority job cards",
}

_TUNED_DESCRIPTIONS = {
    PENALTY_EXPIRING_CERTIFICATE:
        "Auto-tuned penalty from imminent certificate expirations",
    PENALTY_HIGH_PRIORITY_JOBS:
        "Auto-tuned penalty from recent open HIGH priority job cards",
}


class InductionService:
    """Induction planner operations over one SQLite connection.

    Args:
        conn:    Open connection (see ``get_connection()``).
        scoring: Default penalties and decision thresholds.
        tuning:  Auto-tuner coefficients and default lookback.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        scoring: Optional[ScoringConfig] = None,
        tuning: Optional[TuningConfig] = None,
    ) -> None:
        self.conn = conn
        self.scoring = scoring or ScoringConfig()
        self.tuning = tuning or TuningConfig()

        self.trainsets = TrainsetRepository(conn)
        self.certificates = FitnessCertificateRepository(conn)
        self.job_cards = JobCardRepository(conn)
        self.decisions = InductionDecisionRepository(conn)
        self.parameters = OptimizationParameterRepository(conn)
        self.alerts = AlertRepository(conn)

    # ── Scoring parameters ────────────────────────────────────────────────────

    def current_parameters(self) -> ScoringParameters:
        """Stored penalties, with ``[scoring]`` defaults for missing names."""
        return ScoringParameters.from_parameters(self.parameters.get_all(), self.scoring)

    # ── Recommendation generation ─────────────────────────────────────────────

    def generate_recommendations(
        self,
        decision_date: Union[str, date],
        params: Optional[ScoringParameters] = None,
    ) -> list[InductionRecommendation]:
        """Score and rank every ``active`` trainset for ``decision_date``.

        Read-only. A trainset whose certificates or job cards cannot be
        fetched is scored as if it had none; the run continues.

        Args:
            decision_date: ISO date string or ``date``.
            params:        Penalties to use; read from the parameter store
                           when ``None``.

        Returns:
            Recommendations ordered best first with priorities ``1..N``.

        Raises:
            ValueError: If ``decision_date`` is not an ISO calendar date.
        """
        as_of = parse_decision_date(decision_date)
        params = params or self.current_parameters()

        trainsets = self.trainsets.get_by_status(TrainsetStatus.ACTIVE)
        unranked: list[InductionRecommendation] = []
        for trainset in trainsets:
            certificates = self._fetch_certificates(trainset)
            open_jobs = self._fetch_open_job_cards(trainset)
            result = score_trainset(certificates, open_jobs, as_of, params)
            unranked.append(
                build_recommendation(
                    trainset,
                    result,
                    maintenance_below=self.scoring.maintenance_below,
                    standby_below=self.scoring.standby_below,
                )
            )

        ranked = rank_recommendations(unranked)
        logger.info(
            "Generated %d recommendation(s) for %s (penalties: cert=%d, jobs=%d)",
            len(ranked), as_of.isoformat(),
            params.penalty_expiring_certificate, params.penalty_high_priority_jobs,
        )
        return ranked

    def _fetch_certificates(self, trainset: Trainset) -> list[FitnessCertificate]:
        assert trainset.trainset_id is not None
        try:
            return self.certificates.get_for_trainset(trainset.trainset_id, active_only=True)
        except (sqlite3.Error, ValueError) as exc:
            logger.warning(
                "Could not load certificates for %s; scoring with none: %s",
                trainset.trainset_number, exc,
            )
            return []

    def _fetch_open_job_cards(self, trainset: Trainset) -> list[JobCard]:
        assert trainset.trainset_id is not None
        try:
            return self.job_cards.get_unclosed_for_trainset(trainset.trainset_id)
        except (sqlite3.Error, ValueError) as exc:
            logger.warning(
                "Could not load job cards for %s; scoring with none: %s",
                trainset.trainset_number, exc,
            )
            return []

    # ── Decision persistence ──────────────────────────────────────────────────

    def save_decisions(
        self,
        decision_date: Union[str, date],
        decisions: list[DecisionInput],
        actor: str,
    ) -> list[InductionDecision]:
        """Replace the committed plan for ``decision_date``.

        The whole payload is validated before anything is written; on any
        problem ``DecisionValidationError`` is raised and the existing plan
        is left as it was.

        Args:
            decision_date: ISO date string or ``date``.
            decisions:     ``DecisionPayload`` objects, ranked
                           ``InductionRecommendation`` objects, or plain dicts.
            actor:         Identity stamped into ``approved_by``.

        Returns:
            The committed decisions ordered by priority.
        """
        try:
            as_of = parse_decision_date(decision_date)
        except ValueError as exc:
            raise DecisionValidationError([str(exc)]) from exc

        payloads = self._validate_decisions(decisions)
        return self.decisions.replace_for_date(as_of, payloads, actor, approved_at=utcnow())

    def _validate_decisions(self, decisions: list[DecisionInput]) -> list[DecisionPayload]:
        errors: list[str] = []
        payloads: list[DecisionPayload] = []

        for i, item in enumerate(decisions):
            if isinstance(item, DecisionPayload):
                payloads.append(item)
                continue
            raw = item.to_payload() if isinstance(item, InductionRecommendation) else item
            try:
                payloads.append(DecisionPayload.model_validate(raw))
            except ValidationError as exc:
                for err in exc.errors():
                    loc = ".".join(str(p) for p in err["loc"]) or "<root>"
                    errors.append(f"decisions[{i}].{loc}: {err['msg']}")

        if errors:
            raise DecisionValidationError(errors)

        seen: set[int] = set()
        for p in payloads:
            if p.trainset_id in seen:
                errors.append(f"Duplicate trainset_id {p.trainset_id}.")
            seen.add(p.trainset_id)

        priorities = sorted(p.priority for p in payloads)
        if priorities != list(range(1, len(payloads) + 1)):
            errors.append(
                f"Priorities must be a dense sequence 1..{len(payloads)}, got {priorities}."
            )

        missing = seen - self.trainsets.existing_ids(sorted(seen))
        for trainset_id in sorted(missing):
            errors.append(f"Unknown trainset_id {trainset_id}.")

        if errors:
            raise DecisionValidationError(errors)
        return payloads

    def get_decisions(self, decision_date: Union[str, date]) -> list[InductionDecision]:
        """Committed decisions for a date, ordered by priority."""
        return self.decisions.get_for_date(parse_decision_date(decision_date))

    # ── Parameter store / tuning ──────────────────────────────────────────────

    def seed_default_parameters(self, actor: str) -> list[int]:
        """Write both penalties at their defaults (50 / 30).

        Always overwrites, including values previously set by the tuner.

        Returns:
            ``param_id`` of each parameter, certificate penalty first.
        """
        ids = [
            self.parameters.upsert(
                PENALTY_EXPIRING_CERTIFICATE,
                DEFAULT_PENALTY_EXPIRING_CERTIFICATE,
                _SEED_DESCRIPTIONS[PENALTY_EXPIRING_CERTIFICATE],
                actor,
            ),
            self.parameters.upsert(
                PENALTY_HIGH_PRIORITY_JOBS,
                DEFAULT_PENALTY_HIGH_PRIORITY_JOBS,
                _SEED_DESCRIPTIONS[PENALTY_HIGH_PRIORITY_JOBS],
                actor,
            ),
        ]
        logger.info("Seeded default scoring parameters (actor=%s)", actor)
        return ids

    def train_from_history(
        self,
        actor: str,
        lookback_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TuningResult:
        """Recompute both penalties from current fleet statistics and store them.

        Args:
            actor:         Identity stamped into ``updated_by``.
            lookback_days: Echoed into the result stats; defaults to
                           ``[tuning] lookback_days``.
            now:           Reference time for the certificate horizon.

        Returns:
            TuningResult with the stored values and diagnostic stats.
        """
        lookback = lookback_days if lookback_days is not None else self.tuning.lookback_days
        counters = count_tuning_inputs(
            self.job_cards.get_by_status(JobCardStatus.OPEN),
            self.certificates.get_all(),
            now or utcnow(),
            expiry_horizon_hours=self.tuning.expiry_horizon_hours,
        )
        result = tune_penalties(counters, lookback_days=lookback, config=self.tuning)

        self.parameters.upsert(
            PENALTY_HIGH_PRIORITY_JOBS,
            result.penalty_high_priority_jobs,
            _TUNED_DESCRIPTIONS[PENALTY_HIGH_PRIORITY_JOBS],
            actor,
        )
        self.parameters.upsert(
            PENALTY_EXPIRING_CERTIFICATE,
            result.penalty_expiring_certificate,
            _TUNED_DESCRIPTIONS[PENALTY_EXPIRING_CERTIFICATE],
            actor,
        )
        logger.info(
            "Tuned penalties: jobs=%d cert=%d | stats=%s",
            result.penalty_high_priority_jobs,
            result.penalty_expiring_certificate,
            result.stats,
        )
        return result

    # ── Fleet and alerts ──────────────────────────────────────────────────────

    def get_fleet_stats(self) -> FleetStats:
        return self.trainsets.get_stats()

    def get_trainset(self, trainset_number: str) -> Trainset:
        """Look up a trainset by fleet number.

        Raises:
            RecordNotFoundError: If no trainset has that number.
        """
        trainset = self.trainsets.get_by_number(trainset_number)
        if trainset is None:
            raise RecordNotFoundError("trainset", trainset_number)
        return trainset

    def update_trainset_status(
        self,
        trainset_id: int,
        status: TrainsetStatus,
        location: Optional[str] = None,
    ) -> Trainset:
        return self.trainsets.update_status(trainset_id, status, location)

    def get_active_alerts(self, limit: Optional[int] = None) -> list[Alert]:
        """Unresolved alerts, critical first."""
        return self.alerts.get_active(limit)

    def mark_alert_read(self, alert_id: int) -> None:
        self.alerts.mark_read(alert_id)

    def resolve_alert(self, alert_id: int, actor: str) -> Alert:
        return self.alerts.resolve(alert_id, actor)
