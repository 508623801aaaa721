"""
Tests for metro_induction/induction/service.py.

All tests run against the in-memory SQLite fixture.

What we test
------------
generate_recommendations():
  - Only ``active`` trainsets appear; priorities are dense.
  - Certificates lapsing before the cutoff and open HIGH cards are penalised.
  - Cancelled / in-progress cards count as open; closed cards do not.
  - Stored penalties are used when no explicit params are given.
  - A fetch failure for one trainset is logged and scored as empty.
  - Read-only: nothing is written.
  - Invalid dates raise ValueError.

save_decisions():
  - Round-trip: saved decisions come back ordered by priority with actor stamped.
  - Re-saving a date replaces it; other dates are untouched.
  - Ranked recommendations can be saved directly.
  - Duplicate trainsets, non-dense priorities, unknown trainsets, bad
    decision values and bad dates are rejected with nothing written.

Parameter store:
  - seed_default_parameters() is idempotent and overwrites tuned values.
  - train_from_history() stores both penalties with the actor.
  - Non-integer or negative penalties are rejected with ParameterValidationError.

Fleet and alerts:
  - get_trainset() raises RecordNotFoundError for unknown numbers.
  - Active alerts ordered by severity; resolve records the actor.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import DECISION_DATE, make_certificate, make_job_card, make_trainset

from metro_induction.db.repositories.fleet_repo import (
    FitnessCertificateRepository,
    JobCardRepository,
    TrainsetRepository,
)
from metro_induction.errors import (
    DecisionValidationError,
    ParameterValidationError,
    RecordNotFoundError,
)
from metro_induction.induction.service import InductionService
from metro_induction.models.fleet import Alert
from metro_induction.models.induction import (
    PENALTY_EXPIRING_CERTIFICATE,
    PENALTY_HIGH_PRIORITY_JOBS,
    DecisionPayload,
    ScoringParameters,
)
from metro_induction.taxonomy.fleet_taxonomy import (
    AlertSeverity,
    AlertType,
    InductionDecisionType,
    JobCardStatus,
    TrainsetStatus,
)

CUTOFF = datetime(2025, 3, 2, tzinfo=timezone.utc)
FAR_FUTURE = CUTOFF + timedelta(days=180)


def _seed_fleet(conn: sqlite3.Connection) -> dict[str, int]:
    """Insert a small fleet and return trainset ids keyed by number.

    KM-001: clean                                      → 100
    KM-002: rolling stock cert lapses today            → 50
    KM-003: 2 HIGH cards (one cancelled) + 1 closed    → 70
    KM-004: standby (excluded)
    """
    trainsets = TrainsetRepository(conn)
    ids = {
        "KM-001": trainsets.insert(make_trainset("KM-001")),
        "KM-002": trainsets.insert(make_trainset("KM-002")),
        "KM-003": trainsets.insert(make_trainset("KM-003")),
        "KM-004": trainsets.insert(make_trainset("KM-004", status=TrainsetStatus.STANDBY)),
    }

    certs = FitnessCertificateRepository(conn)
    certs.insert(make_certificate(ids["KM-001"], FAR_FUTURE))
    certs.insert(make_certificate(ids["KM-002"], CUTOFF - timedelta(days=2)))
    certs.insert(make_certificate(ids["KM-003"], FAR_FUTURE))
    certs.insert(make_certificate(ids["KM-004"], CUTOFF - timedelta(days=2)))

    jobs = JobCardRepository(conn)
    jobs.upsert(make_job_card(ids["KM-003"], "WO-1", priority="HIGH"))
    jobs.upsert(make_job_card(ids["KM-003"], "WO-2", priority="HIGH", status=JobCardStatus.CANCELLED))
    jobs.upsert(make_job_card(ids["KM-003"], "WO-3", priority="HIGH", status=JobCardStatus.CLOSED))
    jobs.upsert(make_job_card(ids["KM-004"], "WO-4", priority="HIGH"))
    conn.commit()
    return ids


@pytest.fixture
def fleet_ids(in_memory_db) -> dict[str, int]:
    return _seed_fleet(in_memory_db)


@pytest.fixture
def service(in_memory_db) -> InductionService:
    return InductionService(in_memory_db)


def _payload(trainset_id: int, priority: int, decision: str = "revenue_service") -> dict:
    return {
        "trainset_id": trainset_id,
        "decision": decision,
        "priority": priority,
        "reasoning": "Score: 100/100. ",
        "constraints": [],
        "conflict_alerts": [],
    }


# ── generate_recommendations ──────────────────────────────────────────────────

class TestGenerateRecommendations:
    def test_only_active_trainsets(self, service, fleet_ids):
        plan = service.generate_recommendations(DECISION_DATE)
        numbers = [r.trainset_number for r in plan]
        assert sorted(numbers) == ["KM-001", "KM-002", "KM-003"]
        assert fleet_ids["KM-004"] not in {r.trainset_id for r in plan}

    def test_scores_and_order(self, service, fleet_ids):
        plan = service.generate_recommendations("2025-03-01")
        assert [(r.trainset_number, r.score, r.priority) for r in plan] == [
            ("KM-001", 100, 1),
            ("KM-003", 70, 2),
            ("KM-002", 50, 3),
        ]
        assert [r.decision for r in plan] == [
            InductionDecisionType.REVENUE_SERVICE,
            InductionDecisionType.REVENUE_SERVICE,
            InductionDecisionType.STANDBY,
        ]

    def test_cancelled_card_counts_closed_does_not(self, service, fleet_ids):
        plan = service.generate_recommendations(DECISION_DATE)
        km3 = next(r for r in plan if r.trainset_number == "KM-003")
        assert km3.constraints == ["2 high priority job cards open"]

    def test_reasoning(self, service, fleet_ids):
        plan = service.generate_recommendations(DECISION_DATE)
        by_number = {r.trainset_number: r for r in plan}
        assert by_number["KM-001"].reasoning == "Score: 100/100. "
        assert by_number["KM-002"].reasoning == (
            "Score: 50/100. rolling_stock certificate expires soon"
        )

    def test_later_date_picks_up_more_expiries(self, service, fleet_ids):
        later = (FAR_FUTURE + timedelta(days=1)).date()
        plan = service.generate_recommendations(later)
        assert {r.trainset_number: r.score for r in plan}["KM-001"] == 50

    def test_uses_stored_parameters(self, service, fleet_ids):
        service.parameters.upsert(PENALTY_EXPIRING_CERTIFICATE, 10, "test", "tester")
        plan = service.generate_recommendations(DECISION_DATE)
        assert {r.trainset_number: r.score for r in plan}["KM-002"] == 90

    def test_explicit_parameters_override_store(self, service, fleet_ids):
        service.parameters.upsert(PENALTY_HIGH_PRIORITY_JOBS, 5, "test", "tester")
        params = ScoringParameters(penalty_high_priority_jobs=60)
        plan = service.generate_recommendations(DECISION_DATE, params=params)
        assert {r.trainset_number: r.score for r in plan}["KM-003"] == 40

    def test_fetch_failure_scored_as_empty(self, service, fleet_ids, monkeypatch, caplog):
        original = service.certificates.get_for_trainset

        def flaky(trainset_id, active_only=True):
            if trainset_id == fleet_ids["KM-002"]:
                raise sqlite3.OperationalError("disk I/O error")
            return original(trainset_id, active_only=active_only)

        monkeypatch.setattr(service.certificates, "get_for_trainset", flaky)
        with caplog.at_level(logging.WARNING, logger="metro_induction.induction.service"):
            plan = service.generate_recommendations(DECISION_DATE)

        assert {r.trainset_number: r.score for r in plan}["KM-002"] == 100
        assert len(plan) == 3
        assert "KM-002" in caplog.text

    def test_read_only(self, service, fleet_ids):
        service.generate_recommendations(DECISION_DATE)
        assert service.decisions.count_for_date(DECISION_DATE) == 0
        assert service.parameters.count() == 0

    def test_empty_fleet(self, service):
        assert service.generate_recommendations(DECISION_DATE) == []

    def test_invalid_date(self, service):
        with pytest.raises(ValueError, match="Invalid decision date"):
            service.generate_recommendations("03/01/2025")


# ── save_decisions ────────────────────────────────────────────────────────────

class TestSaveDecisions:
    def test_round_trip(self, service, fleet_ids):
        payload = [
            _payload(fleet_ids["KM-002"], 2, "standby"),
            _payload(fleet_ids["KM-001"], 1),
        ]
        saved = service.save_decisions("2025-03-01", payload, actor="ops-supervisor")

        assert [d.trainset_id for d in saved] == [fleet_ids["KM-001"], fleet_ids["KM-002"]]
        assert [d.priority for d in saved] == [1, 2]
        assert saved[1].decision == InductionDecisionType.STANDBY
        assert all(d.approved_by == "ops-supervisor" for d in saved)
        assert all(d.approved_at is not None for d in saved)
        assert service.get_decisions(DECISION_DATE) == saved

    def test_resave_replaces_date(self, service, fleet_ids):
        service.save_decisions(
            DECISION_DATE,
            [_payload(fleet_ids["KM-001"], 1), _payload(fleet_ids["KM-002"], 2)],
            actor="a",
        )
        service.save_decisions(DECISION_DATE, [_payload(fleet_ids["KM-003"], 1)], actor="b")

        current = service.get_decisions(DECISION_DATE)
        assert [d.trainset_id for d in current] == [fleet_ids["KM-003"]]
        assert current[0].approved_by == "b"

    def test_other_dates_untouched(self, service, fleet_ids):
        other = date(2025, 3, 2)
        service.save_decisions(other, [_payload(fleet_ids["KM-001"], 1)], actor="a")
        service.save_decisions(DECISION_DATE, [_payload(fleet_ids["KM-002"], 1)], actor="b")
        service.save_decisions(DECISION_DATE, [], actor="c")

        assert service.get_decisions(DECISION_DATE) == []
        assert [d.trainset_id for d in service.get_decisions(other)] == [fleet_ids["KM-001"]]

    def test_accepts_generated_plan(self, service, fleet_ids):
        plan = service.generate_recommendations(DECISION_DATE)
        saved = service.save_decisions(DECISION_DATE, plan, actor="nightly")
        assert [d.trainset_id for d in saved] == [r.trainset_id for r in plan]
        assert saved[0].reasoning == plan[0].reasoning
        assert saved[2].constraints == ["rolling_stock certificate expires soon"]

    def test_accepts_payload_models(self, service, fleet_ids):
        payload = DecisionPayload(**_payload(fleet_ids["KM-001"], 1))
        saved = service.save_decisions(DECISION_DATE, [payload], actor="a")
        assert len(saved) == 1

    def test_extra_keys_ignored(self, service, fleet_ids):
        entry = _payload(fleet_ids["KM-001"], 1)
        entry["score"] = 100
        assert len(service.save_decisions(DECISION_DATE, [entry], actor="a")) == 1

    def _assert_rejected(self, service, fleet_ids, payload, match):
        service.save_decisions(DECISION_DATE, [_payload(fleet_ids["KM-001"], 1)], actor="before")
        with pytest.raises(DecisionValidationError, match=match):
            service.save_decisions(DECISION_DATE, payload, actor="after")
        current = service.get_decisions(DECISION_DATE)
        assert [d.approved_by for d in current] == ["before"]

    def test_duplicate_trainset_rejected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 1), _payload(fleet_ids["KM-002"], 2)]
        self._assert_rejected(service, fleet_ids, payload, "Duplicate trainset_id")

    def test_non_dense_priorities_rejected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 1), _payload(fleet_ids["KM-003"], 3)]
        self._assert_rejected(service, fleet_ids, payload, "dense sequence")

    def test_repeated_priority_rejected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 1), _payload(fleet_ids["KM-003"], 1)]
        self._assert_rejected(service, fleet_ids, payload, "dense sequence")

    def test_unknown_trainset_rejected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 1), _payload(9999, 2)]
        self._assert_rejected(service, fleet_ids, payload, "Unknown trainset_id 9999")

    def test_bad_decision_value_rejected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 1, decision="scrap")]
        self._assert_rejected(service, fleet_ids, payload, r"decisions\[0\]\.decision")

    def test_missing_field_rejected(self, service, fleet_ids):
        entry = _payload(fleet_ids["KM-002"], 1)
        del entry["reasoning"]
        self._assert_rejected(service, fleet_ids, [entry], r"decisions\[0\]\.reasoning")

    def test_bad_date_rejected(self, service, fleet_ids):
        with pytest.raises(DecisionValidationError, match="Invalid decision date"):
            service.save_decisions("2025-13-01", [_payload(fleet_ids["KM-001"], 1)], actor="a")

    def test_errors_collected(self, service, fleet_ids):
        payload = [_payload(fleet_ids["KM-002"], 2), _payload(fleet_ids["KM-002"], 5)]
        with pytest.raises(DecisionValidationError) as exc_info:
            service.save_decisions(DECISION_DATE, payload, actor="a")
        assert len(exc_info.value.errors) == 2


# ── Parameter store ───────────────────────────────────────────────────────────

class TestParameters:
    def test_seed_is_idempotent(self, service):
        first = service.seed_default_parameters(actor="admin")
        second = service.seed_default_parameters(actor="admin")
        assert first == second
        assert service.parameters.count() == 2

        params = service.current_parameters()
        assert params.penalty_expiring_certificate == 50
        assert params.penalty_high_priority_jobs == 30

    def test_seed_overwrites_tuned_values(self, service):
        service.parameters.upsert(PENALTY_HIGH_PRIORITY_JOBS, 77, "tuned", "tuner")
        service.seed_default_parameters(actor="admin")
        stored = service.parameters.get_by_name(PENALTY_HIGH_PRIORITY_JOBS)
        assert stored.value == 30
        assert stored.updated_by == "admin"

    def test_current_parameters_default_when_empty(self, service):
        params = service.current_parameters()
        assert params == ScoringParameters()

    def test_train_from_history(self, service, fleet_ids):
        now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        result = service.train_from_history(actor="tuner", lookback_days=7, now=now)

        # Open cards: WO-1 (KM-003), WO-4 (KM-004), both HIGH, 2 trainsets → avg 1.0
        assert result.penalty_high_priority_jobs == 30
        # 2 of 4 certificates lapse within 48h → share 0.5
        assert result.penalty_expiring_certificate == 60
        assert result.stats["lookback_days"] == 7

        stored = {p.parameter_name: p for p in service.parameters.get_all()}
        assert stored[PENALTY_HIGH_PRIORITY_JOBS].value == 30
        assert stored[PENALTY_EXPIRING_CERTIFICATE].value == 60
        assert stored[PENALTY_EXPIRING_CERTIFICATE].updated_by == "tuner"

    def test_train_default_lookback(self, service):
        result = service.train_from_history(actor="tuner")
        assert result.stats["lookback_days"] == 14
        assert result.penalty_high_priority_jobs == 20
        assert result.penalty_expiring_certificate == 40

    @pytest.mark.parametrize("bad", [45.5, "40", True, -5])
    def test_bad_penalty_rejected_before_write(self, service, fleet_ids, bad):
        service.seed_default_parameters(actor="admin")
        with pytest.raises(ParameterValidationError):
            service.parameters.upsert(PENALTY_EXPIRING_CERTIFICATE, bad, "manual", "ops")

        assert service.parameters.get_by_name(PENALTY_EXPIRING_CERTIFICATE).value == 50
        assert len(service.generate_recommendations(DECISION_DATE)) == 3

    def test_integral_float_penalty_stored_as_int(self, service, fleet_ids):
        service.parameters.upsert(PENALTY_EXPIRING_CERTIFICATE, 40.0, "manual", "ops")
        stored = service.parameters.get_by_name(PENALTY_EXPIRING_CERTIFICATE)
        assert stored.value == 40
        assert isinstance(stored.value, int)
        assert service.current_parameters().penalty_expiring_certificate == 40

    def test_corrupt_stored_penalty_raises_typed_error(self, service, fleet_ids, in_memory_db):
        in_memory_db.execute(
            "INSERT INTO optimization_params "
            "(parameter_name, value_json, description, last_updated, updated_by) "
            "VALUES (?, ?, '', '2025-03-01T00:00:00+00:00', 'legacy');",
            (PENALTY_HIGH_PRIORITY_JOBS, "45.5"),
        )
        with pytest.raises(ParameterValidationError, match="penalty_high_priority_jobs"):
            service.generate_recommendations(DECISION_DATE)


# ── Fleet and alerts ──────────────────────────────────────────────────────────

class TestFleetAndAlerts:
    def test_get_trainset(self, service, fleet_ids):
        assert service.get_trainset("KM-003").trainset_id == fleet_ids["KM-003"]

    def test_get_trainset_unknown(self, service):
        with pytest.raises(RecordNotFoundError):
            service.get_trainset("KM-999")

    def test_fleet_stats(self, service, fleet_ids):
        stats = service.get_fleet_stats()
        assert stats.total == 4
        assert stats.active == 3
        assert stats.standby == 1

    def test_update_status_excludes_from_plan(self, service, fleet_ids):
        service.update_trainset_status(fleet_ids["KM-001"], TrainsetStatus.MAINTENANCE, "Muttom Yard")
        plan = service.generate_recommendations(DECISION_DATE)
        assert "KM-001" not in {r.trainset_number for r in plan}
        assert service.get_trainset("KM-001").current_location == "Muttom Yard"

    def test_alerts_ordered_and_resolved(self, service, fleet_ids):
        low = service.alerts.insert(Alert(
            alert_type=AlertType.MAINTENANCE_DUE, severity=AlertSeverity.LOW,
            title="Wheel profile check", message="Due next week",
        ))
        critical = service.alerts.insert(Alert(
            alert_type=AlertType.FITNESS_EXPIRY, severity=AlertSeverity.CRITICAL,
            title="Certificate lapsing", message="Rolling stock cert lapses today",
            trainset_id=fleet_ids["KM-002"],
        ))
        assert [a.alert_id for a in service.get_active_alerts()] == [critical, low]
        assert [a.alert_id for a in service.get_active_alerts(limit=1)] == [critical]

        service.mark_alert_read(low)
        resolved = service.resolve_alert(critical, actor="depot-controller")
        assert resolved.is_resolved
        assert resolved.resolved_by == "depot-controller"
        remaining = service.get_active_alerts()
        assert [a.alert_id for a in remaining] == [low]
        assert remaining[0].is_read

    def test_resolve_unknown_alert(self, service):
        with pytest.raises(RecordNotFoundError):
            service.resolve_alert(404, actor="x")
