"""
Shared pytest fixtures for the Metro Induction Planner test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema and migrations applied. Created anew for each test that requests it.
  - ``app_config``: An ``AppConfig`` pointing at a temp-dir database.
  - Sample domain object factories for use in multiple test modules.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from metro_induction.config import AppConfig, DataConfig, DatabaseConfig
from metro_induction.db.migrations import ensure_schema
from metro_induction.models.fleet import FitnessCertificate, JobCard, Trainset
from metro_induction.models.meta import RunMetadata
from metro_induction.taxonomy.fleet_taxonomy import (
    CertificateType,
    JobCardStatus,
    TrainsetStatus,
)

DECISION_DATE = date(2025, 3, 1)


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    ensure_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """``AppConfig`` whose database and outputs live under ``tmp_path``."""
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "db" / "test.db"), wal_mode=False),
        data=DataConfig(
            fleet_seed_file=str(Path(__file__).parent.parent / "config" / "fleet" / "sample_fleet.json"),
            processed_dir=str(tmp_path / "processed"),
            output_dir=str(tmp_path / "outputs"),
        ),
    )


# ── Sample domain object factories ────────────────────────────────────────────

def make_trainset(
    number: str = "KM-001",
    status: TrainsetStatus = TrainsetStatus.ACTIVE,
    **overrides,
) -> Trainset:
    fields = dict(
        trainset_number=number,
        manufacturer="Alstom",
        year_of_manufacture=2019,
        total_mileage=75_000.0,
        current_status=status,
        current_location="Aluva Depot",
    )
    fields.update(overrides)
    return Trainset(**fields)


def make_certificate(
    trainset_id: int,
    valid_until: datetime,
    cert_type: CertificateType = CertificateType.ROLLING_STOCK,
    is_active: bool = True,
    number: str | None = None,
) -> FitnessCertificate:
    valid_from = min(valid_until, datetime(2025, 1, 1, tzinfo=timezone.utc))
    return FitnessCertificate(
        trainset_id=trainset_id,
        certificate_type=cert_type,
        issued_by=f"{cert_type.value.upper()} Department",
        issued_date=valid_from,
        valid_from=valid_from,
        valid_until=valid_until,
        certificate_number=number or f"{cert_type.value.upper()}-{trainset_id}",
        is_active=is_active,
    )


def make_job_card(
    trainset_id: int,
    work_order: str,
    priority: str = "HIGH",
    status: JobCardStatus = JobCardStatus.OPEN,
) -> JobCard:
    return JobCard(
        trainset_id=trainset_id,
        maximo_work_order_id=work_order,
        title="Brake Pad Replacement",
        priority=priority,
        status=status,
        components=["Brake System"],
    )


@pytest.fixture
def sample_trainset() -> Trainset:
    """A valid active ``Trainset``."""
    return make_trainset()


@pytest.fixture
def sample_run_metadata() -> RunMetadata:
    """A valid mutable ``RunMetadata`` for testing."""
    return RunMetadata(
        run_slug="test-run-uuid-0001",
        pipeline_stage="induct",
        status="started",
        actor="ops-supervisor",
        decision_date="2025-03-01",
        config_snapshot={"database": {"db_path": ":memory:"}, "debug": True},
        started_at=datetime(2025, 3, 1, 22, 0, 0, tzinfo=timezone.utc),
    )
