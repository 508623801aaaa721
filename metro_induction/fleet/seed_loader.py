"""
Fleet seed loader: JSON → SQLite → Parquet.

Responsibilities
----------------
1. Load ``config/fleet/sample_fleet.json`` (or any fleet JSON) and validate it.
2. Upsert trainsets (by ``trainset_number``) and job cards (by
   ``maximo_work_order_id``); insert certificates and alerts not already
   present, so re-running the loader is idempotent.
3. Export a per-trainset fleet snapshot to ``fleet_snapshot.parquet``.

Input document
--------------
    {
      "trainsets":            [{"trainset_number": "KM-001", ...}, ...],
      "fitness_certificates": [{"trainset_number": "KM-001", ...}, ...],
      "job_cards":            [{"trainset_number": "KM-001", ...}, ...],
      "alerts":               [{"trainset_number": "KM-001" | null, ...}, ...]
    }

Child records reference their trainset by ``trainset_number``; the loader
resolves it to ``trainset_id``. Keys starting with ``_`` are ignored.

Parquet schema (fleet_snapshot.parquet)
---------------------------------------
  trainset_number       (string)
  manufacturer          (string)
  year_of_manufacture   (int32)
  total_mileage         (float64)
  current_status        (string)
  current_location      (string)
  active_certificates   (int32)
  earliest_cert_expiry  (timestamp[us, UTC], nullable)
  unclosed_job_cards    (int32)
  high_priority_jobs    (int32)
  unresolved_alerts     (int32)

Validation rules
----------------
- Duplicate ``trainset_number`` values are rejected.
- Every child record must reference a trainset in the same document or
  already in the database.
- Each record must pass its pydantic model's validation
  (e.g. ``valid_until >= valid_from``).

Usage
-----
    from metro_induction.fleet.seed_loader import load_fleet_seed

    result = load_fleet_seed(
        conn=conn,
        seed_path=Path("config/fleet/sample_fleet.json"),
        output_dir=Path("data/processed/fleet"),
    )
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pyarrow as pa
import pyarrow.parquet as pq
from pydantic import ValidationError

from metro_induction.db.repositories.alert_repo import AlertRepository
from metro_induction.db.repositories.fleet_repo import (
    FitnessCertificateRepository,
    JobCardRepository,
    TrainsetRepository,
)
from metro_induction.models.fleet import Alert, FitnessCertificate, JobCard, Trainset
from metro_induction.taxonomy.fleet_taxonomy import HIGH_PRIORITY, JobCardStatus
from metro_induction.utils.time_utils import ensure_utc

log = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "fleet_snapshot.parquet"

_SNAPSHOT_PA_SCHEMA = pa.schema([
    pa.field("trainset_number",      pa.string(),                   nullable=False),
    pa.field("manufacturer",         pa.string(),                   nullable=False),
    pa.field("year_of_manufacture",  pa.int32(),                    nullable=False),
    pa.field("total_mileage",        pa.float64(),                  nullable=False),
    pa.field("current_status",       pa.string(),                   nullable=False),
    pa.field("current_location",     pa.string(),                   nullable=False),
    pa.field("active_certificates",  pa.int32(),                    nullable=False),
    pa.field("earliest_cert_expiry", pa.timestamp("us", tz="UTC"),  nullable=True),
    pa.field("unclosed_job_cards",   pa.int32(),                    nullable=False),
    pa.field("high_priority_jobs",   pa.int32(),                    nullable=False),
    pa.field("unresolved_alerts",    pa.int32(),                    nullable=False),
])


@dataclass
class FleetSeedResult:
    """Counts of records written by one loader run."""

    trainsets:    int = 0
    certificates: int = 0
    job_cards:    int = 0
    alerts:       int = 0
    snapshot_path: Optional[Path] = None


# ── Validation ────────────────────────────────────────────────────────────────

def _records(doc: dict[str, Any], key: str) -> list[dict[str, Any]]:
    """Return the records under ``key``, minus ``_comment``-style entries."""
    raw = doc.get(key, [])
    if not isinstance(raw, list):
        raise ValueError(f"'{key}' must be a list, got {type(raw).__name__}.")
    return [
        {k: v for k, v in rec.items() if not k.startswith("_")}
        for rec in raw
        if isinstance(rec, dict) and any(not k.startswith("_") for k in rec)
    ]


def _validate_trainsets(records: list[dict[str, Any]]) -> list[Trainset]:
    seen: set[str] = set()
    trainsets: list[Trainset] = []
    for i, rec in enumerate(records):
        try:
            trainset = Trainset.model_validate(rec)
        except ValidationError as exc:
            raise ValueError(f"Trainset at index {i} is invalid: {exc}") from exc
        if trainset.trainset_number in seen:
            raise ValueError(
                f"Duplicate trainset_number '{trainset.trainset_number}' at index {i}."
            )
        seen.add(trainset.trainset_number)
        trainsets.append(trainset)
    return trainsets


def _resolve_children(
    records: list[dict[str, Any]],
    kind: str,
    number_to_id: dict[str, int],
    required: bool = True,
) -> list[dict[str, Any]]:
    """Replace ``trainset_number`` with ``trainset_id`` in each record."""
    resolved: list[dict[str, Any]] = []
    for i, rec in enumerate(records):
        rec = dict(rec)
        number = rec.pop("trainset_number", None)
        if number is None:
            if required:
                raise ValueError(f"{kind} at index {i} is missing 'trainset_number'.")
            resolved.append(rec)
            continue
        if number not in number_to_id:
            raise ValueError(
                f"{kind} at index {i} references unknown trainset_number '{number}'."
            )
        rec["trainset_id"] = number_to_id[number]
        resolved.append(rec)
    return resolved


def _validate_models(records: list[dict[str, Any]], model: type, kind: str) -> list[Any]:
    out = []
    for i, rec in enumerate(records):
        try:
            out.append(model.model_validate(rec))
        except ValidationError as exc:
            raise ValueError(f"{kind} at index {i} is invalid: {exc}") from exc
    return out


# ── Parquet export ────────────────────────────────────────────────────────────

def export_fleet_snapshot(conn: sqlite3.Connection, output_dir: Path) -> Path:
    """Export one row per trainset with certificate/job/alert aggregates."""
    rows = conn.execute(
        """
        SELECT t.trainset_id, t.trainset_number, t.manufacturer, t.year_of_manufacture,
               t.total_mileage, t.current_status, t.current_location,
               (SELECT COUNT(*) FROM fitness_certificates c
                 WHERE c.trainset_id = t.trainset_id AND c.is_active = 1)
                   AS active_certificates,
               (SELECT COUNT(*) FROM job_cards j
                 WHERE j.trainset_id = t.trainset_id AND j.status != ?)
                   AS unclosed_job_cards,
               (SELECT COUNT(*) FROM job_cards j
                 WHERE j.trainset_id = t.trainset_id AND j.status != ?
                   AND j.priority = ?)
                   AS high_priority_jobs,
               (SELECT COUNT(*) FROM alerts a
                 WHERE a.trainset_id = t.trainset_id AND a.is_resolved = 0)
                   AS unresolved_alerts
        FROM trainsets t
        ORDER BY t.trainset_number
        """,
        (JobCardStatus.CLOSED.value, JobCardStatus.CLOSED.value, HIGH_PRIORITY),
    ).fetchall()

    # Stored offsets differ, so the minimum is taken on UTC datetimes, not text.
    earliest: dict[int, datetime] = {}
    for cert in conn.execute(
        "SELECT trainset_id, valid_until FROM fitness_certificates WHERE is_active = 1;"
    ):
        expiry = ensure_utc(datetime.fromisoformat(cert["valid_until"]))
        current = earliest.get(cert["trainset_id"])
        if current is None or expiry < current:
            earliest[cert["trainset_id"]] = expiry
    expiries = [earliest.get(r["trainset_id"]) for r in rows]

    table = pa.table(
        {
            "trainset_number":     pa.array([r["trainset_number"]     for r in rows], type=pa.string()),
            "manufacturer":        pa.array([r["manufacturer"]        for r in rows], type=pa.string()),
            "year_of_manufacture": pa.array([r["year_of_manufacture"] for r in rows], type=pa.int32()),
            "total_mileage":       pa.array([float(r["total_mileage"]) for r in rows], type=pa.float64()),
            "current_status":      pa.array([r["current_status"]      for r in rows], type=pa.string()),
            "current_location":    pa.array([r["current_location"]    for r in rows], type=pa.string()),
            "active_certificates": pa.array([r["active_certificates"] for r in rows], type=pa.int32()),
            "earliest_cert_expiry": pa.array(expiries, type=pa.timestamp("us", tz="UTC")),
            "unclosed_job_cards":  pa.array([r["unclosed_job_cards"]  for r in rows], type=pa.int32()),
            "high_priority_jobs":  pa.array([r["high_priority_jobs"]  for r in rows], type=pa.int32()),
            "unresolved_alerts":   pa.array([r["unresolved_alerts"]   for r in rows], type=pa.int32()),
        },
        schema=_SNAPSHOT_PA_SCHEMA,
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    out_path = output_dir / SNAPSHOT_FILENAME
    pq.write_table(table, out_path, compression="snappy")
    log.info("Exported fleet snapshot (%d trainsets) to %s", len(rows), out_path)
    return out_path


# ── Top-level entry point ─────────────────────────────────────────────────────

def load_fleet_seed(
    conn: sqlite3.Connection,
    seed_path: Path,
    output_dir: Path | None = None,
) -> FleetSeedResult:
    """Load, validate, upsert, and export a fleet seed document.

    The whole document is validated before the first write.

    Args:
        conn:       Open SQLite connection with the schema applied.
        seed_path:  Path to the fleet JSON document.
        output_dir: Directory for the Parquet snapshot; skipped when ``None``.

    Returns:
        FleetSeedResult with per-table write counts.

    Raises:
        ValueError: On any validation failure (nothing is written).
    """
    log.info("Loading fleet seed from %s", seed_path)
    doc = json.loads(seed_path.read_text(encoding="utf-8"))
    if not isinstance(doc, dict):
        raise ValueError("Fleet seed must be a JSON object.")

    trainset_repo = TrainsetRepository(conn)
    cert_repo = FitnessCertificateRepository(conn)
    job_repo = JobCardRepository(conn)
    alert_repo = AlertRepository(conn)

    # ── Validate ──────────────────────────────────────────────────────────────
    trainsets = _validate_trainsets(_records(doc, "trainsets"))

    known: dict[str, int] = {
        t.trainset_number: t.trainset_id
        for t in trainset_repo.get_all()
        if t.trainset_id is not None
    }
    # Numbers new to the DB get negative placeholder ids until upserted.
    placeholder = {
        t.trainset_number: -(i + 1)
        for i, t in enumerate(trainsets)
        if t.trainset_number not in known
    }
    number_to_id = {**known, **placeholder}

    cert_raw = _resolve_children(
        _records(doc, "fitness_certificates"), "Certificate", number_to_id
    )
    job_raw = _resolve_children(_records(doc, "job_cards"), "Job card", number_to_id)
    alert_raw = _resolve_children(
        _records(doc, "alerts"), "Alert", number_to_id, required=False
    )
    _validate_models(cert_raw, FitnessCertificate, "Certificate")
    _validate_models(job_raw, JobCard, "Job card")
    _validate_models(alert_raw, Alert, "Alert")

    # ── Upsert ────────────────────────────────────────────────────────────────
    result = FleetSeedResult()
    id_map: dict[int, int] = {v: v for v in known.values()}
    for trainset in trainsets:
        real_id = trainset_repo.upsert(trainset)
        if trainset.trainset_number in placeholder:
            id_map[placeholder[trainset.trainset_number]] = real_id
        result.trainsets += 1

    for rec in cert_raw:
        cert = FitnessCertificate.model_validate({**rec, "trainset_id": id_map[rec["trainset_id"]]})
        if cert_repo.find(cert.trainset_id, cert.certificate_number) is None:
            cert_repo.insert(cert)
            result.certificates += 1

    for rec in job_raw:
        job_repo.upsert(JobCard.model_validate({**rec, "trainset_id": id_map[rec["trainset_id"]]}))
        result.job_cards += 1

    for rec in alert_raw:
        if rec.get("trainset_id") is not None:
            rec = {**rec, "trainset_id": id_map[rec["trainset_id"]]}
        alert = Alert.model_validate(rec)
        if not alert_repo.exists(alert.alert_type, alert.title, alert.trainset_id):
            alert_repo.insert(alert)
            result.alerts += 1

    conn.commit()
    log.info(
        "Fleet seed loaded: trainsets=%d certificates=%d job_cards=%d alerts=%d",
        result.trainsets, result.certificates, result.job_cards, result.alerts,
    )

    if output_dir is not None:
        result.snapshot_path = export_fleet_snapshot(conn, output_dir)
    return result
