"""
Repositories for fleet facts: trainsets, fitness certificates, and job cards.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

from metro_induction.db.repositories.base import BaseRepository
from metro_induction.errors import RecordNotFoundError
from metro_induction.models.fleet import FitnessCertificate, FleetStats, JobCard, Trainset
from metro_induction.taxonomy.fleet_taxonomy import (
    CertificateType,
    JobCardStatus,
    TrainsetStatus,
)

logger = logging.getLogger(__name__)


class TrainsetRepository(BaseRepository):
    """Read/write access to the ``trainsets`` table."""

    def insert(self, trainset: Trainset) -> int:
        """Insert a new trainset and return its ``trainset_id``.

        Raises:
            sqlite3.IntegrityError: If ``trainset_number`` already exists.
        """
        self.execute(
            """
            INSERT INTO trainsets (
                trainset_number, manufacturer, year_of_manufacture, total_mileage,
                current_status, current_location, last_maintenance_date,
                next_scheduled_maintenance, branding_contract, branding_expiry_date,
                is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            _trainset_params(trainset),
        )
        return self.last_insert_rowid()

    def upsert(self, trainset: Trainset) -> int:
        """Insert or update a trainset by ``trainset_number``.

        Returns:
            The ``trainset_id`` (existing or new).
        """
        self.execute(
            """
            INSERT INTO trainsets (
                trainset_number, manufacturer, year_of_manufacture, total_mileage,
                current_status, current_location, last_maintenance_date,
                next_scheduled_maintenance, branding_contract, branding_expiry_date,
                is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(trainset_number) DO UPDATE SET
                manufacturer               = excluded.manufacturer,
                year_of_manufacture        = excluded.year_of_manufacture,
                total_mileage              = excluded.total_mileage,
                current_status             = excluded.current_status,
                current_location           = excluded.current_location,
                last_maintenance_date      = excluded.last_maintenance_date,
                next_scheduled_maintenance = excluded.next_scheduled_maintenance,
                branding_contract          = excluded.branding_contract,
                branding_expiry_date       = excluded.branding_expiry_date,
                is_active                  = excluded.is_active,
                updated_at                 = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            _trainset_params(trainset),
        )
        row = self.fetchone(
            "SELECT trainset_id FROM trainsets WHERE trainset_number = ?;",
            (trainset.trainset_number,),
        )
        assert row is not None
        return int(row["trainset_id"])

    def get_by_id(self, trainset_id: int) -> Optional[Trainset]:
        """Fetch a trainset by primary key, or ``None``."""
        row = self.fetchone("SELECT * FROM trainsets WHERE trainset_id = ?;", (trainset_id,))
        return _row_to_trainset(row) if row else None

    def get_by_number(self, trainset_number: str) -> Optional[Trainset]:
        """Fetch a trainset by its fleet number, or ``None``."""
        row = self.fetchone(
            "SELECT * FROM trainsets WHERE trainset_number = ?;", (trainset_number,)
        )
        return _row_to_trainset(row) if row else None

    def get_by_status(self, status: TrainsetStatus) -> list[Trainset]:
        """Fetch all trainsets in ``status``, in insertion order."""
        rows = self.fetchall(
            "SELECT * FROM trainsets WHERE current_status = ? ORDER BY trainset_id;",
            (status.value,),
        )
        return [_row_to_trainset(r) for r in rows]

    def get_all(self) -> list[Trainset]:
        """Fetch every trainset, in insertion order."""
        rows = self.fetchall("SELECT * FROM trainsets ORDER BY trainset_id;")
        return [_row_to_trainset(r) for r in rows]

    def existing_ids(self, trainset_ids: list[int]) -> set[int]:
        """Return the subset of ``trainset_ids`` present in the table."""
        if not trainset_ids:
            return set()
        placeholders = ", ".join("?" for _ in trainset_ids)
        rows = self.fetchall(
            f"SELECT trainset_id FROM trainsets WHERE trainset_id IN ({placeholders});",
            tuple(trainset_ids),
        )
        return {int(r["trainset_id"]) for r in rows}

    def update_status(
        self,
        trainset_id: int,
        status: TrainsetStatus,
        location: Optional[str] = None,
    ) -> Trainset:
        """Change a trainset's status (and optionally its location).

        Returns:
            The updated ``Trainset``.

        Raises:
            RecordNotFoundError: If ``trainset_id`` does not exist.
        """
        if location:
            cursor = self.execute(
                """
                UPDATE trainsets SET
                    current_status   = ?,
                    current_location = ?,
                    updated_at       = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
                WHERE trainset_id = ?;
                """,
                (status.value, location, trainset_id),
            )
        else:
            cursor = self.execute(
                """
                UPDATE trainsets SET
                    current_status = ?,
                    updated_at     = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
                WHERE trainset_id = ?;
                """,
                (status.value, trainset_id),
            )
        if cursor.rowcount == 0:
            raise RecordNotFoundError("trainset", trainset_id)

        updated = self.get_by_id(trainset_id)
        assert updated is not None
        logger.info("Trainset %s status -> %s", updated.trainset_number, status.value)
        return updated

    def get_stats(self) -> FleetStats:
        """Count trainsets by status."""
        rows = self.fetchall(
            "SELECT current_status, COUNT(*) AS n FROM trainsets GROUP BY current_status;"
        )
        counts = {r["current_status"]: int(r["n"]) for r in rows}
        return FleetStats(
            total=sum(counts.values()),
            active=counts.get(TrainsetStatus.ACTIVE.value, 0),
            standby=counts.get(TrainsetStatus.STANDBY.value, 0),
            maintenance=counts.get(TrainsetStatus.MAINTENANCE.value, 0),
            out_of_service=counts.get(TrainsetStatus.OUT_OF_SERVICE.value, 0),
        )

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM trainsets;")
        return int(row["n"]) if row else 0


class FitnessCertificateRepository(BaseRepository):
    """Read/write access to the ``fitness_certificates`` table."""

    def insert(self, cert: FitnessCertificate) -> int:
        """Insert a certificate and return its ``certificate_id``."""
        self.execute(
            """
            INSERT INTO fitness_certificates (
                trainset_id, certificate_type, issued_by, issued_date,
                valid_from, valid_until, certificate_number, is_active, remarks
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                cert.trainset_id,
                cert.certificate_type.value,
                cert.issued_by,
                cert.issued_date.isoformat(),
                cert.valid_from.isoformat(),
                cert.valid_until.isoformat(),
                cert.certificate_number,
                int(cert.is_active),
                cert.remarks,
            ),
        )
        return self.last_insert_rowid()

    def get_for_trainset(
        self,
        trainset_id: int,
        active_only: bool = True,
    ) -> list[FitnessCertificate]:
        """Fetch a trainset's certificates in insertion order.

        Args:
            trainset_id: Owning trainset.
            active_only: If ``True`` (default), skip ``is_active = 0`` rows.
        """
        sql = "SELECT * FROM fitness_certificates WHERE trainset_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        rows = self.fetchall(sql + " ORDER BY certificate_id;", (trainset_id,))
        return [_row_to_certificate(r) for r in rows]

    def find(self, trainset_id: int, certificate_number: str) -> Optional[FitnessCertificate]:
        """Fetch a trainset's certificate by issuer reference number, or ``None``."""
        row = self.fetchone(
            """
            SELECT * FROM fitness_certificates
            WHERE trainset_id = ? AND certificate_number = ?
            ORDER BY certificate_id LIMIT 1;
            """,
            (trainset_id, certificate_number),
        )
        return _row_to_certificate(row) if row else None

    def get_all(self) -> list[FitnessCertificate]:
        """Fetch every certificate, active or not."""
        rows = self.fetchall("SELECT * FROM fitness_certificates ORDER BY certificate_id;")
        return [_row_to_certificate(r) for r in rows]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM fitness_certificates;")
        return int(row["n"]) if row else 0


class JobCardRepository(BaseRepository):
    """Read/write access to the ``job_cards`` table."""

    def upsert(self, job: JobCard) -> int:
        """Insert or update a job card by ``maximo_work_order_id``.

        Returns:
            The ``job_card_id`` (existing or new).
        """
        self.execute(
            """
            INSERT INTO job_cards (
                trainset_id, maximo_work_order_id, title, description, priority,
                status, assigned_to, estimated_hours, scheduled_date, components
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(maximo_work_order_id) DO UPDATE SET
                trainset_id     = excluded.trainset_id,
                title           = excluded.title,
                description     = excluded.description,
                priority        = excluded.priority,
                status          = excluded.status,
                assigned_to     = excluded.assigned_to,
                estimated_hours = excluded.estimated_hours,
                scheduled_date  = excluded.scheduled_date,
                components      = excluded.components;
            """,
            (
                job.trainset_id,
                job.maximo_work_order_id,
                job.title,
                job.description,
                job.priority,
                job.status.value,
                job.assigned_to,
                job.estimated_hours,
                job.scheduled_date.isoformat() if job.scheduled_date else None,
                json.dumps(job.components),
            ),
        )
        row = self.fetchone(
            "SELECT job_card_id FROM job_cards WHERE maximo_work_order_id = ?;",
            (job.maximo_work_order_id,),
        )
        assert row is not None
        return int(row["job_card_id"])

    def get_unclosed_for_trainset(self, trainset_id: int) -> list[JobCard]:
        """Fetch a trainset's job cards whose status is anything but ``closed``.

        ``cancelled`` cards are included; this is the induction generator's
        notion of "open".
        """
        rows = self.fetchall(
            """
            SELECT * FROM job_cards
            WHERE trainset_id = ? AND status != ?
            ORDER BY job_card_id;
            """,
            (trainset_id, JobCardStatus.CLOSED.value),
        )
        return [_row_to_job_card(r) for r in rows]

    def get_by_status(self, status: JobCardStatus) -> list[JobCard]:
        """Fetch every job card with exactly ``status``."""
        rows = self.fetchall(
            "SELECT * FROM job_cards WHERE status = ? ORDER BY job_card_id;",
            (status.value,),
        )
        return [_row_to_job_card(r) for r in rows]

    def update_status(self, job_card_id: int, status: JobCardStatus) -> None:
        """Move a job card to ``status``.

        Raises:
            RecordNotFoundError: If ``job_card_id`` does not exist.
        """
        cursor = self.execute(
            "UPDATE job_cards SET status = ? WHERE job_card_id = ?;",
            (status.value, job_card_id),
        )
        if cursor.rowcount == 0:
            raise RecordNotFoundError("job card", job_card_id)

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM job_cards;")
        return int(row["n"]) if row else 0


# ── Private helpers ────────────────────────────────────────────────────────────

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _trainset_params(trainset: Trainset) -> tuple:
    return (
        trainset.trainset_number,
        trainset.manufacturer,
        trainset.year_of_manufacture,
        trainset.total_mileage,
        trainset.current_status.value,
        trainset.current_location,
        _iso(trainset.last_maintenance_date),
        _iso(trainset.next_scheduled_maintenance),
        trainset.branding_contract,
        _iso(trainset.branding_expiry_date),
        int(trainset.is_active),
    )


def _row_to_trainset(row: sqlite3.Row) -> Trainset:
    return Trainset(
        trainset_id=row["trainset_id"],
        trainset_number=row["trainset_number"],
        manufacturer=row["manufacturer"],
        year_of_manufacture=row["year_of_manufacture"],
        total_mileage=row["total_mileage"],
        current_status=TrainsetStatus(row["current_status"]),
        current_location=row["current_location"],
        last_maintenance_date=_parse_dt(row["last_maintenance_date"]),
        next_scheduled_maintenance=_parse_dt(row["next_scheduled_maintenance"]),
        branding_contract=row["branding_contract"],
        branding_expiry_date=_parse_dt(row["branding_expiry_date"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_certificate(row: sqlite3.Row) -> FitnessCertificate:
    return FitnessCertificate(
        certificate_id=row["certificate_id"],
        trainset_id=row["trainset_id"],
        certificate_type=CertificateType(row["certificate_type"]),
        issued_by=row["issued_by"],
        issued_date=datetime.fromisoformat(row["issued_date"]),
        valid_from=datetime.fromisoformat(row["valid_from"]),
        valid_until=datetime.fromisoformat(row["valid_until"]),
        certificate_number=row["certificate_number"],
        is_active=bool(row["is_active"]),
        remarks=row["remarks"],
    )


def _row_to_job_card(row: sqlite3.Row) -> JobCard:
    return JobCard(
        job_card_id=row["job_card_id"],
        trainset_id=row["trainset_id"],
        maximo_work_order_id=row["maximo_work_order_id"],
        title=row["title"],
        description=row["description"],
        priority=row["priority"],
        status=JobCardStatus(row["status"]),
        assigned_to=row["assigned_to"],
        estimated_hours=row["estimated_hours"],
        scheduled_date=_parse_dt(row["scheduled_date"]),
        components=json.loads(row["components"]),
    )
