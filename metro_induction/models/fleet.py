"""
Fleet fact models: trainsets and the operational records attached to them.

``Trainset`` is the fleet asset. ``FitnessCertificate`` and ``JobCard`` each
belong to exactly one trainset and are the facts the induction scorer reads.
``Alert`` is an operations notification optionally tied to a trainset.

All models are frozen: the planner treats facts as read-only input. Status
changes go through the repositories, which return fresh instances.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from metro_induction.taxonomy.fleet_taxonomy import (
    HIGH_PRIORITY,
    AlertSeverity,
    AlertType,
    CertificateType,
    JobCardStatus,
    TrainsetStatus,
)
from metro_induction.utils.time_utils import ensure_utc


class Trainset(BaseModel):
    """A multi-car train unit tracked as a fleet asset.

    Attributes:
        trainset_id: Auto-assigned DB PK; ``None`` before insertion.
        trainset_number: Unique fleet number, e.g. ``"KM-001"``.
        manufacturer: Builder name.
        year_of_manufacture: Build year.
        total_mileage: Odometer reading in km.
        current_status: Operational status; only ``active`` trainsets are inducted.
        current_location: Depot or station name.
        last_maintenance_date: When the unit last left maintenance.
        next_scheduled_maintenance: Next planned maintenance slot.
        branding_contract: Advertiser contract id wrapped on the unit, if any.
        branding_expiry_date: When that branding contract ends.
        is_active: Whether the unit is still part of the fleet register.
    """

    model_config = ConfigDict(frozen=True)

    trainset_id: Optional[int] = None
    trainset_number: str
    manufacturer: str
    year_of_manufacture: int
    total_mileage: float = 0.0
    current_status: TrainsetStatus = TrainsetStatus.STANDBY
    current_location: str
    last_maintenance_date: Optional[datetime] = None
    next_scheduled_maintenance: Optional[datetime] = None
    branding_contract: Optional[str] = None
    branding_expiry_date: Optional[datetime] = None
    is_active: bool = True

    @field_validator("trainset_number")
    @classmethod
    def validate_trainset_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("trainset_number must not be empty.")
        return v

    @field_validator("total_mileage")
    @classmethod
    def validate_mileage(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"total_mileage must be non-negative, got {v}.")
        return v


class FitnessCertificate(BaseModel):
    """A regulatory fitness clearance with a validity window.

    Only certificates with ``is_active=True`` are considered when scoring.

    Attributes:
        certificate_id: Auto-assigned DB PK; ``None`` before insertion.
        trainset_id: FK to ``trainsets.trainset_id``.
        certificate_type: Issuing domain (rolling stock, signalling, telecom).
        issued_by: Issuing department.
        issued_date: When the certificate was issued.
        valid_from: Start of the validity window.
        valid_until: End of the validity window.
        certificate_number: Issuer's reference number.
        is_active: Whether the certificate is current (superseded ones are not).
        remarks: Free-form note.
    """

    model_config = ConfigDict(frozen=True)

    certificate_id: Optional[int] = None
    trainset_id: int
    certificate_type: CertificateType
    issued_by: str
    issued_date: datetime
    valid_from: datetime
    valid_until: datetime
    certificate_number: str
    is_active: bool = True
    remarks: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "FitnessCertificate":
        # Mixed naive/aware inputs compare as UTC.
        if ensure_utc(self.valid_until) < ensure_utc(self.valid_from):
            raise ValueError(
                f"valid_until ({self.valid_until}) must be >= valid_from ({self.valid_from})."
            )
        return self


class JobCard(BaseModel):
    """A maintenance work order imported from the maintenance system.

    Attributes:
        job_card_id: Auto-assigned DB PK; ``None`` before insertion.
        trainset_id: FK to ``trainsets.trainset_id``.
        maximo_work_order_id: Work order id in the maintenance system.
        title: Short description.
        description: Full description.
        priority: Free-form priority string (``"HIGH"``, ``"MEDIUM"``, ``"LOW"``).
        status: Lifecycle status.
        assigned_to: Technician or crew.
        estimated_hours: Planned effort.
        scheduled_date: Planned start.
        components: Affected subsystems.
    """

    model_config = ConfigDict(frozen=True)

    job_card_id: Optional[int] = None
    trainset_id: int
    maximo_work_order_id: str
    title: str
    description: str = ""
    priority: str
    status: JobCardStatus = JobCardStatus.OPEN
    assigned_to: Optional[str] = None
    estimated_hours: Optional[float] = None
    scheduled_date: Optional[datetime] = None
    components: list[str] = Field(default_factory=list)

    @property
    def is_high_priority(self) -> bool:
        """``True`` only for the exact, case-sensitive priority ``"HIGH"``."""
        return self.priority == HIGH_PRIORITY


class Alert(BaseModel):
    """Operations alert, optionally attached to a trainset.

    Attributes:
        alert_id: Auto-assigned DB PK; ``None`` before insertion.
        alert_type: Category of alert.
        severity: Urgency.
        title: Headline.
        message: Body text.
        trainset_id: Related trainset, if any.
        is_read: Acknowledged by an operator.
        is_resolved: Closed out.
        resolved_by: Actor who resolved it.
        resolved_at: When it was resolved.
    """

    model_config = ConfigDict(frozen=True)

    alert_id: Optional[int] = None
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    trainset_id: Optional[int] = None
    is_read: bool = False
    is_resolved: bool = False
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None


class FleetStats(BaseModel):
    """Trainset counts by operational status."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    active: int = 0
    standby: int = 0
    maintenance: int = 0
    out_of_service: int = 0
