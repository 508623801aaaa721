"""
Fleet taxonomy: closed categories used across the induction planner.

  - ``TrainsetStatus``       : operational state of a trainset.
  - ``CertificateType``      : regulatory clearance a fitness certificate grants.
  - ``JobCardStatus``        : lifecycle of a maintenance work order.
  - ``InductionDecisionType``: nightly induction outcome for a trainset.
  - ``AlertType`` / ``AlertSeverity``: operations alert classification.

Job card *priority* is deliberately NOT an enum: work orders arrive from the
maintenance system as free-form strings, and only the exact value
``HIGH_PRIORITY`` is significant to scoring.

This module has NO imports from any other ``metro_induction`` package.
"""

from enum import StrEnum

HIGH_PRIORITY = "HIGH"
"""Job card priority string that triggers the high-priority penalty (case-sensitive)."""


class TrainsetStatus(StrEnum):
    """Current operational status of a trainset."""

    ACTIVE = "active"
    """Available for induction; the only status considered by the planner."""

    STANDBY = "standby"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class CertificateType(StrEnum):
    """Department issuing a fitness certificate."""

    ROLLING_STOCK = "rolling_stock"
    SIGNALLING = "signalling"
    TELECOM = "telecom"


class JobCardStatus(StrEnum):
    """Lifecycle status of a maintenance job card."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class InductionDecisionType(StrEnum):
    """Nightly induction outcome, ordered best to worst."""

    REVENUE_SERVICE = "revenue_service"
    """Enters passenger service."""

    STANDBY = "standby"
    """Held in reserve at the depot."""

    MAINTENANCE = "maintenance"
    """Routed to the maintenance bay."""


class AlertType(StrEnum):
    """Category of operations alert."""

    FITNESS_EXPIRY = "fitness_expiry"
    MAINTENANCE_DUE = "maintenance_due"
    BRANDING_BREACH = "branding_breach"
    MILEAGE_IMBALANCE = "mileage_imbalance"
    SYSTEM_ERROR = "system_error"


class AlertSeverity(StrEnum):
    """Alert urgency. ``rank`` orders severities for display."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]


_SEVERITY_RANK: dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}
