"""
Induction decision and scoring-parameter models.

``InductionDecision`` is one persisted row of a day's induction plan, keyed by
``(decision_date, trainset_id)``. ``DecisionPayload`` is the caller-supplied
shape accepted by ``save_decisions``; it carries no audit fields, which are
stamped at commit time.

``OptimizationParameter`` is a named tunable scalar in the parameter store.
``ScoringParameters`` is the explicit, frozen penalty set handed to the
scorer at call time: the scorer never reads the store itself.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from metro_induction.errors import ParameterValidationError
from metro_induction.taxonomy.fleet_taxonomy import InductionDecisionType

if TYPE_CHECKING:
    from metro_induction.config import ScoringConfig

PENALTY_EXPIRING_CERTIFICATE = "penalty_expiring_certificate"
PENALTY_HIGH_PRIORITY_JOBS = "penalty_high_priority_jobs"

DEFAULT_PENALTY_EXPIRING_CERTIFICATE = 50
DEFAULT_PENALTY_HIGH_PRIORITY_JOBS = 30

ParameterValue = Union[bool, int, float, str]

PENALTY_NAMES = (PENALTY_EXPIRING_CERTIFICATE, PENALTY_HIGH_PRIORITY_JOBS)


def coerce_penalty(name: str, value: object) -> int:
    """Return ``value`` as a penalty integer or raise ``ParameterValidationError``.

    Bools, strings, fractional floats and negatives are rejected.
    """
    if isinstance(value, bool):
        raise ParameterValidationError(name, value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        raise ParameterValidationError(name, value)
    return value


class DecisionPayload(BaseModel):
    """One entry of a ``save_decisions`` request.

    Unknown keys (e.g. ``score`` from a generated recommendation) are ignored.

    Attributes:
        trainset_id: FK to ``trainsets.trainset_id``.
        decision: Induction outcome.
        priority: 1-based dense rank within the day's plan.
        reasoning: Human-readable explanation.
        constraints: Detected risk conditions.
        conflict_alerts: Conflicts flagged by the operator or upstream checks.
    """

    model_config = ConfigDict(frozen=True)

    trainset_id: int
    decision: InductionDecisionType
    priority: int = Field(ge=1)
    reasoning: str
    constraints: list[str]
    conflict_alerts: list[str]


class InductionDecision(BaseModel):
    """A committed induction decision for one trainset on one date.

    Attributes:
        decision_id: Auto-assigned DB PK; ``None`` before insertion.
        decision_date: Calendar date of the plan.
        trainset_id: FK to ``trainsets.trainset_id``.
        decision: Induction outcome.
        priority: 1-based dense rank (1 = best).
        reasoning: Human-readable explanation.
        constraints: Detected risk conditions.
        conflict_alerts: Conflicts flagged for this trainset.
        approved_by: Actor that committed the plan.
        approved_at: UTC commit timestamp.
        actual_outcome: What actually happened (filled in after the fact).
        performance_score: Post-hoc evaluation of the decision.
    """

    model_config = ConfigDict(frozen=True)

    decision_id: Optional[int] = None
    decision_date: date
    trainset_id: int
    decision: InductionDecisionType
    priority: int = Field(ge=1)
    reasoning: str
    constraints: list[str] = Field(default_factory=list)
    conflict_alerts: list[str] = Field(default_factory=list)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    actual_outcome: Optional[str] = None
    performance_score: Optional[float] = None


class OptimizationParameter(BaseModel):
    """A named scalar in the parameter store.

    Attributes:
        param_id: Auto-assigned DB PK; ``None`` before insertion.
        parameter_name: Unique name, e.g. ``"penalty_expiring_certificate"``.
        value: Number, boolean or string value.
        description: What the parameter controls / how it was derived.
        last_updated: UTC timestamp of the last write.
        updated_by: Actor of the last write.
    """

    model_config = ConfigDict(frozen=True)

    param_id: Optional[int] = None
    parameter_name: str
    value: ParameterValue
    description: str
    last_updated: datetime
    updated_by: str


class ScoringParameters(BaseModel):
    """Penalties applied by the induction scorer.

    Attributes:
        penalty_expiring_certificate: Subtracted once per active certificate
            lapsing before the next-day cutoff.
        penalty_high_priority_jobs: Subtracted once when any open HIGH
            priority job card exists.
    """

    model_config = ConfigDict(frozen=True)

    penalty_expiring_certificate: int = DEFAULT_PENALTY_EXPIRING_CERTIFICATE
    penalty_high_priority_jobs: int = DEFAULT_PENALTY_HIGH_PRIORITY_JOBS

    @field_validator("penalty_expiring_certificate", "penalty_high_priority_jobs", mode="before")
    @classmethod
    def validate_numeric(cls, v: object) -> object:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"Penalty must be a number, got {v!r}.")
        return v

    @field_validator("penalty_expiring_certificate", "penalty_high_priority_jobs")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Penalty must be non-negative, got {v}.")
        return v

    @classmethod
    def from_parameters(
        cls,
        parameters: list[OptimizationParameter],
        defaults: Optional["ScoringConfig"] = None,
    ) -> "ScoringParameters":
        """Build from stored parameters, falling back to defaults for missing names.

        Args:
            parameters: Records from the parameter store (any names; unrelated
                names are ignored).
            defaults: Fallback penalties. Uses the built-in 50/30 when ``None``.

        Returns:
            A frozen ``ScoringParameters``.

        Raises:
            ParameterValidationError: If a stored penalty is not a
                non-negative integer.
        """
        values: dict[str, object] = {}
        if defaults is not None:
            values[PENALTY_EXPIRING_CERTIFICATE] = defaults.penalty_expiring_certificate
            values[PENALTY_HIGH_PRIORITY_JOBS] = defaults.penalty_high_priority_jobs

        for param in parameters:
            if param.parameter_name in PENALTY_NAMES:
                values[param.parameter_name] = coerce_penalty(param.parameter_name, param.value)

        return cls(**values)
