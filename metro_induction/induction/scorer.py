"""
Trainset readiness scoring.

Score formula (integer, starts at 100, not floored)
---------------------------------------------------
    score = 100
            - penalty_expiring_certificate * (# active certificates lapsing
                                              before the next-day cutoff)
            - penalty_high_priority_jobs   * (1 if any open HIGH job card)

Certificate rule
----------------
The cutoff is 00:00 UTC on the day after ``as_of_date``. Each active
certificate whose ``valid_until`` falls strictly before it is penalised on
its own, so two lapsing certificates of the same type cost twice. A
certificate type that is simply absent is not penalised.

Job card rule
-------------
The caller supplies the trainset's open job cards. Those with priority
exactly ``"HIGH"`` (case-sensitive) trigger one flat penalty regardless of
how many there are; the count only appears in the constraint message.

Constraint order: certificate messages in input order, then the job-card
message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from metro_induction.models.fleet import FitnessCertificate, JobCard
from metro_induction.models.induction import ScoringParameters
from metro_induction.utils.time_utils import ensure_utc, next_day_cutoff

BASE_SCORE = 100


@dataclass
class TrainsetScore:
    """Result of scoring one trainset.

    Attributes:
        score:       Integer readiness score; may be negative.
        constraints: Risk conditions detected, in rule order.
    """

    score:       int
    constraints: list[str] = field(default_factory=list)


def score_trainset(
    certificates:   list[FitnessCertificate],
    open_job_cards: list[JobCard],
    as_of_date:     date,
    params:         ScoringParameters,
) -> TrainsetScore:
    """Score one trainset's readiness for induction on ``as_of_date``.

    Pure and deterministic: no I/O, no configuration lookup.

    Args:
        certificates:   The trainset's certificates (inactive ones are skipped).
        open_job_cards: The trainset's open job cards.
        as_of_date:     Decision date.
        params:         Penalties to apply.

    Returns:
        TrainsetScore with the integer score and constraint messages.
    """
    score = BASE_SCORE
    constraints: list[str] = []

    cutoff = next_day_cutoff(as_of_date)
    for cert in certificates:
        if not cert.is_active:
            continue
        if ensure_utc(cert.valid_until) < cutoff:
            score -= params.penalty_expiring_certificate
            constraints.append(f"{cert.certificate_type.value} certificate expires soon")

    high_priority = [job for job in open_job_cards if job.is_high_priority]
    if high_priority:
        score -= params.penalty_high_priority_jobs
        constraints.append(f"{len(high_priority)} high priority job cards open")

    return TrainsetScore(score=score, constraints=constraints)
