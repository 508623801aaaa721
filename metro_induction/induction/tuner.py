"""
Penalty auto-tuner.

Derives the two scoring penalties from current fleet statistics:

    avg_high = high_priority_jobs / max(1, distinct trainsets with open cards)
    penalty_high_priority_jobs   = min(cap, round(20 + avg_high * 10))

    share = expiring_soon_certs / max(1, total_certificates)
    penalty_expiring_certificate = min(cap, round(40 + share * 40))

``round`` is half-up (``floor(x + 0.5)``), not Python's round-half-even.

Only job cards with status exactly ``open`` are counted here; the
recommendation generator uses the broader "not closed" filter instead.
``lookback_days`` is carried through to the stats unchanged and does not
enter any formula.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from metro_induction.config import TuningConfig
from metro_induction.models.fleet import FitnessCertificate, JobCard
from metro_induction.taxonomy.fleet_taxonomy import JobCardStatus
from metro_induction.utils.time_utils import ensure_utc


@dataclass
class TuningCounters:
    """Raw fleet counters the tuner works from.

    Attributes:
        open_job_cards:         Job cards with status ``open``.
        high_priority_jobs:     Of those, priority exactly ``"HIGH"``.
        distinct_trainsets:     Distinct trainsets referenced by open cards.
        expiring_soon_certs:    Active certificates lapsing within the horizon.
        total_certificates:     Every certificate, active or not.
    """

    open_job_cards:      int = 0
    high_priority_jobs:  int = 0
    distinct_trainsets:  int = 0
    expiring_soon_certs: int = 0
    total_certificates:  int = 0


@dataclass
class TuningResult:
    """Output of one tuning run."""

    penalty_high_priority_jobs:   int
    penalty_expiring_certificate: int
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "penalty_high_priority_jobs":   self.penalty_high_priority_jobs,
            "penalty_expiring_certificate": self.penalty_expiring_certificate,
            "stats":                        dict(self.stats),
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (``2.5 -> 3``)."""
    return int(math.floor(value + 0.5))


def count_tuning_inputs(
    job_cards:    list[JobCard],
    certificates: list[FitnessCertificate],
    now:          datetime,
    expiry_horizon_hours: int = 48,
) -> TuningCounters:
    """Reduce job cards and certificates to ``TuningCounters``.

    Args:
        job_cards:    Job cards to consider; non-``open`` ones are ignored.
        certificates: All certificates in the fleet.
        now:          Reference time for the expiry horizon.
        expiry_horizon_hours: Window after ``now`` that counts as "soon".
    """
    open_cards = [j for j in job_cards if j.status == JobCardStatus.OPEN]
    horizon = ensure_utc(now) + timedelta(hours=expiry_horizon_hours)

    return TuningCounters(
        open_job_cards=len(open_cards),
        high_priority_jobs=sum(1 for j in open_cards if j.is_high_priority),
        distinct_trainsets=len({j.trainset_id for j in open_cards}),
        expiring_soon_certs=sum(
            1 for c in certificates
            if c.is_active and ensure_utc(c.valid_until) <= horizon
        ),
        total_certificates=len(certificates),
    )


def tune_penalties(
    counters:      TuningCounters,
    lookback_days: int = 14,
    config:        TuningConfig | None = None,
) -> TuningResult:
    """Compute both penalties from ``counters``.

    Never raises on empty input: both denominators are floored at 1.

    Args:
        counters:      Fleet counters from ``count_tuning_inputs``.
        lookback_days: Echoed into ``stats``; unused by the formulas.
        config:        Bases, weights and cap. Defaults to ``TuningConfig()``.

    Returns:
        TuningResult with the new penalties and diagnostic stats.
    """
    cfg = config or TuningConfig()

    active_trainsets_count = max(1, counters.distinct_trainsets)
    avg_high_jobs = counters.high_priority_jobs / active_trainsets_count
    penalty_high = min(
        cfg.penalty_cap,
        round_half_up(cfg.high_priority_base + avg_high_jobs * cfg.high_priority_per_job),
    )

    expiring_share = counters.expiring_soon_certs / max(1, counters.total_certificates)
    penalty_expiring = min(
        cfg.penalty_cap,
        round_half_up(
            cfg.expiring_certificate_base + expiring_share * cfg.expiring_certificate_weight
        ),
    )

    return TuningResult(
        penalty_high_priority_jobs=penalty_high,
        penalty_expiring_certificate=penalty_expiring,
        stats={
            "lookback_days":          lookback_days,
            "open_job_cards":         counters.open_job_cards,
            "high_priority_jobs":     counters.high_priority_jobs,
            "expiring_soon_certs":    counters.expiring_soon_certs,
            "total_certificates":     counters.total_certificates,
            "active_trainsets_count": active_trainsets_count,
        },
    )
