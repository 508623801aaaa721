"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. trainsets             (no FKs)
  2. fitness_certificates  (→ trainsets)
  3. job_cards             (→ trainsets)
  4. induction_decisions   (→ trainsets)
  5. optimization_params   (no FKs)
  6. alerts                (→ trainsets, nullable)
  7. run_metadata          (no FKs)

Timestamps are stored as ISO-8601 UTC text; decision dates as ``YYYY-MM-DD``.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_TRAINSETS = """
CREATE TABLE IF NOT EXISTS trainsets (
    trainset_id                INTEGER PRIMARY KEY AUTOINCREMENT,
    trainset_number            TEXT    NOT NULL UNIQUE,
    manufacturer               TEXT    NOT NULL,
    year_of_manufacture        INTEGER NOT NULL,
    total_mileage              REAL    NOT NULL DEFAULT 0,
    current_status             TEXT    NOT NULL,
    current_location           TEXT    NOT NULL,
    last_maintenance_date      TEXT,
    next_scheduled_maintenance TEXT,
    branding_contract          TEXT,
    branding_expiry_date       TEXT,
    is_active                  INTEGER NOT NULL DEFAULT 1,
    created_at                 TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at                 TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_TRAINSETS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_trainsets_status
    ON trainsets(current_status);
CREATE INDEX IF NOT EXISTS idx_trainsets_location
    ON trainsets(current_location);
"""

_DDL_FITNESS_CERTIFICATES = """
CREATE TABLE IF NOT EXISTS fitness_certificates (
    certificate_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    trainset_id        INTEGER NOT NULL REFERENCES trainsets(trainset_id),
    certificate_type   TEXT    NOT NULL,
    issued_by          TEXT    NOT NULL,
    issued_date        TEXT    NOT NULL,
    valid_from         TEXT    NOT NULL,
    valid_until        TEXT    NOT NULL,
    certificate_number TEXT    NOT NULL,
    is_active          INTEGER NOT NULL DEFAULT 1,
    remarks            TEXT,
    created_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_FITNESS_CERTIFICATES_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_certs_trainset
    ON fitness_certificates(trainset_id);
CREATE INDEX IF NOT EXISTS idx_certs_type_trainset
    ON fitness_certificates(certificate_type, trainset_id);
CREATE INDEX IF NOT EXISTS idx_certs_validity
    ON fitness_certificates(valid_from, valid_until);
"""

_DDL_JOB_CARDS = """
CREATE TABLE IF NOT EXISTS job_cards (
    job_card_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    trainset_id          INTEGER NOT NULL REFERENCES trainsets(trainset_id),
    maximo_work_order_id TEXT    NOT NULL UNIQUE,
    title                TEXT    NOT NULL,
    description          TEXT    NOT NULL DEFAULT '',
    priority             TEXT    NOT NULL,
    status               TEXT    NOT NULL,
    assigned_to          TEXT,
    estimated_hours      REAL,
    scheduled_date       TEXT,
    components           TEXT    NOT NULL DEFAULT '[]',
    created_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_JOB_CARDS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_jobs_trainset
    ON job_cards(trainset_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status
    ON job_cards(status);
CREATE INDEX IF NOT EXISTS idx_jobs_priority
    ON job_cards(priority);
"""

_DDL_INDUCTION_DECISIONS = """
CREATE TABLE IF NOT EXISTS induction_decisions (
    decision_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    decision_date   TEXT    NOT NULL,
    trainset_id     INTEGER NOT NULL REFERENCES trainsets(trainset_id),
    decision        TEXT    NOT NULL,
    priority        INTEGER NOT NULL,
    reasoning       TEXT    NOT NULL,
    constraints     TEXT    NOT NULL DEFAULT '[]',
    conflict_alerts TEXT    NOT NULL DEFAULT '[]',
    approved_by     TEXT,
    approved_at     TEXT,
    UNIQUE (decision_date, trainset_id)
);
"""

_DDL_INDUCTION_DECISIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_decisions_date
    ON induction_decisions(decision_date, priority);
CREATE INDEX IF NOT EXISTS idx_decisions_decision
    ON induction_decisions(decision);
"""

_DDL_OPTIMIZATION_PARAMS = """
CREATE TABLE IF NOT EXISTS optimization_params (
    param_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    parameter_name TEXT    NOT NULL UNIQUE,
    value_json     TEXT    NOT NULL,
    description    TEXT    NOT NULL,
    last_updated   TEXT    NOT NULL,
    updated_by     TEXT    NOT NULL
);
"""

_DDL_ALERTS = """
CREATE TABLE IF NOT EXISTS alerts (
    alert_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    alert_type  TEXT    NOT NULL,
    severity    TEXT    NOT NULL,
    title       TEXT    NOT NULL,
    message     TEXT    NOT NULL,
    trainset_id INTEGER REFERENCES trainsets(trainset_id),
    is_read     INTEGER NOT NULL DEFAULT 0,
    is_resolved INTEGER NOT NULL DEFAULT 0,
    resolved_by TEXT,
    resolved_at TEXT,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_ALERTS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_alerts_unresolved
    ON alerts(is_resolved)
    WHERE is_resolved = 0;
CREATE INDEX IF NOT EXISTS idx_alerts_trainset
    ON alerts(trainset_id)
    WHERE trainset_id IS NOT NULL;
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    actor           TEXT    NOT NULL,
    decision_date   TEXT,
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

_ALL_DDL = [
    _DDL_TRAINSETS,
    _DDL_TRAINSETS_INDEXES,
    _DDL_FITNESS_CERTIFICATES,
    _DDL_FITNESS_CERTIFICATES_INDEXES,
    _DDL_JOB_CARDS,
    _DDL_JOB_CARDS_INDEXES,
    _DDL_INDUCTION_DECISIONS,
    _DDL_INDUCTION_DECISIONS_INDEXES,
    _DDL_OPTIMIZATION_PARAMS,
    _DDL_ALERTS,
    _DDL_ALERTS_INDEXES,
    _DDL_RUN_METADATA,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "trainsets",
    "fitness_certificates",
    "job_cards",
    "induction_decisions",
    "optimization_params",
    "alerts",
    "run_metadata",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent: safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of index names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
