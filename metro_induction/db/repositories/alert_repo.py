"""
Repository for operations alerts.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from metro_induction.db.repositories.base import BaseRepository
from metro_induction.errors import RecordNotFoundError
from metro_induction.models.fleet import Alert
from metro_induction.taxonomy.fleet_taxonomy import AlertSeverity, AlertType
from metro_induction.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class AlertRepository(BaseRepository):
    """Read/write access to the ``alerts`` table."""

    def insert(self, alert: Alert) -> int:
        """Insert an alert and return its ``alert_id``."""
        self.execute(
            """
            INSERT INTO alerts (
                alert_type, severity, title, message, trainset_id,
                is_read, is_resolved, resolved_by, resolved_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                alert.alert_type.value,
                alert.severity.value,
                alert.title,
                alert.message,
                alert.trainset_id,
                int(alert.is_read),
                int(alert.is_resolved),
                alert.resolved_by,
                alert.resolved_at.isoformat() if alert.resolved_at else None,
            ),
        )
        return self.last_insert_rowid()

    def get_by_id(self, alert_id: int) -> Optional[Alert]:
        row = self.fetchone("SELECT * FROM alerts WHERE alert_id = ?;", (alert_id,))
        return _row_to_alert(row) if row else None

    def get_active(self, limit: Optional[int] = None) -> list[Alert]:
        """Fetch unresolved alerts, most severe first.

        Ties on severity keep insertion order.

        Args:
            limit: Maximum number of alerts to return; all when ``None``.
        """
        rows = self.fetchall(
            "SELECT * FROM alerts WHERE is_resolved = 0 ORDER BY alert_id;"
        )
        alerts = sorted(
            (_row_to_alert(r) for r in rows),
            key=lambda a: a.severity.rank,
            reverse=True,
        )
        return alerts[:limit] if limit is not None else alerts

    def get_for_trainset(self, trainset_id: int) -> list[Alert]:
        """Fetch every alert (resolved or not) raised against a trainset."""
        rows = self.fetchall(
            "SELECT * FROM alerts WHERE trainset_id = ? ORDER BY alert_id;",
            (trainset_id,),
        )
        return [_row_to_alert(r) for r in rows]

    def exists(
        self,
        alert_type: AlertType,
        title: str,
        trainset_id: Optional[int],
    ) -> bool:
        """Whether an unresolved alert with the same type, title and trainset exists."""
        row = self.fetchone(
            """
            SELECT 1 FROM alerts
            WHERE alert_type = ? AND title = ? AND trainset_id IS ? AND is_resolved = 0
            LIMIT 1;
            """,
            (alert_type.value, title, trainset_id),
        )
        return row is not None

    def mark_read(self, alert_id: int) -> None:
        """Flag an alert as read.

        Raises:
            RecordNotFoundError: If ``alert_id`` does not exist.
        """
        cursor = self.execute("UPDATE alerts SET is_read = 1 WHERE alert_id = ?;", (alert_id,))
        if cursor.rowcount == 0:
            raise RecordNotFoundError("alert", alert_id)

    def resolve(
        self,
        alert_id: int,
        actor: str,
        resolved_at: Optional[datetime] = None,
    ) -> Alert:
        """Close out an alert, recording who resolved it and when.

        Returns:
            The updated ``Alert``.

        Raises:
            RecordNotFoundError: If ``alert_id`` does not exist.
        """
        cursor = self.execute(
            """
            UPDATE alerts SET
                is_resolved = 1,
                resolved_by = ?,
                resolved_at = ?
            WHERE alert_id = ?;
            """,
            (actor, (resolved_at or utcnow()).isoformat(), alert_id),
        )
        if cursor.rowcount == 0:
            raise RecordNotFoundError("alert", alert_id)

        logger.info("Alert %d resolved by %s", alert_id, actor)
        resolved = self.get_by_id(alert_id)
        assert resolved is not None
        return resolved

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM alerts;")
        return int(row["n"]) if row else 0


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        alert_id=row["alert_id"],
        alert_type=AlertType(row["alert_type"]),
        severity=AlertSeverity(row["severity"]),
        title=row["title"],
        message=row["message"],
        trainset_id=row["trainset_id"],
        is_read=bool(row["is_read"]),
        is_resolved=bool(row["is_resolved"]),
        resolved_by=row["resolved_by"],
        resolved_at=datetime.fromisoformat(row["resolved_at"]) if row["resolved_at"] else None,
    )
