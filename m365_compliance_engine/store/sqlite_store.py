"""
SQLite-backed compliance store.
Implements the log sink, alert sink, and report store for standalone runs.
Report fields keep only their latest value per tenant.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

from ..sinks.base import AlertSink, LogSink, ReportStore, Severity

logger = logging.getLogger("m365_compliance_engine.store")

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.ALERT: logging.WARNING,
}


class SqliteComplianceStore(LogSink, AlertSink, ReportStore):
    """
    Persistent store backed by SQLite.
    Features:
      - Log entries per api/tenant with severity
      - Standards alerts with their JSON-encoded object
      - Compare and best-practice fields, latest value wins
      - Connection-per-call, safe to share across async tasks
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize the store schema."""
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS log_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    api TEXT NOT NULL,
                    tenant TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    message TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    tenant TEXT NOT NULL,
                    standard_name TEXT NOT NULL,
                    standard_id TEXT,
                    message TEXT NOT NULL,
                    object TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS compare_fields (
                    tenant TEXT NOT NULL,
                    field_name TEXT NOT NULL,
                    value TEXT,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (tenant, field_name)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bpa_fields (
                    tenant TEXT NOT NULL,
                    field_name TEXT NOT NULL,
                    value TEXT,
                    store_as TEXT NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (tenant, field_name)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_log_tenant
                ON log_entries(tenant, timestamp)
            """)
            conn.commit()

    # ─── LogSink ───────────────────────────────────────────────────────────

    def log(self, api: str, tenant: str, message: str, severity: Severity) -> None:
        severity = Severity(severity)
        logger.log(_LEVELS[severity], f"[{api}] [{tenant}] {message}")
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                """
                INSERT INTO log_entries (timestamp, api, tenant, severity, message)
                VALUES (?, ?, ?, ?, ?)
                """,
                (time.time(), api, tenant, severity.value, message),
            )
            conn.commit()

    def get_logs(self, tenant: str, severity: Optional[Severity] = None) -> list[dict]:
        query = "SELECT timestamp, api, severity, message FROM log_entries WHERE tenant = ?"
        args: list[Any] = [tenant]
        if severity is not None:
            query += " AND severity = ?"
            args.append(Severity(severity).value)
        query += " ORDER BY id"
        with sqlite3.connect(str(self.db_path)) as conn:
            rows = conn.execute(query, args).fetchall()
        return [
            {"timestamp": r[0], "api": r[1], "severity": r[2], "message": r[3]}
            for r in rows
        ]

    # ─── AlertSink ─────────────────────────────────────────────────────────

    def alert(
        self,
        message: str,
        object: Any,
        tenant: str,
        standard_name: str,
        standard_id: str,
    ) -> None:
        logger.warning(f"[{standard_name}] [{tenant}] ALERT: {message}")
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                """
                INSERT INTO alerts (timestamp, tenant, standard_name, standard_id, message, object)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    time.time(), tenant, standard_name, standard_id,
                    message, json.dumps(object, default=str),
                ),
            )
            conn.commit()

    def get_alerts(self, tenant: str) -> list[dict]:
        with sqlite3.connect(str(self.db_path)) as conn:
            rows = conn.execute(
                """
                SELECT timestamp, standard_name, standard_id, message, object
                FROM alerts WHERE tenant = ? ORDER BY id
                """,
                (tenant,),
            ).fetchall()
        return [
            {
                "timestamp": r[0],
                "standard_name": r[1],
                "standard_id": r[2],
                "message": r[3],
                "object": json.loads(r[4]) if r[4] else None,
            }
            for r in rows
        ]

    # ─── ReportStore ───────────────────────────────────────────────────────

    def set_compare_field(self, field_name: str, value: Any, tenant: str) -> None:
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO compare_fields (tenant, field_name, value, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (tenant, field_name, json.dumps(value, default=str), time.time()),
            )
            conn.commit()
        logger.debug(f"[{tenant}] Compare field {field_name} = {value!r}")

    def set_bpa_field(self, field_name: str, value: Any, store_as: str, tenant: str) -> None:
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO bpa_fields (tenant, field_name, value, store_as, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (tenant, field_name, json.dumps(value, default=str), store_as, time.time()),
            )
            conn.commit()
        logger.debug(f"[{tenant}] BPA field {field_name} = {value!r} ({store_as})")

    def get_compare_field(self, field_name: str, tenant: str) -> Optional[Any]:
        """Latest compare value, or None if never written."""
        with sqlite3.connect(str(self.db_path)) as conn:
            row = conn.execute(
                "SELECT value FROM compare_fields WHERE tenant = ? AND field_name = ?",
                (tenant, field_name),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def get_bpa_field(self, field_name: str, tenant: str) -> Optional[dict]:
        with sqlite3.connect(str(self.db_path)) as conn:
            row = conn.execute(
                "SELECT value, store_as FROM bpa_fields WHERE tenant = ? AND field_name = ?",
                (tenant, field_name),
            ).fetchone()
        if row is None:
            return None
        return {"value": json.loads(row[0]), "store_as": row[1]}
