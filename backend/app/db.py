from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import List

from dispatch_intel.errors import UpstreamUnavailable
from dispatch_intel.models import BoundingBox, IncidentRecord, Location, parse_timestamp, utc_now

from .config import DB_PATH, GATHERER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def init_db() -> None:
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS incidents (
                id TEXT PRIMARY KEY,
                incident_type TEXT NOT NULL DEFAULT 'fire',
                severity TEXT,
                description TEXT,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                response_time REAL,
                created_at TEXT NOT NULL,
                resolved_at TEXT
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_incidents_created_at ON incidents(created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_incidents_lat_lng ON incidents(latitude, longitude)")


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_PATH, timeout=GATHERER_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def to_iso(value) -> str | None:
    ts = parse_timestamp(value)
    return ts.isoformat(timespec="microseconds") if ts else None


def now_iso() -> str:
    return to_iso(utc_now())


def record_incident(
    incident_id: str,
    latitude: float,
    longitude: float,
    created_at=None,
    resolved_at=None,
    incident_type: str = "fire",
    severity: str | None = None,
    description: str = "",
    response_time: float | None = None,
) -> None:
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO incidents (
                id,incident_type,severity,description,latitude,longitude,response_time,created_at,resolved_at
            ) VALUES (?,?,?,?,?,?,?,?,?)
            """,
            (
                incident_id,
                incident_type,
                severity,
                description,
                latitude,
                longitude,
                response_time,
                to_iso(created_at) or now_iso(),
                to_iso(resolved_at),
            ),
        )


def _row_to_record(row: sqlite3.Row) -> IncidentRecord:
    return IncidentRecord(
        incident_id=row["id"],
        location=Location(row["latitude"], row["longitude"]),
        created_at=parse_timestamp(row["created_at"]),
        resolved_at=parse_timestamp(row["resolved_at"]),
        response_time=row["response_time"],
        incident_type=row["incident_type"],
        severity=row["severity"],
    )


class SqliteIncidentStore:
    """Incident history read straight from the service database."""

    def query_incidents(self, since: datetime, bbox: BoundingBox | None = None) -> List[IncidentRecord]:
        sql = "SELECT * FROM incidents WHERE created_at >= ?"
        params: list = [to_iso(since)]
        if bbox is not None:
            sql += " AND latitude BETWEEN ? AND ?"
            params += [bbox.min_latitude, bbox.max_latitude]
            # two ranges when the box crosses the antimeridian
            ranges = bbox.longitude_ranges()
            sql += " AND (" + " OR ".join("longitude BETWEEN ? AND ?" for _ in ranges) + ")"
            for low, high in ranges:
                params += [low, high]
        sql += " ORDER BY created_at DESC"

        try:
            with get_conn() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise UpstreamUnavailable(f"incident query failed: {exc}") from exc

        logger.debug("Incident store returned %d rows since %s", len(rows), since.isoformat())
        return [_row_to_record(row) for row in rows]
