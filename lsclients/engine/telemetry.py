"""Telemetry event storage and export helpers."""
from __future__ import annotations

import csv
import json
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso_utc(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat()


def _parse_time_range(time_range: str) -> timedelta:
    match = re.match(r"^\s*(\d+)\s*([mhd])\s*$", time_range)
    if not match:
        return timedelta(hours=24)
    quantity = int(match.group(1))
    unit = match.group(2)
    if unit == "m":
        return timedelta(minutes=quantity)
    if unit == "h":
        return timedelta(hours=quantity)
    return timedelta(days=quantity)


def _coerce_metrics(metrics: dict[str, Any] | None) -> dict[str, float]:
    result: dict[str, float] = {}
    for key, value in (metrics or {}).items():
        try:
            result[str(key)] = float(value)
        except (TypeError, ValueError):
            logger.debug("Dropping non-numeric metric %s=%r", key, value)
    return result


@dataclass
class TelemetryEvent:
    timestamp: str
    source: str
    event: str
    properties: dict[str, str]
    metrics: dict[str, float]


class TelemetryCollector:
    """Records telemetry events from sessions and the analysis process."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    source TEXT NOT NULL,
                    event TEXT NOT NULL,
                    properties_json TEXT NOT NULL DEFAULT '{}',
                    metrics_json TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_name_ts ON events(event, timestamp)"
            )
            conn.commit()

    def log_event(
        self,
        event: str,
        properties: dict[str, Any] | None = None,
        metrics: dict[str, Any] | None = None,
        source: str = "",
    ) -> None:
        """Record a single telemetry event."""
        props = {str(k): str(v) for k, v in (properties or {}).items()}
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO events(timestamp, source, event, properties_json, metrics_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    _iso_utc(_utc_now()),
                    source,
                    event,
                    json.dumps(props, sort_keys=True),
                    json.dumps(_coerce_metrics(metrics), sort_keys=True),
                ),
            )
            conn.commit()
        logger.debug("Telemetry %s from %s: %s", event, source or "-", props)

    def recent_events(
        self,
        event: str | None = None,
        time_range: str = "24h",
        limit: int = 100,
    ) -> list[TelemetryEvent]:
        """Return events newer than *time_range*, newest first."""
        cutoff_iso = _iso_utc(_utc_now() - _parse_time_range(time_range))
        query = """
            SELECT timestamp, source, event, properties_json, metrics_json
            FROM events
            WHERE timestamp >= ?
        """
        args: list[Any] = [cutoff_iso]
        if event is not None:
            query += " AND event = ?"
            args.append(event)
        query += " ORDER BY id DESC LIMIT ?"
        args.append(int(limit))
        with self._connect() as conn:
            rows = conn.execute(query, args).fetchall()
        return [
            TelemetryEvent(
                timestamp=str(row["timestamp"]),
                source=str(row["source"]),
                event=str(row["event"]),
                properties=json.loads(row["properties_json"] or "{}"),
                metrics=json.loads(row["metrics_json"] or "{}"),
            )
            for row in rows
        ]

    def event_counts(self, time_range: str = "24h") -> dict[str, int]:
        """Return per-event counts over *time_range*."""
        cutoff_iso = _iso_utc(_utc_now() - _parse_time_range(time_range))
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT event, COUNT(*) AS total
                FROM events
                WHERE timestamp >= ?
                GROUP BY event
                ORDER BY total DESC, event ASC
                """,
                (cutoff_iso,),
            ).fetchall()
        return {str(row["event"]): int(row["total"]) for row in rows}

    def export_csv(self, event: str, output_path: Path) -> None:
        """Export one event type as CSV for external analysis."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT timestamp, source, event, properties_json, metrics_json
                FROM events
                WHERE event = ?
                ORDER BY id ASC
                """,
                (event,),
            ).fetchall()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(["timestamp", "source", "event", "properties_json", "metrics_json"])
            for row in rows:
                writer.writerow(
                    [
                        row["timestamp"],
                        row["source"],
                        row["event"],
                        row["properties_json"],
                        row["metrics_json"],
                    ]
                )
