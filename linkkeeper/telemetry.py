"""Telemetry and usage metrics tracking for LinkKeeper."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    COMMAND_USAGE = "command_usage"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"
    LLM_ACTIVITY = "llm_activity"
    SYSTEM_EVENT = "system_event"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores telemetry data for the bot."""

    def __init__(self, db_path: Optional[Path] = None, flush_interval: float = 60.0):
        """Initialize telemetry collector with database storage."""
        self.db_path = db_path or Path("telemetry.db")
        self._init_database()
        self._metrics_buffer: List[MetricEvent] = []
        self._buffer_lock = threading.Lock()
        self._flush_interval = flush_interval
        self._last_flush = time.time()

    def _init_database(self):
        """Initialize telemetry database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_command(
        self,
        intent: str,
        sender_id: str,
        channel_id: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
    ):
        """Track chat command usage."""
        self.record(
            MetricType.COMMAND_USAGE,
            intent,
            1.0,
            tags={
                "sender_id": sender_id,
                "channel_id": channel_id,
                "success": str(success),
            },
            metadata={"duration_ms": duration_ms} if duration_ms else {}
        )

    def track_error(
        self,
        error_type: str,
        command: Optional[str] = None,
        sender_id: Optional[str] = None,
        error_details: Optional[str] = None
    ):
        """Track errors and failures."""
        tags = {}
        if command:
            tags["command"] = command
        if sender_id:
            tags["sender_id"] = sender_id

        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {}
        )

    def track_latency(
        self,
        operation: str,
        duration_ms: float,
        *,
        ok: bool = True,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """Record how long an outbound call (feed fetch, completion) took."""
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            tags={**(tags or {}), "ok": "true" if ok else "false"},
        )

    def track_llm_activity(
        self,
        intent: str,
        success: bool,
        duration_ms: float,
        *,
        cached: bool = False,
        error: Optional[str] = None,
    ) -> None:
        """Record latency/outcome information for a completion attempt."""

        tags = {
            "intent": intent,
            "success": "true" if success else "false",
            "cached": "true" if cached else "false",
        }
        metadata: Dict[str, Any] = {"duration_ms": duration_ms}
        if error:
            metadata["error"] = error

        self.record(
            MetricType.LLM_ACTIVITY,
            intent,
            duration_ms,
            tags=tags,
            metadata=metadata,
        )

    def track_system_event(
        self,
        event: str,
        *,
        source: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Record startup/shutdown and connection events."""

        tags = {}
        if source:
            tags["source"] = source

        metadata = {}
        if reason:
            metadata["reason"] = reason

        self.record(
            MetricType.SYSTEM_EVENT,
            event,
            1.0,
            tags=tags,
            metadata=metadata,
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Record a metric event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {}
        )

        with self._buffer_lock:
            self._metrics_buffer.append(event)
            should_flush = (
                len(self._metrics_buffer) >= 100
                or time.time() - self._last_flush > self._flush_interval
            )
        if should_flush:
            self.flush()

    def flush(self):
        """Flush buffered metrics to database."""
        with self._buffer_lock:
            pending = list(self._metrics_buffer)
            self._metrics_buffer.clear()
            self._last_flush = time.time()
        if not pending:
            return

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany("""
                    INSERT INTO metrics
                    (timestamp, metric_type, name, value, tags, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (
                        event.timestamp,
                        event.metric_type.value,
                        event.name,
                        event.value,
                        json.dumps(event.tags),
                        json.dumps(event.metadata),
                    )
                    for event in pending
                ])
                conn.commit()
            logger.debug(f"Flushed {len(pending)} metrics to database")
        except sqlite3.Error as e:
            logger.error(f"Failed to flush metrics: {e}")

    def get_command_stats(
        self,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None
    ) -> Dict[str, Dict[str, Any]]:
        """Get command usage statistics."""
        query = """
            SELECT
                name as command,
                COUNT(*) as usage_count,
                AVG(CASE WHEN json_extract(tags, '$.success') = 'True'
                    THEN 1 ELSE 0 END) as success_rate,
                COUNT(DISTINCT json_extract(tags, '$.sender_id')) as unique_senders
            FROM metrics
            WHERE metric_type = ?
        """
        params: List[Any] = [MetricType.COMMAND_USAGE.value]

        if start_time:
            query += " AND timestamp >= ?"
            params.append(start_time)
        if end_time:
            query += " AND timestamp <= ?"
            params.append(end_time)

        query += " GROUP BY name"

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            results = {}
            for row in cursor.fetchall():
                results[row[0]] = {
                    "usage_count": row[1],
                    "success_rate": row[2],
                    "unique_senders": row[3]
                }
            return results

    def get_error_summary(self, since_hours: float = 24) -> Dict[str, int]:
        """Count recorded errors by type over the trailing window."""
        since = time.time() - since_hours * 3600
        with closing(sqlite3.connect(self.db_path)) as conn:
            rows = conn.execute(
                "SELECT name, COUNT(*) FROM metrics"
                " WHERE metric_type = ? AND timestamp >= ?"
                " GROUP BY name ORDER BY COUNT(*) DESC, name",
                (MetricType.ERROR_RATE.value, since),
            ).fetchall()
        return {name: count for name, count in rows}

    def prune(self, older_than_days: float) -> int:
        """Delete stored events older than the given age; returns the count."""
        self.flush()
        cutoff = time.time() - older_than_days * 86400
        with closing(sqlite3.connect(self.db_path)) as conn:
            with conn:
                removed = conn.execute(
                    "DELETE FROM metrics WHERE timestamp < ?", (cutoff,)
                ).rowcount
        logger.info("Pruned %d metric events older than %s days", removed, older_than_days)
        return removed


class track_duration:
    """Time a block and record it as a latency metric.

    Exceptions raised inside the block are recorded as errors against the
    same operation and then propagate. With no collector the block is only
    timed, which keeps call sites free of ``if telemetry`` checks.
    """

    def __init__(
        self,
        telemetry: Optional[TelemetryCollector],
        operation: str,
        **tags: str,
    ):
        self.telemetry = telemetry
        self.operation = operation
        self.tags = tags
        self.duration_ms = 0.0
        self._started = 0.0

    def __enter__(self) -> "track_duration":
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.monotonic() - self._started) * 1000
        if self.telemetry is None:
            return
        self.telemetry.track_latency(
            self.operation, self.duration_ms, ok=exc_type is None, tags=self.tags
        )
        if exc_type is not None:
            self.telemetry.track_error(
                exc_type.__name__,
                command=self.operation,
                error_details=str(exc_val),
            )
