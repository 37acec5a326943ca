"""Structured logging and in-memory metrics for project health recalculation."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from threading import Lock
from typing import Any


def configure_logging(level: str) -> None:
    """Configure service logging format once."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured JSON log line."""

    payload = {
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "event": event,
        **fields,
    }
    logger.log(level, json.dumps(payload, default=str, separators=(",", ":")))


class RecalculationMetrics:
    """Thread-safe in-memory metrics for health score recalculation."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.recalculations_total = 0
            self.fallback_total = 0
            self.guarded_total = 0
            self.errors_total = 0
            self.latency_ms_sum = 0.0
            self.latency_ms_count = 0
            self.last_health_score = 0

    def record_recalculation(self, latency_ms: float, health_score: int, *, guarded: bool) -> None:
        with self._lock:
            self.recalculations_total += 1
            if guarded:
                self.guarded_total += 1
            self.latency_ms_sum += max(latency_ms, 0.0)
            self.latency_ms_count += 1
            self.last_health_score = max(0, min(100, health_score))

    def record_fallback(self) -> None:
        with self._lock:
            self.fallback_total += 1

    def record_error(self, latency_ms: float) -> None:
        with self._lock:
            self.errors_total += 1
            self.latency_ms_sum += max(latency_ms, 0.0)
            self.latency_ms_count += 1

    def render_prometheus(self) -> str:
        with self._lock:
            lines = [
                "# HELP project_health_recalculations_total Total health score write-backs.",
                "# TYPE project_health_recalculations_total counter",
                f"project_health_recalculations_total {self.recalculations_total}",
                "# HELP project_health_fallback_total Scores replaced by the neutral fallback after a signal query failure.",
                "# TYPE project_health_fallback_total counter",
                f"project_health_fallback_total {self.fallback_total}",
                "# HELP project_health_guarded_total Write-backs that kept a Completed or Archived status.",
                "# TYPE project_health_guarded_total counter",
                f"project_health_guarded_total {self.guarded_total}",
                "# HELP project_health_errors_total Failed health score write-backs.",
                "# TYPE project_health_errors_total counter",
                f"project_health_errors_total {self.errors_total}",
                "# HELP project_health_latency_ms_sum Sum of recalculation latency in milliseconds.",
                "# TYPE project_health_latency_ms_sum counter",
                f"project_health_latency_ms_sum {self.latency_ms_sum:.3f}",
                "# HELP project_health_latency_ms_count Number of latency observations.",
                "# TYPE project_health_latency_ms_count counter",
                f"project_health_latency_ms_count {self.latency_ms_count}",
                "# HELP project_health_last_score Last computed health score.",
                "# TYPE project_health_last_score gauge",
                f"project_health_last_score {self.last_health_score}",
            ]
        return "\n".join(lines) + "\n"


_metrics = RecalculationMetrics()


def get_metrics() -> RecalculationMetrics:
    """Return singleton metrics collector."""

    return _metrics
