import sys
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from loguru import logger


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class ApiCallStats:
    success: int = 0
    failure: int = 0
    latency_total_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        total = self.success + self.failure
        if total == 0:
            return 0.0
        return self.latency_total_ms / total


@dataclass
class Metrics:
    start_time: float = field(default_factory=time.time)
    captures_total: int = 0
    analyses_total: int = 0
    last_capture_time: Optional[str] = None
    last_analysis_time: Optional[str] = None
    last_api_success: Optional[str] = None
    last_api_failure: Optional[str] = None
    last_api_ok: Optional[bool] = None
    failures: Counter = field(default_factory=Counter)
    api_calls: Dict[str, ApiCallStats] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_capture(self, timestamp_iso: str) -> None:
        with self.lock:
            self.captures_total += 1
            self.last_capture_time = timestamp_iso

    def record_analysis(self, timestamp_iso: str) -> None:
        with self.lock:
            self.analyses_total += 1
            self.last_analysis_time = timestamp_iso

    def record_failure(self, kind: str) -> None:
        with self.lock:
            self.failures[kind] += 1

    def record_api_call(self, provider: str, success: bool, latency_ms: float, timestamp_iso: str) -> None:
        with self.lock:
            stats = self.api_calls.setdefault(provider, ApiCallStats())
            if success:
                stats.success += 1
                self.last_api_success = timestamp_iso
                self.last_api_ok = True
            else:
                stats.failure += 1
                self.last_api_failure = timestamp_iso
                self.last_api_ok = False
            stats.latency_total_ms += latency_ms

    def to_metrics_json(self) -> dict:
        with self.lock:
            return {
                "uptime_seconds": int(time.time() - self.start_time),
                "captures_total": self.captures_total,
                "analyses_total": self.analyses_total,
                "failures": dict(self.failures),
                "api_calls": {
                    provider: {
                        "success": stats.success,
                        "failure": stats.failure,
                        "avg_latency_ms": round(stats.avg_latency_ms, 2),
                    }
                    for provider, stats in self.api_calls.items()
                },
                "last_capture": self.last_capture_time,
                "last_analysis": self.last_analysis_time,
            }


def configure_logging(log_path, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stdout, level=log_level, enqueue=True)
    logger.add(
        log_path,
        level=log_level,
        rotation="5 MB",
        retention="7 days",
        enqueue=True,
    )


def health_status(last_api_ok: Optional[bool]) -> str:
    """Degraded when the most recent inference call failed."""
    if last_api_ok is False:
        return "degraded"
    return "healthy"
