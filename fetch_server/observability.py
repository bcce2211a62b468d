from __future__ import annotations

import json
import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


LOGGER_NAME = "fetch_server"

_STRUCTURED_FIELDS = ("tool", "method", "url", "status_code", "duration_ms")


class StructuredFormatter(logging.Formatter):
    """
    Eine JSON-Zeile pro Log-Record.

    Fehlende strukturierte Felder werden als "" ausgegeben, damit jede Zeile
    dieselben Keys hat. Zusätzliche Daten (z.B. Metrics-Snapshot) kommen über
    extra={"data": ...} als verschachteltes Objekt.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
        }
        for name in _STRUCTURED_FIELDS:
            entry[name] = getattr(record, name, "")
        entry["msg"] = record.getMessage()
        data = getattr(record, "data", None)
        if data is not None:
            entry["data"] = data
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, separators=(",", ":"), default=str)


def setup_logger(level_name: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logger.setLevel(level)
    # stdout gehört dem stdio-Transport, daher nur stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def status_class(status_code: Optional[int]) -> str:
    """200 -> "2xx"; kein Status (Fehler vor/ohne Response) -> "none"."""
    if status_code is None:
        return "none"
    return f"{status_code // 100}xx"


@dataclass
class FetchStats:
    calls: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    status_classes: Dict[str, int] = field(default_factory=dict)

    def observe(self, duration_ms: float, error: bool, status_code: Optional[int]) -> None:
        self.calls += 1
        self.total_latency_ms += float(duration_ms)
        if error:
            self.errors += 1
        key = status_class(status_code)
        self.status_classes[key] = self.status_classes.get(key, 0) + 1

    @property
    def avg_latency_ms(self) -> float:
        if self.calls == 0:
            return 0.0
        return self.total_latency_ms / self.calls


class InMemoryMetrics:
    """Per-tool call stats, bucketed by upstream status class."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: Dict[str, FetchStats] = {}

    def record(self, tool: str, duration_ms: float, error: bool, status_code: Optional[int] = None) -> None:
        with self._lock:
            self._stats.setdefault(tool, FetchStats()).observe(duration_ms, error, status_code)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                name: {
                    "calls": s.calls,
                    "errors": s.errors,
                    "avg_latency_ms": round(s.avg_latency_ms, 3),
                    "status_classes": dict(sorted(s.status_classes.items())),
                }
                for name, s in self._stats.items()
            }
