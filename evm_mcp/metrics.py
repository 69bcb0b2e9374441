"""In-process counters for requests, tool outcomes and upstream calls (single process only)."""

from __future__ import annotations

from collections import Counter, deque
from threading import Lock
from typing import Deque, Dict, Tuple

# Only the most recent request durations are kept.
RECENT_DURATIONS = 100


class MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._rate_limited = 0
        self._durations: Deque[Tuple[str, float]] = deque(maxlen=RECENT_DURATIONS)
        self._tool_success: Counter[str] = Counter()
        self._tool_error: Counter[str] = Counter()
        self._upstream_ok: Counter[str] = Counter()
        self._upstream_failed: Counter[str] = Counter()

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._durations.append((request_id, duration_ms))

    def incr_rate_limited(self) -> None:
        with self._lock:
            self._rate_limited += 1

    def record_tool(self, tool: str, *, success: bool) -> None:
        with self._lock:
            counter = self._tool_success if success else self._tool_error
            counter[tool] += 1

    def record_upstream(self, target: str, *, success: bool) -> None:
        """Count one call to ``rpc``, ``routescan``, ``sourcify`` or ``archive``."""
        with self._lock:
            counter = self._upstream_ok if success else self._upstream_failed
            counter[target] += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "rate_limited": self._rate_limited,
                "tool_success": dict(self._tool_success),
                "tool_error": dict(self._tool_error),
                "upstream_ok": dict(self._upstream_ok),
                "upstream_failed": dict(self._upstream_failed),
                "recent_request_durations_ms": dict(self._durations),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._rate_limited = 0
            self._durations.clear()
            self._tool_success.clear()
            self._tool_error.clear()
            self._upstream_ok.clear()
            self._upstream_failed.clear()


default_metrics = MetricsRecorder()
