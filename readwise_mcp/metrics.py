"""Minimal in-process metrics recorder (not suitable for multi-process aggregation)."""

from __future__ import annotations

from collections import Counter, deque
from threading import Lock
from typing import Deque, Dict, Tuple

MAX_RECENT_DURATIONS = 100


class MetricsRecorder:
    def __init__(self, max_recent_durations: int = MAX_RECENT_DURATIONS) -> None:
        self._lock = Lock()
        self._requests = 0
        # Oldest entries fall off once the window is full.
        self._request_durations_ms: Deque[Tuple[str, float]] = deque(maxlen=max_recent_durations)
        self._method_success: Counter[str] = Counter()
        self._method_error: Counter[str] = Counter()
        self._upstream_retries = 0
        self._upstream_failures = 0
        self._streamed_items = 0

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._request_durations_ms.append((request_id, duration_ms))

    def record_method(self, method: str, *, success: bool) -> None:
        with self._lock:
            if success:
                self._method_success[method] += 1
            else:
                self._method_error[method] += 1

    def incr_upstream_retry(self) -> None:
        with self._lock:
            self._upstream_retries += 1

    def incr_upstream_failure(self) -> None:
        with self._lock:
            self._upstream_failures += 1

    def incr_streamed_items(self, count: int = 1) -> None:
        with self._lock:
            self._streamed_items += count

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "method_success": dict(self._method_success),
                "method_error": dict(self._method_error),
                "upstream_retries": self._upstream_retries,
                "upstream_failures": self._upstream_failures,
                "streamed_items": self._streamed_items,
                "recent_request_durations_ms": dict(self._request_durations_ms),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._request_durations_ms.clear()
            self._method_success.clear()
            self._method_error.clear()
            self._upstream_retries = 0
            self._upstream_failures = 0
            self._streamed_items = 0


default_metrics = MetricsRecorder()
