"""
Request Timing
Rolling latency windows and the middleware that feeds them.
"""

import logging
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque, Dict, Iterable, Optional

import numpy as np
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

RESPONSE_TIME_HEADER = "X-Response-Time"

PERCENTILES = (50, 95, 99)


def summarize(latencies: Iterable[float]) -> Dict[str, float]:
    """
    Count, nearest-rank percentiles, mean, min and max of a latency sample.

    An empty sample summarizes to zeros.
    """
    values = np.fromiter(latencies, dtype=np.float64)
    if values.size == 0:
        return {"count": 0, **{f"p{p}": 0.0 for p in PERCENTILES}, "mean": 0.0, "min": 0.0, "max": 0.0}

    summary = {"count": int(values.size)}
    for p, value in zip(PERCENTILES, np.percentile(values, PERCENTILES, method="inverted_cdf")):
        summary[f"p{p}"] = float(value)
    summary["mean"] = float(values.mean())
    summary["min"] = float(values.min())
    summary["max"] = float(values.max())
    return summary


class LatencyTracker:
    """
    Keeps the most recent request latencies, overall and per endpoint path.

    Each window holds at most `window_size` samples; older ones fall off.
    """

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size
        self._overall: Deque[float] = deque(maxlen=window_size)
        self._by_path: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window_size))
        self._lock = Lock()

    def record(self, latency_ms: float, path: Optional[str] = None) -> None:
        with self._lock:
            self._overall.append(latency_ms)
            if path is not None:
                self._by_path[path].append(latency_ms)

    def get_stats(self, path: Optional[str] = None) -> Dict[str, float]:
        """Summary of one endpoint's window, or of all requests when path is None."""
        with self._lock:
            if path is None:
                sample = list(self._overall)
            else:
                sample = list(self._by_path.get(path, ()))
        return summarize(sample)

    def get_endpoint_stats(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            samples = {path: list(window) for path, window in self._by_path.items()}
        return {path: summarize(sample) for path, sample in samples.items()}

    def reset(self) -> None:
        with self._lock:
            self._overall.clear()
            self._by_path.clear()


# Process-wide tracker shared by the middleware and the /metrics endpoint
_latency_tracker = LatencyTracker()


def get_latency_tracker() -> LatencyTracker:
    """Get global latency tracker."""
    return _latency_tracker


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Times every request, records it by route path and flags slow ones.

    Samples are keyed by the matched route template (e.g. /api/v1/items/{item_id}/popularity)
    so that path parameters do not create one window per id.
    """

    def __init__(
        self,
        app,
        tracker: Optional[LatencyTracker] = None,
        slow_threshold_ms: float = 300.0,
    ):
        super().__init__(app)
        self.tracker = tracker or get_latency_tracker()
        self.slow_threshold_ms = slow_threshold_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        self.tracker.record(elapsed_ms, path=path)

        response.headers[RESPONSE_TIME_HEADER] = f"{elapsed_ms:.2f}ms"

        if elapsed_ms > self.slow_threshold_ms:
            logger.warning(
                f"Slow request: {request.method} {path} took {elapsed_ms:.1f}ms "
                f"(threshold {self.slow_threshold_ms:.0f}ms)",
                extra={"path": path, "duration_ms": elapsed_ms},
            )

        return response
