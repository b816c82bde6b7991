"""
Request Timing Middleware
Tracks request latency and performance metrics.
"""

import logging
import time
from typing import Callable, Dict, Optional
from collections import deque
from threading import Lock

import numpy as np
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

_EMPTY_STATS = {
    "count": 0,
    "p50": 0.0,
    "p95": 0.0,
    "p99": 0.0,
    "mean": 0.0,
    "min": 0.0,
    "max": 0.0,
}


class LatencyTracker:
    """
    Tracks request latency statistics.

    Maintains a rolling window of recent latencies, overall and per route,
    and calculates percentiles on demand. At most ``max_paths`` routes get
    their own window; later ones only count toward the overall stats.
    """

    def __init__(self, window_size: int = 1000, max_paths: int = 256):
        """
        Initialize latency tracker.

        Args:
            window_size: Number of recent requests to track
            max_paths: Maximum number of distinct paths tracked individually
        """
        self.window_size = window_size
        self.max_paths = max_paths
        self.latencies: deque = deque(maxlen=window_size)
        self.by_path: Dict[str, deque] = {}
        self.lock = Lock()

    def record(self, latency_ms: float, path: Optional[str] = None) -> None:
        """Record a latency measurement."""
        with self.lock:
            self.latencies.append(latency_ms)
            if path is None:
                return
            window = self.by_path.get(path)
            if window is None:
                if len(self.by_path) >= self.max_paths:
                    return
                window = self.by_path[path] = deque(maxlen=self.window_size)
            window.append(latency_ms)

    def get_stats(self, path: Optional[str] = None) -> Dict[str, float]:
        """
        Get latency statistics.

        Args:
            path: Restrict to one route template (all requests if None)

        Returns:
            Dict with count, p50, p95, p99, mean, min, max
        """
        with self.lock:
            window = self.latencies if path is None else self.by_path.get(path, ())
            values = np.fromiter(window, dtype=np.float64)

        if values.size == 0:
            return dict(_EMPTY_STATS)

        p50, p95, p99 = np.percentile(values, [50, 95, 99])
        return {
            "count": int(values.size),
            "p50": float(p50),
            "p95": float(p95),
            "p99": float(p99),
            "mean": float(values.mean()),
            "min": float(values.min()),
            "max": float(values.max()),
        }

    def reset(self) -> None:
        with self.lock:
            self.latencies.clear()
            self.by_path.clear()


def route_path(request: Request) -> Optional[str]:
    """Template of the matched route, e.g. '/api/v1/search/product/{product_id}'."""
    route = request.scope.get("route")
    return getattr(route, "path", None)


# Global latency tracker
_latency_tracker = LatencyTracker()


def get_latency_tracker() -> LatencyTracker:
    """Get global latency tracker."""
    return _latency_tracker


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track request timing and performance.

    Records latency for each request and provides statistics.
    """

    def __init__(self, app, tracker: LatencyTracker = None, slow_request_ms: float = 300.0):
        """
        Initialize timing middleware.

        Args:
            app: FastAPI application
            tracker: Latency tracker (uses global if not provided)
            slow_request_ms: Requests slower than this are logged as warnings
        """
        super().__init__(app)
        self.tracker = tracker or get_latency_tracker()
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and track timing."""
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        self.tracker.record(duration_ms, path=route_path(request))

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if duration_ms > self.slow_request_ms:
            logger.warning(
                "Slow request detected",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                },
            )

        return response
