"""
Middleware
Request IDs, access logging and latency tracking.
"""

from .logging import RequestLoggingMiddleware, REQUEST_ID_HEADER
from .timing import LatencyTracker, RequestTimingMiddleware, get_latency_tracker

__all__ = [
    "RequestLoggingMiddleware",
    "REQUEST_ID_HEADER",
    "LatencyTracker",
    "RequestTimingMiddleware",
    "get_latency_tracker",
]
