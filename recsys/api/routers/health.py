"""
Health Check Endpoints
Liveness, readiness, component status and latency metrics.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from ..middleware.timing import get_latency_tracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _round(stats: Dict[str, float], *keys: str) -> Dict[str, float]:
    return {f"{key}_ms": round(stats[key], 2) for key in keys}


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """Process is up. Says nothing about the engine; see /ready."""
    return {"status": "healthy", "timestamp": _now()}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness probe.

    200 only between the end of hydration and the start of shutdown, 503 otherwise.
    """
    service = request.app.state.service
    state = service.hydrator.state.value if service is not None else "unavailable"

    if service is None or not service.hydrator.is_ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "state": state},
        )
    return {"status": "ready", "state": state, "timestamp": _now()}


@router.get("/status", status_code=status.HTTP_200_OK)
def status_check(request: Request) -> Dict[str, Any]:
    """
    Component-level status.

    "degraded" when the lifecycle is not Ready or the metadata store does not
    answer; "unavailable" before the engine has been created.
    """
    settings = request.app.state.settings
    service = request.app.state.service
    report: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.version,
        "components": {},
    }

    if service is None:
        report["status"] = "unavailable"
        return report

    engine = service.stats()
    store_ok = service.store.ping()

    report["components"] = {
        "lifecycle": engine["lifecycle"],
        "metadata_store": {
            "status": "healthy" if store_ok else "unhealthy",
            "backend": service.store.engine.url.get_backend_name(),
        },
        "vector_index": engine["vector_index"],
        "keyword_index": engine["keyword_index"],
        "embedder": engine["embedder"],
    }
    if engine["lifecycle"]["state"] != "ready" or not store_ok:
        report["status"] = "degraded"

    latency = get_latency_tracker().get_stats()
    report["performance"] = {
        "request_count": latency["count"],
        **_round(latency, "p50", "p95", "p99"),
        "target_p95_ms": settings.target_p95_latency_ms,
        "meets_target": latency["p95"] <= settings.target_p95_latency_ms,
    }
    return report


@router.get("/metrics", status_code=status.HTTP_200_OK)
async def get_metrics() -> Dict[str, Any]:
    """Rolling latency percentiles, overall and per route."""
    tracker = get_latency_tracker()
    overall = tracker.get_stats()

    return {
        "requests": {"total": overall["count"]},
        "latency": _round(overall, "p50", "p95", "p99", "mean", "min", "max"),
        "endpoints": {
            path: {"count": stats["count"], **_round(stats, "p50", "p95")}
            for path, stats in tracker.get_endpoint_stats().items()
        },
        "timestamp": _now(),
    }
