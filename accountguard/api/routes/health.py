"""
Health Check Endpoints.

Provides health status for the API and its dependencies.
"""
import os
import time
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..models import HealthStatus
from ..deps import get_db, get_redis_client
from ...database.auth_db import AuthDB

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

VERSION = os.getenv("APP_VERSION", "1.0.0")


@router.get("", response_model=HealthStatus)
def health_check(db: AuthDB = Depends(get_db)):
    """
    Basic health check endpoint.

    Returns overall system status.
    """
    services = {}
    overall_healthy = True

    try:
        start = time.time()
        db.ping()
        latency = (time.time() - start) * 1000
        services["database"] = f"healthy ({latency:.1f}ms)"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = "unhealthy"
        overall_healthy = False

    # Redis failure is not critical, rate limiting falls back to memory
    redis_client = get_redis_client()
    if redis_client is None:
        services["redis"] = "fallback_mode (in-memory)"
    else:
        try:
            start = time.time()
            redis_client.ping()
            latency = (time.time() - start) * 1000
            services["redis"] = f"healthy ({latency:.1f}ms)"
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            services["redis"] = "unhealthy"

    return HealthStatus(
        status="healthy" if overall_healthy else "unhealthy",
        version=VERSION,
        services=services,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
def liveness():
    """Liveness probe. Returns 200 if the process is running."""
    return {"status": "alive"}


@router.get("/ready")
def readiness(db: AuthDB = Depends(get_db)):
    """Readiness probe. 503 until the database answers."""
    try:
        db.ping()
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready"})
