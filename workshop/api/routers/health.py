"""Health check endpoint.

Reports database connectivity and, when the resolution cache is enabled,
Redis connectivity. Returns 503 if any enabled dependency is down.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import redis

from workshop import __version__
from workshop.api.deps import get_permission_cache, get_system_db
from workshop.core.rbac.cache import PermissionCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        return {"status": "unhealthy", "error": e.__class__.__name__}


def check_cache(cache: Optional[PermissionCache]) -> Dict[str, Any]:
    """Check the resolution cache backend."""
    if cache is None:
        return {"status": "disabled"}
    try:
        cache.ping()
        return {"status": "healthy"}
    except redis.RedisError as e:
        logger.error("Redis health check failed: %s", e)
        return {"status": "unhealthy", "error": e.__class__.__name__}


@router.get("/health")
def health_check(
    db: Session = Depends(get_system_db),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    checks = {
        "database": check_database(db),
        "cache": check_cache(cache),
    }
    healthy = all(c["status"] != "unhealthy" for c in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        },
    )
