"""
BETSYNC - Health Check API Routes
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.dependencies import get_database
from app.core.cache import get_cache_manager
from app.core.database import DatabaseManager
from app.services.monitoring.metrics_service import HealthStatus, get_monitoring_service


router = APIRouter(tags=["health"])

_start_time = datetime.now(timezone.utc)


@router.get("")
async def health_check(db: DatabaseManager = Depends(get_database)):
    """
    Health of the transactional store and the cache.

    Unhealthy store -> 503; a degraded cache still serves 200 since reads
    fall back to the store.
    """
    report: Dict[str, Any] = await get_monitoring_service().check_health(db=db, cache=get_cache_manager())
    report["uptime_seconds"] = round((datetime.now(timezone.utc) - _start_time).total_seconds(), 1)

    status_code = 503 if report["status"] == HealthStatus.UNHEALTHY.value else 200
    return JSONResponse(status_code=status_code, content=report)
