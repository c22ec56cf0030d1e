"""
Health check endpoints for system status
"""

from fastapi import APIRouter
from typing import Dict, Any
import logging
from datetime import datetime

from ..deps import get_hebcal_client, get_supabase_client

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)

@router.get("/")
async def health_check() -> Dict[str, Any]:
    """Supabase and Hebcal reachability"""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "services": {}
    }

    try:
        get_supabase_client().ping()
        health_status["services"]["supabase"] = {"status": "healthy"}
    except Exception as e:
        logger.warning("Supabase health check failed: %s", e)
        health_status["services"]["supabase"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "degraded"

    if get_hebcal_client().test_connection():
        health_status["services"]["hebcal_api"] = {"status": "healthy"}
    else:
        health_status["services"]["hebcal_api"] = {"status": "unhealthy"}
        health_status["status"] = "degraded"

    return health_status

@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """Readiness probe: the birthdays table answers"""
    try:
        get_supabase_client().ping()
        return {"status": "ready"}
    except Exception:
        return {"status": "not ready"}

@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    return {
        "status": "alive",
        "timestamp": datetime.now().isoformat()
    }
