"""
Health API endpoints
"""

import time
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.config import config
from app.core.logger import logger
from app.db.mongodb import db

router = APIRouter()

# Track service start time
start_time = time.time()


@router.get("/health")
def health_check():
    """Liveness check, does not touch dependencies"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "timestamp": datetime.now().isoformat(),
        "version": config.api_version,
        "uptime": round(time.time() - start_time, 2),
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness probe - the catalog cannot serve traffic without MongoDB"""
    check_start = time.time()
    try:
        if db.client is None:
            raise RuntimeError("MongoDB client is not connected")
        await db.client.admin.command("ping")
    except Exception as e:
        logger.warning(
            "Readiness check failed",
            metadata={"event": "readiness_check_failed", "error": str(e)}
        )
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "service": config.service_name,
                "timestamp": datetime.now().isoformat(),
                "checks": [{"name": "database", "status": "unhealthy", "error": str(e)}],
            },
        )

    return {
        "status": "ready",
        "service": config.service_name,
        "timestamp": datetime.now().isoformat(),
        "checks": [{
            "name": "database",
            "status": "healthy",
            "response_time_ms": round((time.time() - check_start) * 1000, 2),
            "database": config.mongodb_database,
        }],
    }
