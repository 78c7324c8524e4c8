"""
Home/Root API endpoints
Service information and welcome endpoints
"""

from fastapi import APIRouter

from app.core.config import config

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - Service information.
    """
    return {
        "service": config.service_name,
        "version": config.service_version,
        "environment": config.environment,
        "message": "Catalog Service is running",
        "status": "operational"
    }


@router.get("/version")
def get_version():
    """Used for deployment tracking and version verification"""
    return {
        "version": config.service_version,
        "api_version": config.api_version,
    }
