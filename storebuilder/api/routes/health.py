"""Health check and system endpoints."""

import os
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession

from storebuilder.api.dependencies.common import get_progress_registry
from storebuilder.core.database import get_db_session
from storebuilder.core.settings import get_settings
from storebuilder.models.base import utc_now
from storebuilder.schemas.base import HealthCheckResponse
from storebuilder.services.progress_registry import ProgressRegistry

router = APIRouter()
settings = get_settings()

SERVICE_NAME = "storebuilder"
SERVICE_VERSION = "1.0.0"
STORE_TABLES = ("stores", "store_pages", "store_settings")


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    session: AsyncSession = Depends(get_db_session),
    registry: ProgressRegistry = Depends(get_progress_registry),
):
    """
    Service health check endpoint.

    Checks the health of the service and its dependencies:
    - Database connectivity
    - Stores root directory
    - Deployment progress channels
    """
    health_data = {
        "status": "healthy",
        "timestamp": utc_now(),
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "dependencies": {}
    }

    overall_status = "healthy"

    # Check database connectivity
    try:
        result = await session.execute(text("SELECT 1 as health_check"))
        row = result.fetchone()
        if row and row[0] == 1:
            health_data["dependencies"]["database"] = {
                "status": "healthy",
                "details": "Connection successful"
            }
        else:
            raise RuntimeError("Unexpected database response")
    except Exception as e:
        health_data["dependencies"]["database"] = {
            "status": "unhealthy",
            "error": str(e),
            "details": "Database connection failed"
        }
        overall_status = "unhealthy"

    # Generated sites are written and served from the stores root
    stores_root = Path(settings.stores_root)
    if stores_root.is_dir() and os.access(stores_root, os.W_OK):
        health_data["dependencies"]["stores_root"] = {
            "status": "healthy",
            "path": str(stores_root),
            "details": "Writable"
        }
    else:
        health_data["dependencies"]["stores_root"] = {
            "status": "degraded",
            "path": str(stores_root),
            "details": "Missing or not writable"
        }
        if overall_status == "healthy":
            overall_status = "degraded"

    health_data["dependencies"]["progress"] = {
        "status": "healthy",
        "open_channels": len(registry),
    }

    health_data["status"] = overall_status

    if overall_status == "unhealthy":
        raise HTTPException(status_code=503, detail=health_data)

    return HealthCheckResponse(**health_data)


@router.get("/health/database")
async def database_health(session: AsyncSession = Depends(get_db_session)):
    """Detailed database health check."""
    try:
        result = await session.execute(text("SELECT 1"))
        result.fetchone()

        connection = await session.connection()
        table_names = await connection.run_sync(
            lambda sync_conn: inspect(sync_conn).get_table_names()
        )
        tables = sorted(name for name in table_names if name in STORE_TABLES)

        return {
            "status": "healthy" if len(tables) == len(STORE_TABLES) else "degraded",
            "timestamp": utc_now().isoformat(),
            "details": {
                "connectivity": "ok",
                "dialect": session.bind.dialect.name,
                "tables": tables,
                "missing_tables": sorted(set(STORE_TABLES) - set(tables)),
            }
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": utc_now().isoformat(),
                "error": str(e)
            }
        )


@router.get("/version")
async def version_info():
    """Get service version information."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "api_version": "v1",
        "platform_domain": settings.platform_domain,
    }
