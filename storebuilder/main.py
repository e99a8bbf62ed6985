"""Main FastAPI application for the Store Builder service."""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from storebuilder.api.routes import deployments, health, stores
from storebuilder.core.database import get_database
from storebuilder.core.settings import get_settings
from storebuilder.middleware.logging import LoggingMiddleware, configure_logging
from storebuilder.middleware.store_router import StoreRouterMiddleware
from storebuilder.schemas.base import JSONAPIErrorResponse
from storebuilder.services.identifier_allocator import IdentifierAllocator
from storebuilder.services.progress_registry import ProgressRegistry
from storebuilder.services.store_service import StoreLocks

# Initialize logging
configure_logging()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    Path(settings.stores_root).mkdir(parents=True, exist_ok=True)
    await get_database().connect()
    registry: ProgressRegistry = app.state.progress_registry
    sweeper = asyncio.create_task(
        registry.run_eviction_loop(settings.progress_sweep_interval_seconds)
    )
    yield
    # Shutdown
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await get_database().disconnect()


app = FastAPI(
    title="Store Builder",
    description="Store lifecycle, static site publishing and host-based store routing",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
)

# Process-wide collaborators shared by all requests
app.state.progress_registry = ProgressRegistry(
    ttl_seconds=settings.progress_ttl_seconds,
    queue_size=settings.progress_queue_size,
)
app.state.identifier_allocator = IdentifierAllocator()
app.state.store_locks = StoreLocks()

# Security middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

# Custom middleware stack (order matters: logging wraps store routing)
app.add_middleware(StoreRouterMiddleware)
app.add_middleware(LoggingMiddleware)


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with JSON:API format."""
    detail = exc.detail
    if isinstance(detail, dict) and "errors" in detail:
        content = {"errors": detail["errors"]}
        if detail.get("meta"):
            content["meta"] = detail["meta"]
        return JSONResponse(status_code=exc.status_code, content=content)

    error = {
        "status": str(exc.status_code),
        "code": detail.get("code", "HTTP_ERROR") if isinstance(detail, dict) else "HTTP_ERROR",
        "title": detail.get("message", "HTTP Error") if isinstance(detail, dict) else str(detail),
        "detail": detail.get("message", str(detail)) if isinstance(detail, dict) else str(detail),
        "source": {"pointer": request.url.path}
    }
    if isinstance(detail, dict) and detail.get("meta"):
        error["meta"] = detail["meta"]
    return JSONResponse(status_code=exc.status_code, content={"errors": [error]})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Handle request body and parameter validation errors with JSON:API format."""
    return JSONResponse(
        status_code=422,
        content={
            "errors": [
                {
                    "status": "422",
                    "code": "VALIDATION_ERROR",
                    "title": "Validation Error",
                    "detail": error.get("msg", "Invalid value"),
                    "source": {"pointer": "/" + "/".join(str(part) for part in error.get("loc", ()))}
                }
                for error in exc.errors()
            ]
        }
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 errors with JSON:API format."""
    if isinstance(exc, HTTPException) and isinstance(exc.detail, dict):
        return await http_exception_handler(request, exc)
    return JSONResponse(
        status_code=404,
        content={
            "errors": [{
                "status": "404",
                "code": "RESOURCE_NOT_FOUND",
                "title": "Resource Not Found",
                "detail": "The requested resource was not found",
                "source": {"pointer": request.url.path}
            }]
        }
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    """Handle 500 errors with JSON:API format."""
    if isinstance(exc, HTTPException) and isinstance(exc.detail, dict):
        return await http_exception_handler(request, exc)
    return JSONResponse(
        status_code=500,
        content={
            "errors": [{
                "status": "500",
                "code": "INTERNAL_SERVER_ERROR",
                "title": "Internal Server Error",
                "detail": "An unexpected error occurred"
            }]
        }
    )


# Routes
app.include_router(health.router, prefix="", tags=["system"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "storebuilder",
        "version": "1.0.0",
        "status": "running",
        "api": {
            "docs": "/docs" if not settings.is_production else None,
            "openapi": "/openapi.json" if not settings.is_production else None
        }
    }


# Main API routes
app.include_router(
    stores.router,
    prefix=f"{settings.api_v1_prefix}/stores",
    tags=["stores"],
    responses={
        404: {"model": JSONAPIErrorResponse},
        409: {"model": JSONAPIErrorResponse},
        422: {"model": JSONAPIErrorResponse},
    },
)
app.include_router(deployments.router, prefix=f"{settings.api_v1_prefix}/deployments", tags=["deployments"])


if __name__ == "__main__":
    uvicorn.run(
        "storebuilder.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
