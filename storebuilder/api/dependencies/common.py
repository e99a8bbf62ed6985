"""Common FastAPI dependencies."""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storebuilder.core.database import get_db_session
from storebuilder.core.settings import Settings, get_settings
from storebuilder.services.command_executor import SubprocessExecutor
from storebuilder.services.domain_verifier import DomainVerifier
from storebuilder.services.hosting import CachePurger, HostingPlatform
from storebuilder.services.identifier_allocator import IdentifierAllocator
from storebuilder.services.progress_registry import ProgressRegistry
from storebuilder.services.publish_pipeline import PublishPipeline
from storebuilder.services.site_generator import StaticSiteGenerator
from storebuilder.services.store_service import StoreLifecycleOrchestrator, StoreLocks
from storebuilder.services.version_control import GitRepository


def get_pagination_params(
    page: int = Query(1, ge=1, le=1000, description="Page number"),
    per_page: int = Query(25, ge=1, le=100, description="Items per page"),
) -> dict:
    """Get pagination parameters from query string."""
    return {
        "page": page,
        "per_page": per_page,
        "offset": (page - 1) * per_page,
        "limit": per_page,
    }


def validate_uuid_param(uuid_str: str, param_name: str = "id") -> UUID:
    """Validate and parse UUID parameter."""
    try:
        return UUID(uuid_str)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "invalid_uuid",
                "message": f"Invalid UUID format for {param_name}",
                "code": "INVALID_UUID_FORMAT"
            }
        )


def get_progress_registry(request: Request) -> ProgressRegistry:
    """Process-wide progress registry created at startup."""
    return request.app.state.progress_registry


def get_identifier_allocator(request: Request) -> IdentifierAllocator:
    return request.app.state.identifier_allocator


def get_store_locks(request: Request) -> StoreLocks:
    return request.app.state.store_locks


def build_orchestrator(
    session: AsyncSession,
    allocator: IdentifierAllocator,
    locks: Optional[StoreLocks] = None,
    settings: Optional[Settings] = None,
) -> StoreLifecycleOrchestrator:
    """Wire the lifecycle orchestrator with its production collaborators."""
    settings = settings or get_settings()
    executor = SubprocessExecutor(default_timeout=settings.git_timeout_seconds)
    repository_lock = locks.repository(settings.git_repository_path) if locks else None
    vcs = GitRepository.from_settings(settings, executor, lock=repository_lock)
    hosting = HostingPlatform.from_settings(settings, executor)
    verifier = DomainVerifier(
        request_timeout=settings.verify_request_timeout_seconds,
        user_agent=settings.verify_user_agent,
    )
    pipeline = PublishPipeline(
        vcs=vcs,
        hosting=hosting,
        verifier=verifier,
        verify_attempts=settings.verify_max_attempts,
        verify_interval_ms=settings.verify_interval_ms,
    )
    return StoreLifecycleOrchestrator(
        session=session,
        allocator=allocator,
        generator=StaticSiteGenerator(settings.stores_root),
        pipeline=pipeline,
        vcs=vcs,
        hosting=hosting,
        cache_purger=CachePurger(timeout=settings.cache_purge_timeout_seconds),
        locks=locks,
        settings=settings,
    )


def get_orchestrator(
    session: AsyncSession = Depends(get_db_session),
    allocator: IdentifierAllocator = Depends(get_identifier_allocator),
    locks: StoreLocks = Depends(get_store_locks),
) -> StoreLifecycleOrchestrator:
    """Get store lifecycle orchestrator instance."""
    return build_orchestrator(session, allocator, locks)
