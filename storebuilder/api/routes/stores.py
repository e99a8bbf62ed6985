"""Store API endpoints: lifecycle, deployment and maintenance."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from storebuilder.api.dependencies.common import (
    get_orchestrator,
    get_pagination_params,
    get_progress_registry,
    validate_uuid_param,
)
from storebuilder.models.store import DEPLOYMENT_STATUSES, STORE_STATUSES, Store
from storebuilder.schemas.base import PaginationMeta
from storebuilder.schemas.store import (
    DeploymentInfo,
    DeploymentResponse,
    DeployRequest,
    StoreAttributes,
    StoreCollectionResponse,
    StoreCreateRequest,
    StoreResource,
    StoreResponse,
    SubdomainSuggestionRequest,
    TeardownResponse,
)
from storebuilder.services.progress_registry import ProgressRegistry
from storebuilder.services.publish_pipeline import PipelineStageError
from storebuilder.services.site_generator import SiteGenerationError
from storebuilder.services.store_service import (
    DeployResult,
    StoreConflictError,
    StoreLifecycleOrchestrator,
    StoreNotFoundError,
    StoreServiceError,
    StoreStateError,
    StoreValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def store_to_resource(store: Store) -> StoreResource:
    """Build the API representation of a store."""
    attributes = {
        name: value for name, value in store.to_dict().items()
        if name in StoreAttributes.model_fields
    }
    attributes["selected_pages"] = store.get_selected_pages()
    return StoreResource(
        id=store.uuid,
        attributes=StoreAttributes(**attributes),
        links={"self": f"/api/v1/stores/{store.uuid}", "live": store.live_url},
    )


def deployment_failure(error: Exception) -> Dict[str, Any]:
    """Describe a failed deployment phase for API responses and progress events."""
    if isinstance(error, PipelineStageError):
        return {"stage": error.stage, "message": error.message}
    if isinstance(error, SiteGenerationError):
        return {"stage": "generate", "message": str(error)}
    return {"stage": None, "message": str(error)}


async def get_store_or_404(store_id: str, orchestrator: StoreLifecycleOrchestrator) -> Store:
    store_uuid = validate_uuid_param(store_id, "store_id")
    try:
        return await orchestrator.get_store(store_uuid)
    except StoreNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "store_not_found",
                "message": str(e),
                "code": "STORE_NOT_FOUND"
            }
        )


def validation_http_error(e: StoreValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "errors": [
                {
                    "status": "422",
                    "code": error.code,
                    "title": "Validation Error",
                    "detail": error.message,
                    "source": {"pointer": f"/data/attributes/{error.field}"}
                }
                for error in e.validation_errors
            ],
            "meta": {"missing_fields": e.missing_fields},
        }
    )


def conflict_http_error(e: StoreConflictError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "store_conflict",
            "message": str(e),
            "code": e.code,
            "meta": {"field": e.field, "value": e.value},
        }
    )


def deployment_http_error(error: Exception) -> HTTPException:
    failure = deployment_failure(error)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={
            "error": "deployment_failed",
            "message": failure["message"],
            "code": "DEPLOYMENT_FAILED",
            "meta": {"stage": failure["stage"]},
        }
    )


def deploy_response(
    result: DeployResult,
    store: Store,
    deployment_id: Optional[str],
) -> DeploymentResponse:
    return DeploymentResponse(
        already_deployed=result.already_deployed,
        url=result.url,
        is_live=result.is_live,
        deployment_url=result.deployment_url,
        deployment_id=deployment_id,
        store=store_to_resource(store),
    )


# Collection endpoints

@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def create_store(
    request: StoreCreateRequest,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
    registry: ProgressRegistry = Depends(get_progress_registry),
):
    """
    Create a store.

    The store is saved before its site is generated and published. A failed
    deployment does not fail the request: the store is returned with
    ``deployment_status=failed`` and the error in ``meta.deployment``.
    """
    config = request.data.attributes.model_dump(exclude_none=True)
    deployment_id = request.deployment_id

    try:
        result = await orchestrator.create(
            config,
            on_progress=registry.reporter(deployment_id),
            draft=request.draft,
        )
    except StoreValidationError as e:
        registry.fail(deployment_id, str(e), step="validate")
        raise validation_http_error(e)
    except StoreConflictError as e:
        registry.fail(deployment_id, str(e), step="validate")
        raise conflict_http_error(e)

    store = result.store
    if request.draft:
        deployment = {"status": "draft"}
    elif result.pipeline_error is not None:
        failure = deployment_failure(result.pipeline_error)
        registry.fail(deployment_id, failure["message"], step=failure["stage"])
        deployment = {"status": "failed", "error": failure}
    else:
        registry.complete(
            deployment_id,
            "Store deployed",
            url=result.publish.url,
            is_live=result.publish.is_live,
        )
        deployment = {
            "status": "deployed",
            "url": result.publish.url,
            "is_live": result.publish.is_live,
            "deployment_url": result.publish.deployment_url,
        }

    return StoreResponse(
        data=store_to_resource(store),
        meta={"deployment": deployment, "deployment_id": deployment_id},
    )


@router.get("", response_model=StoreCollectionResponse)
async def list_stores(
    store_status: Optional[str] = Query(None, alias="status", description="Filter by store status"),
    deployment_status: Optional[str] = Query(None, description="Filter by deployment status"),
    pagination: dict = Depends(get_pagination_params),
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """List stores, newest first."""
    if store_status and store_status not in STORE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_filter",
                "message": f"status must be one of: {', '.join(STORE_STATUSES)}",
                "code": "INVALID_STATUS_FILTER"
            }
        )
    if deployment_status and deployment_status not in DEPLOYMENT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_filter",
                "message": f"deployment_status must be one of: {', '.join(DEPLOYMENT_STATUSES)}",
                "code": "INVALID_STATUS_FILTER"
            }
        )

    stores, total = await orchestrator.list_stores(
        status=store_status,
        deployment_status=deployment_status,
        limit=pagination["limit"],
        offset=pagination["offset"],
    )

    per_page = pagination["per_page"]
    total_pages = (total + per_page - 1) // per_page
    return StoreCollectionResponse(
        data=[store_to_resource(store) for store in stores],
        meta=PaginationMeta(
            page=pagination["page"],
            per_page=per_page,
            total_items=total,
            total_pages=total_pages,
            has_next=pagination["page"] < total_pages,
            has_prev=pagination["page"] > 1,
        ),
    )


@router.post("/suggest-subdomain")
async def suggest_subdomain(
    request: SubdomainSuggestionRequest,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """Preview the subdomain a new store with this name would get."""
    subdomain = await orchestrator.suggest_subdomain(request.name)
    return {
        "name": request.name,
        "subdomain": subdomain,
        "domain": f"{subdomain}.{orchestrator.settings.platform_domain}",
    }


@router.post("/maintenance/repair-subdomains")
async def repair_subdomains(
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """Re-allocate subdomains shared by more than one store."""
    return await orchestrator.repair_duplicate_subdomains()


# Single store endpoints

@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(
    store_id: str,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """Get a store by UUID."""
    store = await get_store_or_404(store_id, orchestrator)
    return StoreResponse(data=store_to_resource(store))


@router.get("/{store_id}/deployment", response_model=DeploymentInfo)
async def get_deployment_info(
    store_id: str,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """Deployment status, live URL and whether the site files exist."""
    store = await get_store_or_404(store_id, orchestrator)
    return DeploymentInfo(**orchestrator.deployment_info(store))


@router.post("/{store_id}/deploy", response_model=DeploymentResponse)
async def deploy_store(
    store_id: str,
    request: Optional[DeployRequest] = None,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
    registry: ProgressRegistry = Depends(get_progress_registry),
):
    """
    Regenerate and publish a store.

    Returns immediately with ``already_deployed=true`` when the store is
    deployed and its files exist, unless ``force`` is set.
    """
    request = request or DeployRequest()
    store = await get_store_or_404(store_id, orchestrator)
    deployment_id = request.deployment_id

    try:
        result = await orchestrator.redeploy(
            store,
            force=request.force,
            on_progress=registry.reporter(deployment_id),
        )
    except (PipelineStageError, SiteGenerationError) as e:
        failure = deployment_failure(e)
        registry.fail(deployment_id, failure["message"], step=failure["stage"])
        raise deployment_http_error(e)
    except Exception as e:
        registry.fail(deployment_id, str(e))
        raise

    registry.complete(
        deployment_id,
        "Store already deployed" if result.already_deployed else "Store deployed",
        url=result.url,
        is_live=result.is_live,
    )
    return deploy_response(result, store, deployment_id)


@router.post("/{store_id}/publish", response_model=DeploymentResponse)
async def publish_store(
    store_id: str,
    request: Optional[DeployRequest] = None,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
    registry: ProgressRegistry = Depends(get_progress_registry),
):
    """Publish a draft store."""
    request = request or DeployRequest()
    store = await get_store_or_404(store_id, orchestrator)
    deployment_id = request.deployment_id

    try:
        result = await orchestrator.publish_draft(store, on_progress=registry.reporter(deployment_id))
    except StoreStateError as e:
        registry.fail(deployment_id, str(e))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "invalid_store_state",
                "message": str(e),
                "code": "STORE_NOT_DRAFT"
            }
        )
    except (PipelineStageError, SiteGenerationError) as e:
        failure = deployment_failure(e)
        registry.fail(deployment_id, failure["message"], step=failure["stage"])
        raise deployment_http_error(e)
    except Exception as e:
        registry.fail(deployment_id, str(e))
        raise

    registry.complete(deployment_id, "Store published", url=result.url, is_live=result.is_live)
    return deploy_response(result, store, deployment_id)


@router.delete("/{store_id}", response_model=TeardownResponse)
async def delete_store(
    store_id: str,
    orchestrator: StoreLifecycleOrchestrator = Depends(get_orchestrator),
):
    """
    Tear a store down.

    External cleanup (git, hosting, cache) is best-effort; the response
    reports each step. The store record is always removed.
    """
    store = await get_store_or_404(store_id, orchestrator)
    try:
        report = await orchestrator.delete(store)
    except StoreServiceError as e:
        logger.error(f"Failed to delete store {store_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "teardown_failed",
                "message": str(e),
                "code": "STORE_TEARDOWN_FAILED"
            }
        )

    return TeardownResponse(
        uuid=report.uuid,
        domain=report.domain,
        steps=report.steps,
        fallback_used=report.fallback_used,
    )
