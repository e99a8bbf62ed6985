"""Pydantic schemas for API requests and responses."""

from .base import (
    BaseSchema,
    HealthCheckResponse,
    JSONAPIError,
    JSONAPIErrorResponse,
    PaginationMeta,
)
from .store import (
    DeploymentInfo,
    DeploymentResponse,
    DeployRequest,
    StoreAttributes,
    StoreCollectionResponse,
    StoreConfigAttributes,
    StoreCreateRequest,
    StoreResource,
    StoreResponse,
    SubdomainSuggestionRequest,
    TeardownResponse,
)

__all__ = [
    "BaseSchema",
    "HealthCheckResponse",
    "JSONAPIError",
    "JSONAPIErrorResponse",
    "PaginationMeta",
    "DeploymentInfo",
    "DeploymentResponse",
    "DeployRequest",
    "StoreAttributes",
    "StoreCollectionResponse",
    "StoreConfigAttributes",
    "StoreCreateRequest",
    "StoreResource",
    "StoreResponse",
    "SubdomainSuggestionRequest",
    "TeardownResponse",
]
