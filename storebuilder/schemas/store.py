"""Store-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import Field, ValidationInfo, field_validator

from storebuilder.utils.validators import ColorValidator, DomainValidator, EmailValidator

from .base import BaseSchema, PaginationMeta


class StoreConfigAttributes(BaseSchema):
    """
    Attributes accepted when creating a store.

    Required fields (name, country, language, currency) are optional here so
    the lifecycle can report every missing field in one structured error.
    """

    name: Optional[str] = Field(None, max_length=255, description="Store name")
    domain: Optional[str] = Field(
        None, max_length=253,
        description="Primary domain; defaults to <subdomain>.<platform domain>"
    )
    subdomain: Optional[str] = Field(None, max_length=63, description="Explicit subdomain")
    country: Optional[str] = Field(None, max_length=2, description="ISO 3166-1 alpha-2 code")
    language: Optional[str] = Field(None, max_length=8, description="ISO 639-1 code")
    currency: Optional[str] = Field(None, max_length=3, description="ISO 4217 code")
    timezone: Optional[str] = Field(None, max_length=64)

    shopify_domain: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_shop_name: Optional[str] = None
    shopify_connected: Optional[bool] = None

    theme_id: Optional[str] = None
    template: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = Field(None, description="Hex colour, e.g. #007cba")
    secondary_color: Optional[str] = Field(None, description="Hex colour, e.g. #f8f9fa")

    meta_title: Optional[str] = Field(None, max_length=255)
    meta_description: Optional[str] = None
    favicon_url: Optional[str] = None

    shipping_info: Optional[str] = None
    shipping_time: Optional[str] = None
    return_policy: Optional[str] = None
    return_period: Optional[str] = None
    support_email: Optional[str] = None
    support_phone: Optional[str] = None
    business_address: Optional[str] = None
    business_orgnr: Optional[str] = None
    gdpr_compliant: Optional[bool] = None
    cookie_consent: Optional[bool] = None
    selected_pages: Optional[Union[List[str], str]] = Field(
        None, description="Page names, e.g. ['about', 'privacy-policy']"
    )
    selected_products: Optional[List[str]] = None

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def validate_color(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        errors = ColorValidator.validate(v, info.field_name)
        if errors:
            raise ValueError(errors[0].message)
        return v

    @field_validator("support_email")
    @classmethod
    def validate_support_email(cls, v: Optional[str]) -> Optional[str]:
        errors = EmailValidator.validate(v, field="support_email")
        if errors:
            raise ValueError(errors[0].message)
        return v

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        errors = DomainValidator.validate(v)
        if errors:
            raise ValueError(errors[0].message)
        return v

    @field_validator("selected_pages")
    @classmethod
    def split_selected_pages(cls, v: Optional[Union[List[str], str]]) -> Optional[List[str]]:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


class StoreCreateData(BaseSchema):
    type: str = Field("store", description="Resource type")
    attributes: StoreConfigAttributes


class StoreCreateRequest(BaseSchema):
    """Request body for store creation."""

    data: StoreCreateData
    draft: bool = Field(False, description="Save as draft without deploying")
    deployment_id: Optional[str] = Field(
        None, max_length=100, description="Progress channel id for the initial deployment"
    )


class DeployRequest(BaseSchema):
    """Request body for (re)deployment and draft publishing."""

    force: bool = Field(False, description="Deploy even if already deployed")
    deployment_id: Optional[str] = Field(None, max_length=100, description="Progress channel id")


class SubdomainSuggestionRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=255)


class StoreAttributes(BaseSchema):
    """Store attributes returned by the API. Credentials are never returned."""

    name: str
    domain: str
    subdomain: Optional[str] = None
    country: str
    language: str
    currency: str
    timezone: Optional[str] = None
    shopify_domain: Optional[str] = None
    shopify_shop_name: Optional[str] = None
    shopify_connected: Optional[bool] = None
    theme_id: Optional[str] = None
    template: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    favicon_url: Optional[str] = None
    support_email: Optional[str] = None
    support_phone: Optional[str] = None
    business_address: Optional[str] = None
    business_orgnr: Optional[str] = None
    selected_pages: Optional[List[str]] = None
    selected_products: Optional[List[str]] = None
    status: str
    deployment_status: str
    deployment_url: Optional[str] = None
    deployed_at: Optional[datetime] = None
    files_generated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StoreResource(BaseSchema):
    type: str = "store"
    id: UUID
    attributes: StoreAttributes
    links: Optional[Dict[str, str]] = None


class StoreResponse(BaseSchema):
    """Single store response."""

    data: StoreResource
    meta: Optional[Dict[str, Any]] = None


class StoreCollectionResponse(BaseSchema):
    """Store collection response."""

    data: List[StoreResource]
    meta: PaginationMeta


class DeploymentInfo(BaseSchema):
    uuid: str
    domain: str
    subdomain: Optional[str] = None
    status: str
    deployment_status: str
    live_url: str
    deployment_url: Optional[str] = None
    deployed_at: Optional[datetime] = None
    files_generated_at: Optional[datetime] = None
    has_files: bool
    can_deploy: bool
    needs_deployment: bool


class DeploymentResponse(BaseSchema):
    """Result of a deploy or publish request."""

    already_deployed: bool
    url: str
    is_live: Optional[bool] = None
    deployment_url: Optional[str] = None
    deployment_id: Optional[str] = None
    store: StoreResource


class TeardownResponse(BaseSchema):
    uuid: str
    domain: str
    steps: Dict[str, str]
    fallback_used: bool
