"""Store model: one storefront published to its own domain."""

import uuid
from typing import Any, Dict, List

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Index, Integer, JSON, String,
    Text, UUID,
)
from sqlalchemy.dialects.postgresql import JSONB

from .base import SerializableMixin, TimestampMixin
from storebuilder.core.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")

STORE_STATUSES = ("setup", "draft", "active", "failed")
DEPLOYMENT_STATUSES = ("pending", "deploying", "deployed", "failed")


class Store(Base, TimestampMixin, SerializableMixin):
    """
    Store model representing a single storefront.

    A store is reachable on its primary ``domain`` (operator supplied) and on
    an allocated ``subdomain``. Both are stored lowercase and are unique
    across the table. The generated site lives on disk in a directory named
    after ``domain``.

    Two status fields are tracked separately:
    - status: setup, draft, active, failed (editorial lifecycle)
    - deployment_status: pending, deploying, deployed, failed (publishing)
    """

    __tablename__ = "stores"

    # Core Identity Fields
    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Internal numeric identifier"
    )

    uuid = Column(
        UUID(as_uuid=True),
        unique=True,
        nullable=False,
        default=uuid.uuid4,
        comment="Stable external identifier"
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Human readable store name"
    )

    domain = Column(
        String(253),
        unique=True,
        nullable=False,
        comment="Primary public domain, lowercase (e.g. 'shop.example.com')"
    )

    subdomain = Column(
        String(63),
        unique=True,
        nullable=True,
        comment="Allocated URL-safe subdomain label"
    )

    # Locale
    country = Column(String(2), nullable=False, comment="ISO 3166-1 alpha-2 country code")
    language = Column(String(8), nullable=False, comment="ISO 639-1 language code")
    currency = Column(String(3), nullable=False, comment="ISO 4217 currency code")
    timezone = Column(String(64), nullable=False, default="UTC", comment="IANA timezone name")

    # Commerce backend integration (opaque to the lifecycle)
    shopify_domain = Column(String(255), nullable=True)
    shopify_access_token = Column(Text, nullable=True, comment="Commerce backend API token")
    shopify_shop_name = Column(String(255), nullable=True)
    shopify_connected = Column(Boolean, nullable=False, default=False)

    # Theming
    theme_id = Column(String(64), nullable=False, default="default")
    template = Column(String(64), nullable=False, default="bootstrap-default")
    logo_url = Column(Text, nullable=True)
    primary_color = Column(String(7), nullable=False, default="#007cba")
    secondary_color = Column(String(7), nullable=False, default="#f8f9fa")

    # SEO
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    favicon_url = Column(Text, nullable=True)

    # Policies and contact details used by legal pages
    shipping_info = Column(Text, nullable=True)
    shipping_time = Column(String(100), nullable=True)
    return_policy = Column(Text, nullable=True)
    return_period = Column(String(100), nullable=True)
    support_email = Column(String(255), nullable=True)
    support_phone = Column(String(50), nullable=True)
    business_address = Column(Text, nullable=True)
    business_orgnr = Column(String(64), nullable=True, comment="Company registration number")
    gdpr_compliant = Column(Boolean, nullable=False, default=False)
    cookie_consent = Column(Boolean, nullable=False, default=False)

    selected_pages = Column(
        JSONType,
        nullable=True,
        comment="Page types chosen by the operator; NULL means the default set"
    )
    selected_products = Column(
        JSONType,
        nullable=True,
        comment="Commerce backend product handles to feature"
    )

    # Lifecycle
    status = Column(
        String(20),
        nullable=False,
        default="setup",
        comment="Editorial status: setup, draft, active, failed"
    )
    deployment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="Publishing status: pending, deploying, deployed, failed"
    )
    deployment_url = Column(Text, nullable=True, comment="Last hosting platform deployment URL")
    deployed_at = Column(DateTime(timezone=True), nullable=True)
    files_generated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('setup', 'draft', 'active', 'failed')",
            name="valid_store_status"
        ),
        CheckConstraint(
            "deployment_status IN ('pending', 'deploying', 'deployed', 'failed')",
            name="valid_deployment_status"
        ),
        Index("idx_stores_status", "status"),
        Index("idx_stores_deployment_status", "deployment_status"),
        Index("idx_stores_created_at", "created_at"),
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Column defaults only apply at flush; the lifecycle reads them earlier
        if self.uuid is None:
            self.uuid = uuid.uuid4()
        if self.status is None:
            self.status = "setup"
        if self.deployment_status is None:
            self.deployment_status = "pending"
        if self.primary_color is None:
            self.primary_color = "#007cba"
        if self.secondary_color is None:
            self.secondary_color = "#f8f9fa"
        if self.timezone is None:
            self.timezone = "UTC"

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    @property
    def is_deployed(self) -> bool:
        return self.deployment_status == "deployed"

    @property
    def is_deploying(self) -> bool:
        return self.deployment_status == "deploying"

    @property
    def live_url(self) -> str:
        """Public URL of the store's primary domain."""
        return f"https://{self.domain}"

    def get_selected_pages(self) -> List[str]:
        """
        Get selected page names as a list.

        Accepts the legacy comma separated representation as well as a list.
        """
        if not self.selected_pages:
            return []
        if isinstance(self.selected_pages, str):
            return [p.strip() for p in self.selected_pages.split(",") if p.strip()]
        return list(self.selected_pages)

    def get_branding(self) -> Dict[str, Any]:
        """Branding values needed to render the site and its error pages."""
        return {
            "name": self.name,
            "domain": self.domain,
            "logo_url": self.logo_url,
            "favicon_url": self.favicon_url,
            "primary_color": self.primary_color or "#007cba",
            "secondary_color": self.secondary_color or "#f8f9fa",
        }

    def __repr__(self) -> str:
        """String representation of the Store."""
        return (f"<Store(id={self.id}, name='{self.name}', domain='{self.domain}', "
                f"subdomain='{self.subdomain}', status='{self.status}', "
                f"deployment_status='{self.deployment_status}')>")
