"""Initial schema: stores, store pages and store settings

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # Create stores table
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(253), nullable=False),
        sa.Column("subdomain", sa.String(63), nullable=True),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("language", sa.String(8), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("shopify_domain", sa.String(255)),
        sa.Column("shopify_access_token", sa.Text),
        sa.Column("shopify_shop_name", sa.String(255)),
        sa.Column("shopify_connected", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("theme_id", sa.String(64), nullable=False, server_default="default"),
        sa.Column("template", sa.String(64), nullable=False, server_default="bootstrap-default"),
        sa.Column("logo_url", sa.Text),
        sa.Column("primary_color", sa.String(7), nullable=False, server_default="#007cba"),
        sa.Column("secondary_color", sa.String(7), nullable=False, server_default="#f8f9fa"),
        sa.Column("meta_title", sa.String(255)),
        sa.Column("meta_description", sa.Text),
        sa.Column("favicon_url", sa.Text),
        sa.Column("shipping_info", sa.Text),
        sa.Column("shipping_time", sa.String(100)),
        sa.Column("return_policy", sa.Text),
        sa.Column("return_period", sa.String(100)),
        sa.Column("support_email", sa.String(255)),
        sa.Column("support_phone", sa.String(50)),
        sa.Column("business_address", sa.Text),
        sa.Column("business_orgnr", sa.String(64)),
        sa.Column("gdpr_compliant", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cookie_consent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("selected_pages", JSONType),
        sa.Column("selected_products", JSONType),
        sa.Column("status", sa.String(20), nullable=False, server_default="setup"),
        sa.Column("deployment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("deployment_url", sa.Text),
        sa.Column("deployed_at", sa.DateTime(timezone=True)),
        sa.Column("files_generated_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("uuid"),
        sa.UniqueConstraint("domain"),
        sa.UniqueConstraint("subdomain"),
        sa.CheckConstraint("status IN ('setup', 'draft', 'active', 'failed')", name="valid_store_status"),
        sa.CheckConstraint(
            "deployment_status IN ('pending', 'deploying', 'deployed', 'failed')",
            name="valid_deployment_status",
        ),
    )

    # Create indexes for stores
    op.create_index("idx_stores_status", "stores", ["status"])
    op.create_index("idx_stores_deployment_status", "stores", ["deployment_status"])
    op.create_index("idx_stores_created_at", "stores", ["created_at"])

    # Create store_pages table
    op.create_table(
        "store_pages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, nullable=False),
        sa.Column("page_type", sa.String(50), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, server_default=""),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("subtitle", sa.String(255)),
        sa.Column("content", sa.Text),
        sa.Column("meta_title", sa.String(255)),
        sa.Column("meta_description", sa.Text),
        sa.Column("template_data", JSONType),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("store_id", "page_type", name="uq_store_pages_store_type"),
    )
    op.create_index("idx_store_pages_store_id", "store_pages", ["store_id"])

    # Create store_settings table
    op.create_table(
        "store_settings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("store_id", "key", name="uq_store_settings_store_key"),
    )


def downgrade() -> None:
    op.drop_table("store_settings")
    op.drop_index("idx_store_pages_store_id", table_name="store_pages")
    op.drop_table("store_pages")
    op.drop_index("idx_stores_created_at", table_name="stores")
    op.drop_index("idx_stores_deployment_status", table_name="stores")
    op.drop_index("idx_stores_status", table_name="stores")
    op.drop_table("stores")
