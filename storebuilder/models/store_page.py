"""Store page model."""

from sqlalchemy import (
    Boolean, Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)

from .base import SerializableMixin, TimestampMixin
from .store import JSONType
from storebuilder.core.database import Base


class StorePage(Base, TimestampMixin, SerializableMixin):
    """
    A named page of a store (home, products, legal pages, ...).

    ``page_type`` is unique per store. ``slug`` is the path the page is
    published under: empty for the home page, otherwise usually the page type.
    """

    __tablename__ = "store_pages"

    id = Column(Integer, primary_key=True, autoincrement=True)

    store_id = Column(
        Integer,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning store"
    )

    page_type = Column(String(50), nullable=False, comment="home, products, about, terms, ...")
    slug = Column(String(255), nullable=False, default="", comment="Published path, '' for home")
    title = Column(String(255), nullable=False)
    subtitle = Column(String(255), nullable=True)
    content = Column(Text, nullable=True, comment="Page body HTML")
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    template_data = Column(JSONType, nullable=True, comment="Layout options for the renderer")
    is_enabled = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("store_id", "page_type", name="uq_store_pages_store_type"),
        Index("idx_store_pages_store_id", "store_id"),
    )

    @property
    def output_filename(self) -> str:
        """File name the page is written to inside the site directory."""
        if self.page_type == "home" or not self.slug:
            return "index.html"
        return f"{self.slug.strip('/')}.html"
