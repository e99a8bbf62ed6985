"""Per-store key/value settings."""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint

from .base import SerializableMixin, TimestampMixin
from storebuilder.core.database import Base


class StoreSetting(Base, TimestampMixin, SerializableMixin):
    """Free-form store setting, removed together with its store."""

    __tablename__ = "store_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(
        Integer,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
    )
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "key", name="uq_store_settings_store_key"),
    )
