"""Database models for the store builder service."""

from .base import SerializableMixin, TimestampMixin
from .store import DEPLOYMENT_STATUSES, STORE_STATUSES, Store
from .store_page import StorePage
from .store_setting import StoreSetting

__all__ = [
    "SerializableMixin",
    "TimestampMixin",
    "Store",
    "StorePage",
    "StoreSetting",
    "STORE_STATUSES",
    "DEPLOYMENT_STATUSES",
]
