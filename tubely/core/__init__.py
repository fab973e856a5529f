"""Core module for configuration and utilities."""

from tubely.core.config import settings
from tubely.core.database import Base, get_db
from tubely.core.storage import Storage, get_storage

__all__ = [
    "settings",
    "Base",
    "get_db",
    "Storage",
    "get_storage",
]
