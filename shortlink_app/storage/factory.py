"""
Builds the process-wide access log storage from settings.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import AccessLogStorage, DatabaseAccessLogStorage, InMemoryAccessLogStorage
from shortlink_app.database.connection import SessionLocal

logger = logging.getLogger(__name__)


class AccessLogBackend(Enum):
    """Available access log storage backends"""
    DATABASE = "database"
    MEMORY = "memory"


class AccessLogStorageFactory:
    """Caches one access log storage per process"""

    _instance: Optional[AccessLogStorage] = None

    @classmethod
    def create(cls, backend: AccessLogBackend) -> AccessLogStorage:
        """
        Create or return cached storage instance.

        Args:
            backend: Type of storage backend (from enum)

        Returns:
            Singleton storage instance
        """
        if cls._instance is not None:
            return cls._instance

        if backend == AccessLogBackend.DATABASE:
            cls._instance = DatabaseAccessLogStorage(session_factory=SessionLocal)
            logger.info("Database access log storage initialized")

        elif backend == AccessLogBackend.MEMORY:
            cls._instance = InMemoryAccessLogStorage()
            logger.info("In-memory access log storage initialized")

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
