"""
Access log storage module.

Implements the Strategy Pattern for pluggable access log storage.
"""

from .strategies import AccessLogStorage, DatabaseAccessLogStorage, InMemoryAccessLogStorage
from .factory import AccessLogStorageFactory, AccessLogBackend

__all__ = [
    "AccessLogStorage",
    "DatabaseAccessLogStorage",
    "InMemoryAccessLogStorage",
    "AccessLogStorageFactory",
    "AccessLogBackend",
]
