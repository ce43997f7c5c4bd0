"""
Database models for the shortlink service.

Links own their schedules and password protections (cascade lifecycle).
Access logs are append-only rows written by the access-log worker.
"""

from .link import Link, Schedule, PasswordProtection
from .access_log import AccessLog

__all__ = ["Link", "Schedule", "PasswordProtection", "AccessLog"]
