"""Persistence layer exports."""

from .base import Base, UTCDateTime, utcnow
from .session import Database

__all__ = ["Base", "Database", "UTCDateTime", "utcnow"]
