"""Storage module."""

from .storage import IStorage, Storage, format_timestamp

__all__ = ["IStorage", "Storage", "format_timestamp"]
