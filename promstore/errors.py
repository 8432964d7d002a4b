"""Exceptions raised by the Redis metric store."""
from typing import List, Optional


class StoreError(Exception):
    """Base class for metric store errors."""


class StorageUnavailable(StoreError):
    """Redis could not be reached or timed out."""


class InvalidCommand(StoreError):
    """An update carried a command code the store does not understand."""


class CorruptMetadata(StoreError):
    """
    Metadata for one or more discovered metrics is missing or unparsable.

    Raised by the collector after every other metric has been collected,
    so callers that can live with a partial result can read ``families``.
    """

    def __init__(self, keys: List[str], families: Optional[list] = None):
        self.keys = keys
        self.families = families or []
        super().__init__(f"Corrupt metadata for metric keys: {', '.join(keys)}")
