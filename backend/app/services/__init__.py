"""
Services Package

This package contains the contract annotation engine: the category registry,
selection mapping, the highlight store, rendering, CSV export and the
persistence layer they write through.
"""

from .base_database_service import BaseDatabaseService
from .category_registry import CategoryRegistry
from .highlight_store import HighlightStore
from .persistence_adapter import (
    InMemoryPersistenceAdapter,
    NullPersistenceAdapter,
    SQLitePersistenceAdapter,
)
from .persistence_writer import PersistenceWriter

__all__ = [
    "BaseDatabaseService",
    "CategoryRegistry",
    "HighlightStore",
    "InMemoryPersistenceAdapter",
    "NullPersistenceAdapter",
    "PersistenceWriter",
    "SQLitePersistenceAdapter",
]
