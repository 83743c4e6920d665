"""
filedex: local file-metadata catalog and search.

Indexes regular files under configured root folders into a SQLite catalog and
answers filtered, time-ordered lookups against it.
"""

__version__ = "0.3.0"

from .models import FileRecord, FolderNode, Scope, SearchFilter
from .db import CatalogStore
from .coordinator import IndexingBusyError, IndexingCoordinator, IndexRun
from .query import QueryEngine
from .hierarchy import build_hierarchy

__all__ = [
    "CatalogStore",
    "FileRecord",
    "FolderNode",
    "IndexRun",
    "IndexingBusyError",
    "IndexingCoordinator",
    "QueryEngine",
    "Scope",
    "SearchFilter",
    "build_hierarchy",
]
