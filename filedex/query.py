"""
Query engine: SearchFilter -> predicate list -> parameterized SQLite lookup.

The builder works with plain (column, op, value) triples. Only render_sqlite()
knows about SQL.

Folder scopes are a raw string-prefix test: a scope "/a/b" also matches
"/a/bc/...". Pass a trailing separator for segment-exact matching.
The test is a SQLite LIKE, which folds ASCII case, so "/data/docs/" also
matches "/data/Docs/" on case-sensitive filesystems.
"""
from __future__ import annotations

import logging
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from .db import CatalogStore
from .models import FileRecord, SearchFilter
from .util import to_iso

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000
SIMPLE_LIMIT = 100
ORDER_BY = "modified_time DESC"

OPS = ("contains", "startswith_any", "eq", "ge", "le")


class Predicate(NamedTuple):
    column: str
    op: str
    value: Any


def normalize_file_type(file_type: Optional[str]) -> Optional[str]:
    """'.PDF' -> 'pdf'. None, '' and 'all' mean no extension filter."""
    if file_type is None:
        return None
    ft = file_type.strip().lower()
    if not ft or ft == "all":
        return None
    return ft.replace(".", "") or None


class QueryBuilder:
    def __init__(self) -> None:
        self.predicates: List[Predicate] = []

    def add(self, column: str, op: str, value: Any) -> "QueryBuilder":
        if op not in OPS:
            raise ValueError(f"unknown operator: {op}")
        self.predicates.append(Predicate(column, op, value))
        return self

    def build(self, f: SearchFilter) -> List[Predicate]:
        # name is always constrained; "" matches everything
        self.add("name", "contains", f.query or "")

        ext = normalize_file_type(f.file_type)
        if ext:
            self.add("extension", "eq", ext)

        folders = [p for p in (f.folders or []) if p]
        if folders:
            self.add("path", "startswith_any", folders)

        if f.path_contains:
            self.add("path", "contains", f.path_contains)

        if f.modified_after is not None:
            self.add("modified_time", "ge", to_iso(f.modified_after))
        if f.modified_before is not None:
            self.add("modified_time", "le", to_iso(f.modified_before))

        if f.min_size is not None:
            self.add("size", "ge", int(f.min_size))
        if f.max_size is not None:
            self.add("size", "le", int(f.max_size))
        return self.predicates


# ================= sqlite renderer =================
def escape_like(s: str) -> str:
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def render_sqlite(predicates: Sequence[Predicate]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for col, op, value in predicates:
        if op == "contains":
            clauses.append(f"{col} LIKE ? ESCAPE '\\'")
            params.append(f"%{escape_like(value)}%")
        elif op == "startswith_any":
            clauses.append("(" + " OR ".join(f"{col} LIKE ? ESCAPE '\\'" for _ in value) + ")")
            params.extend(f"{escape_like(p)}%" for p in value)
        elif op == "eq":
            clauses.append(f"{col} = ?"); params.append(value)
        elif op == "ge":
            clauses.append(f"{col} >= ?"); params.append(value)
        elif op == "le":
            clauses.append(f"{col} <= ?"); params.append(value)
        else:
            raise ValueError(f"unknown operator: {op}")
    return " AND ".join(clauses), params


class QueryEngine:
    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def search_advanced(self, f: SearchFilter) -> List[FileRecord]:
        where_sql, params = render_sqlite(QueryBuilder().build(f))
        limit = f.limit if f.limit and f.limit > 0 else DEFAULT_LIMIT
        results = self.store.select(where_sql, params, order_by=ORDER_BY, limit=limit)
        log.debug("search %r -> %d results", f, len(results))
        return results

    def search(self, query: str = "", file_type: Optional[str] = None,
               folders: Optional[List[str]] = None, limit: int = SIMPLE_LIMIT) -> List[FileRecord]:
        return self.search_advanced(SearchFilter(query=query, file_type=file_type, folders=folders, limit=limit))

    def count(self, f: SearchFilter) -> int:
        where_sql, params = render_sqlite(QueryBuilder().build(f))
        return self.store.count(where_sql, params)
