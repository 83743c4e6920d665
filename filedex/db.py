"""
Catalog store: the SQLite table of FileRecords.

Every operation, reads included, runs on one serialized lane: a single-worker
executor that owns the connection. Callers block until their request has been
served. The sqlite3 handle never leaves the lane thread, so no two store
operations ever run at once.

Failures are logged and degrade to empty results. A store that could not be
opened stays unavailable and answers every call with its empty default.
"""
from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .models import CatalogStats, FileRecord
from .util import now_iso, parse_iso, to_iso

log = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

FILE_COLUMNS = "path, name, extension, size, modified_time, indexed_time, folder_root"

UPSERT_SQL = f"""
  INSERT INTO files ({FILE_COLUMNS})
  VALUES (?, ?, ?, ?, ?, ?, ?)
  ON CONFLICT(path) DO UPDATE SET
    name=excluded.name,
    extension=excluded.extension,
    size=excluded.size,
    modified_time=excluded.modified_time,
    indexed_time=excluded.indexed_time,
    folder_root=excluded.folder_root
"""


def connect_db(db_path: Path) -> sqlite3.Connection:
    con = sqlite3.connect(str(db_path))
    con.execute("PRAGMA journal_mode=WAL;")
    con.execute("PRAGMA synchronous=NORMAL;")
    con.execute("PRAGMA temp_store=MEMORY;")
    return con


def record_params(r: FileRecord, indexed_at: Optional[str] = None) -> tuple:
    indexed = indexed_at or (to_iso(r.indexed_time) if r.indexed_time else now_iso())
    return (r.path, r.name, r.extension, int(r.size), to_iso(r.modified_time), indexed, r.folder_root)


def row_to_record(row: Sequence[Any]) -> FileRecord:
    path, name, ext, size, mtime, itime, root = row
    return FileRecord(
        path=path, name=name or "", extension=ext or "", size=int(size or 0),
        modified_time=parse_iso(mtime) or datetime.now(timezone.utc),
        indexed_time=parse_iso(itime), folder_root=root or "",
    )


class CatalogStore:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._lane: Optional[ThreadPoolExecutor] = None
        self._con: Optional[sqlite3.Connection] = None
        self.available = False

    # ---- lifecycle ----
    def open(self) -> "CatalogStore":
        if self._lane is None:
            self._lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix="filedex-catalog")
            self._lane.submit(self._open).result()
        return self

    def close(self) -> None:
        if self._lane is None:
            return
        self._lane.submit(self._close).result()
        self._lane.shutdown(wait=True)
        self._lane = None

    def __enter__(self) -> "CatalogStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _open(self) -> None:
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._con = connect_db(self.db_path)
        except (sqlite3.Error, OSError) as e:
            log.error("Error opening catalog %s: %s", self.db_path, e)
            self._con = None
            self.available = False
            return
        self.available = True
        self._ensure_schema()

    def _close(self) -> None:
        if self._con is not None:
            try:
                self._con.close()
            except sqlite3.Error as e:
                log.warning("Error closing catalog: %s", e)
        self._con = None
        self.available = False

    # ---- lane ----
    def _call(self, fn: Callable[..., Any], default: Any, *args: Any) -> Any:
        """Run fn on the lane and block for its result."""
        if self._lane is None:
            log.debug("Catalog not open; %s skipped", fn.__name__)
            return default
        return self._lane.submit(self._guarded, fn, default, *args).result()

    def _guarded(self, fn: Callable[..., Any], default: Any, *args: Any) -> Any:
        if self._con is None:
            return default
        try:
            return fn(*args)
        except sqlite3.Error as e:
            log.error("Catalog %s failed: %s", fn.__name__.lstrip("_"), e)
            try:
                self._con.rollback()
            except sqlite3.Error:
                pass
            return default

    # ---- schema ----
    def ensure_schema(self) -> bool:
        return self._call(self._ensure_schema, False)

    def _ensure_schema(self) -> bool:
        try:
            with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
                self._con.executescript(f.read())
            self._con.commit()
            return True
        except (sqlite3.Error, OSError) as e:
            log.error("Error creating catalog schema: %s", e)
            return False

    # ---- writes ----
    def upsert(self, record: FileRecord) -> bool:
        return self.upsert_many([record]) == 1

    def upsert_many(self, records: Iterable[FileRecord]) -> int:
        return self._call(self._upsert_many, 0, list(records))

    def _upsert_many(self, records: List[FileRecord]) -> int:
        written = 0
        stamp = now_iso()
        for r in records:
            try:
                self._con.execute(UPSERT_SQL, record_params(r, stamp if r.indexed_time is None else None))
                written += 1
            except sqlite3.Error as e:
                log.debug("Skipping %s: %s", r.path, e)
        self._con.commit()
        return written

    def delete_root(self, root: str) -> int:
        return self._call(self._delete_root, 0, root)

    def _delete_root(self, root: str) -> int:
        cur = self._con.execute("DELETE FROM files WHERE folder_root = ?", (root,))
        self._con.commit()
        return max(cur.rowcount, 0)

    def delete_all(self) -> int:
        return self._call(self._delete_all, 0)

    def _delete_all(self) -> int:
        cur = self._con.execute("DELETE FROM files")
        self._con.commit()
        return max(cur.rowcount, 0)

    # ---- reads ----
    def stats(self) -> CatalogStats:
        return self._call(self._stats, CatalogStats())

    def _stats(self) -> CatalogStats:
        n, total = self._con.execute("SELECT COUNT(*), COALESCE(SUM(size),0) FROM files").fetchone()
        return CatalogStats(count=int(n), total_size=int(total))

    def select(self, where_sql: str = "", params: Sequence[Any] = (),
               order_by: str = "modified_time DESC", limit: Optional[int] = None) -> List[FileRecord]:
        return self._call(self._select, [], where_sql, tuple(params), order_by, limit)

    def _select(self, where_sql: str, params: tuple, order_by: str, limit: Optional[int]) -> List[FileRecord]:
        sql = f"SELECT {FILE_COLUMNS} FROM files"
        if where_sql:
            sql += f" WHERE {where_sql}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (int(limit),)
        return [row_to_record(r) for r in self._con.execute(sql, params).fetchall()]

    def count(self, where_sql: str = "", params: Sequence[Any] = ()) -> int:
        return self._call(self._count, 0, where_sql, tuple(params))

    def _count(self, where_sql: str, params: tuple) -> int:
        sql = "SELECT COUNT(*) FROM files" + (f" WHERE {where_sql}" if where_sql else "")
        return int(self._con.execute(sql, params).fetchone()[0])

    def distinct_paths(self) -> List[str]:
        return self._call(self._distinct_paths, [])

    def _distinct_paths(self) -> List[str]:
        return [p for (p,) in self._con.execute("SELECT DISTINCT path FROM files ORDER BY path") if p]
