from __future__ import annotations

import logging
import os
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from .capability import CapabilityResolver, PathResolver
from .config import DEFAULT_NETWORK_PREFIXES, RootListStore
from .db import CatalogStore
from .hierarchy import discover_folder_hierarchy
from .models import CatalogStats, FileRecord, FolderNode, SearchFilter
from .query import SIMPLE_LIMIT, QueryEngine
from .util import is_under, normalize_root
from .walker import ScanPolicy, check_root, index_root

log = logging.getLogger(__name__)

CountCb = Callable[[int], None]


class FiledexError(Exception):
    pass


class IndexingBusyError(FiledexError):
    """A run was requested while another one is still in flight."""


@dataclass
class IndexEvent:
    kind: str                   # "root_started" | "progress" | "done"
    count: int
    root: Optional[str] = None


@dataclass
class CoordinatorState:
    roots: List[str] = field(default_factory=list)
    is_indexing: bool = False
    index_progress: int = 0
    last_count: Optional[int] = None


class IndexRun:
    """Handle for one submitted run: a future for the final count plus an event channel."""

    def __init__(self, roots: List[str]) -> None:
        self.roots = list(roots)
        self.events: "queue.Queue[IndexEvent]" = queue.Queue()
        self.future: Optional[Future] = None
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop between files. Rows already written stay in the catalog."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self.future is not None and self.future.done()

    def result(self, timeout: Optional[float] = None) -> int:
        return self.future.result(timeout)

    def iter_events(self, timeout: Optional[float] = None) -> Iterator[IndexEvent]:
        """Yield events until (and including) the single 'done' event."""
        while True:
            ev = self.events.get(timeout=timeout)
            yield ev
            if ev.kind == "done":
                return


class IndexingCoordinator:
    def __init__(self, store: CatalogStore,
                 root_list: Optional[RootListStore] = None,
                 resolver: Optional[CapabilityResolver] = None,
                 policy: Optional[ScanPolicy] = None,
                 network_prefixes: Optional[List[str]] = None) -> None:
        self.store = store
        self.root_list = root_list
        self.resolver = resolver or PathResolver()
        self.policy = policy or ScanPolicy()
        self.network_prefixes = list(network_prefixes if network_prefixes is not None else DEFAULT_NETWORK_PREFIXES)
        self.query = QueryEngine(store)
        self.state = CoordinatorState(roots=self._load_roots())
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="filedex-index")

    def _load_roots(self) -> List[str]:
        if self.root_list is None:
            return []
        roots: List[str] = []
        for r in self.root_list.load():
            r = normalize_root(r)
            if r not in roots:
                roots.append(r)
        return roots

    def _save_roots(self) -> None:
        if self.root_list is not None:
            self.root_list.save(self.state.roots)

    # ---- roots ----
    @property
    def roots(self) -> List[str]:
        return list(self.state.roots)

    def add_root(self, path: str) -> str:
        root = normalize_root(path)
        if root not in self.state.roots:
            self.state.roots.append(root)
            self._save_roots()
        return root

    def remove_root(self, path: str) -> int:
        root = normalize_root(path)
        self.state.roots = [r for r in self.state.roots if r != root]
        self._save_roots()
        removed = self.store.delete_root(root)
        log.info("Removed %s (%d records)", root, removed)
        return removed

    # ---- indexing ----
    @property
    def is_indexing(self) -> bool:
        return self.state.is_indexing

    def run_index(self, roots: Optional[List[str]] = None,
                  on_progress: Optional[CountCb] = None,
                  on_complete: Optional[CountCb] = None) -> IndexRun:
        with self._lock:
            if self.state.is_indexing:
                raise IndexingBusyError("an indexing run is already in progress")
            self.state.is_indexing = True
            self.state.index_progress = 0

        targets = [normalize_root(r) for r in roots] if roots is not None else list(self.state.roots)
        run = IndexRun(targets)
        try:
            run.future = self._pool.submit(self._run, run, on_progress, on_complete)
        except RuntimeError:
            with self._lock:
                self.state.is_indexing = False
            raise
        return run

    def _run(self, run: IndexRun, on_progress: Optional[CountCb], on_complete: Optional[CountCb]) -> int:
        every = max(1, self.policy.progress_every)
        total = 0
        last_emit = 0
        start = time.time()
        log.info("Starting indexing: %s", run.roots)
        try:
            for root in run.roots:
                if run.cancelled:
                    break
                run.events.put(IndexEvent("root_started", total, root))
                base = total

                def on_written(n: int, base: int = base, root: str = root) -> None:
                    nonlocal last_emit
                    current = base + n
                    if current // every > last_emit // every:
                        last_emit = current
                        self.state.index_progress = current
                        log.debug("Indexed %d files...", current)
                        run.events.put(IndexEvent("progress", current, root))
                        if on_progress:
                            on_progress(current)

                total += index_root(self.store, root, self.resolver, self.policy,
                                    on_written=on_written, cancel=run._cancel)
        finally:
            self.state.index_progress = total
            self.state.last_count = total
            with self._lock:
                self.state.is_indexing = False
            log.info("Indexing %s: %d files in %.1fs",
                     "cancelled" if run.cancelled else "complete", total, time.time() - start)
            run.events.put(IndexEvent("done", total))
            if on_complete:
                on_complete(total)
        return total

    def resume_if_folder_inside(self, mount_path: str) -> Optional[IndexRun]:
        """Re-index the roots on a volume that just mounted."""
        mount = normalize_root(mount_path)
        matches = [r for r in self.state.roots if is_under(r, mount)]
        if not matches or self.state.is_indexing:
            return None
        try:
            return self.run_index(matches)
        except IndexingBusyError:
            return None

    def clear(self) -> int:
        removed = self.store.delete_all()
        self.state.index_progress = 0
        return removed

    # ---- reads ----
    def stats(self) -> CatalogStats:
        return self.store.stats()

    def search_advanced(self, f: SearchFilter) -> List[FileRecord]:
        return self.query.search_advanced(f)

    def search(self, query: str = "", file_type: Optional[str] = None,
               folders: Optional[List[str]] = None, limit: int = SIMPLE_LIMIT) -> List[FileRecord]:
        return self.query.search(query, file_type=file_type, folders=folders, limit=limit)

    def count_under(self, folder: str) -> int:
        """Records inside folder. The trailing separator keeps sibling folders out.

        Matching folds ASCII case, like every folder scope.
        """
        return self.query.count(SearchFilter(folders=[folder.rstrip("\\/") + os.sep]))

    def discover_folder_hierarchy(self, include_empty_roots: bool = False) -> List[FolderNode]:
        paths = self.store.distinct_paths()
        return discover_folder_hierarchy(paths, self.state.roots, include_empty_roots=include_empty_roots)

    # ---- reachability ----
    def is_reachable_folder(self, path: str) -> bool:
        return check_root(path) is None

    def is_network_folder(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.network_prefixes)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
