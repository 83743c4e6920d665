from __future__ import annotations

import logging
import os
import stat
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, FrozenSet, Iterator, List, Optional

from .capability import CapabilityResolver, PathResolver, activated
from .db import CatalogStore
from .models import FileRecord

log = logging.getLogger(__name__)

WrittenCb = Callable[[int], None]

# Directories the OS presents as a single document; never descended.
DEFAULT_BUNDLE_EXTS = frozenset({
    ".app", ".bundle", ".framework", ".plugin", ".kext", ".pkg", ".mpkg",
    ".photoslibrary", ".musiclibrary", ".fcpbundle", ".logicx", ".band",
    ".xcodeproj", ".xcworkspace", ".playground", ".rtfd", ".pages",
    ".numbers", ".key", ".scptd", ".wdgt", ".prefpane", ".qlgenerator",
    ".mdimporter", ".saver", ".xpc", ".appex", ".dsym",
})
DEFAULT_IGNORE_DIRS = frozenset({"$recycle.bin", "system volume information"})


@dataclass
class ScanPolicy:
    skip_hidden: bool = True
    skip_bundles: bool = True
    bundle_exts: FrozenSet[str] = field(default_factory=lambda: DEFAULT_BUNDLE_EXTS)
    ignore_dir_names: FrozenSet[str] = field(default_factory=lambda: DEFAULT_IGNORE_DIRS)
    batch_size: int = 500
    progress_every: int = 100


# ================= root checks =================
def check_root(path: str) -> Optional[str]:
    """Why a root cannot be walked, or None if it can."""
    if not os.path.exists(path):
        return "folder does not exist"
    if not os.path.isdir(path):
        return "path is not a directory"
    if not os.access(path, os.R_OK | os.X_OK):
        return "folder is not readable (permission denied)"
    return None


def is_hidden(entry: os.DirEntry) -> bool:
    if entry.name.startswith("."):
        return True
    if os.name == "nt":
        try:
            attrs = entry.stat(follow_symlinks=False).st_file_attributes
        except OSError:
            return False
        return bool(attrs & stat.FILE_ATTRIBUTE_HIDDEN)
    return False


def is_bundle(name: str, policy: ScanPolicy) -> bool:
    return os.path.splitext(name)[1].lower() in policy.bundle_exts


# ================= scanning =================
def walk_files(location: str, policy: ScanPolicy, root_it=None,
               cancel: Optional[threading.Event] = None) -> Iterator[os.DirEntry]:
    """Yield every regular file under location, depth first.

    root_it is an already open os.scandir handle for location, if the caller
    has one. Symlinks are never followed. Entries whose type cannot be read
    and subfolders that cannot be opened are skipped.
    """
    stack: List[str] = [location]
    while stack:
        d = stack.pop()
        if root_it is not None:
            it, root_it = root_it, None
        else:
            try:
                it = os.scandir(d)
            except OSError as e:
                log.debug("Cannot open %s: %s", d, e)
                continue
        with it:
            subdirs: List[str] = []
            for e in it:
                if cancel is not None and cancel.is_set():
                    return
                if policy.skip_hidden and is_hidden(e):
                    continue
                try:
                    if e.is_dir(follow_symlinks=False):
                        name = e.name
                        if name.lower() in policy.ignore_dir_names:
                            continue
                        if policy.skip_bundles and is_bundle(name, policy):
                            continue
                        subdirs.append(e.path)
                    elif e.is_file(follow_symlinks=False):
                        yield e
                except OSError:
                    continue
            # reversed so the walk visits subfolders in listing order
            stack.extend(reversed(subdirs))


def file_extension(name: str) -> str:
    return os.path.splitext(name)[1].lstrip(".").lower()


def extract_record(entry: os.DirEntry, folder_root: str) -> Optional[FileRecord]:
    try:
        st = entry.stat(follow_symlinks=False)
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return FileRecord(
        path=entry.path,
        name=entry.name,
        extension=file_extension(entry.name),
        size=max(int(st.st_size), 0),
        modified_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        folder_root=folder_root,
    )


# ================= per-root run =================
def index_root(store: CatalogStore, root: str,
               resolver: Optional[CapabilityResolver] = None,
               policy: Optional[ScanPolicy] = None,
               on_written: Optional[WrittenCb] = None,
               cancel: Optional[threading.Event] = None) -> int:
    """Replace the catalog rows of one root with a fresh walk of it.

    Returns the number of records written. A root that is missing, not a
    directory, unreadable or unenumerable contributes 0.
    """
    policy = policy or ScanPolicy()
    try:
        location, capability = (resolver or PathResolver()).resolve(root)
    except Exception as e:
        log.warning("Cannot resolve %s (%s); walking the plain path", root, e)
        location, capability = root, None

    with activated(capability):
        removed = store.delete_root(root)
        if removed:
            log.debug("Cleared %d stale records for %s", removed, root)

        reason = check_root(location)
        if reason:
            log.warning("Skipping %s: %s", root, reason)
            return 0
        try:
            root_it = os.scandir(location)
        except OSError as e:
            log.warning("Skipping %s: cannot enumerate (%s)", root, e)
            return 0

        written = 0
        batch: List[FileRecord] = []

        def flush() -> None:
            nonlocal written
            if not batch:
                return
            written += store.upsert_many(batch)
            batch.clear()
            if on_written:
                on_written(written)

        for entry in walk_files(location, policy, root_it=root_it, cancel=cancel):
            rec = extract_record(entry, root)
            if rec is None:
                continue
            batch.append(rec)
            if len(batch) >= policy.batch_size:
                flush()
        flush()

    log.info("Indexed %s: %d files", root, written)
    return written
