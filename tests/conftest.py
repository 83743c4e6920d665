"""
Shared pytest fixtures for filedex tests.

Provides an open catalog store, a coordinator wired to temp-dir persistence,
and a helper for laying out files with known sizes and mtimes.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from filedex.config import RootListStore
from filedex.coordinator import IndexingCoordinator
from filedex.db import CatalogStore
from filedex.models import FileRecord
from filedex.walker import ScanPolicy


@pytest.fixture
def store(tmp_path: Path) -> Generator[CatalogStore, None, None]:
    s = CatalogStore(tmp_path / "state" / "catalog.db").open()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def policy() -> ScanPolicy:
    return ScanPolicy(batch_size=2, progress_every=2)


@pytest.fixture
def coordinator(store: CatalogStore, tmp_path: Path, policy: ScanPolicy) -> Generator[IndexingCoordinator, None, None]:
    co = IndexingCoordinator(store, RootListStore(tmp_path / "state" / "roots.yaml"), policy=policy)
    try:
        yield co
    finally:
        co.shutdown()


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """Create a file with `size` bytes and an optional mtime (epoch seconds)."""

    def _make(path: Path, size: int = 10, mtime: Optional[float] = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _make


def record(path: str, size: int = 1, mtime: float = 1_700_000_000, root: str = "/data") -> FileRecord:
    name = os.path.basename(path)
    ext = os.path.splitext(name)[1].lstrip(".").lower()
    return FileRecord(
        path=path, name=name, extension=ext, size=size,
        modified_time=datetime.fromtimestamp(mtime, tz=timezone.utc), folder_root=root,
    )
