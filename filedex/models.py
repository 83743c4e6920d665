from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional

from .util import format_size


# ================= data model =================
@dataclass
class FileRecord:
    path: str
    name: str
    extension: str
    size: int
    modified_time: datetime
    folder_root: str
    indexed_time: Optional[datetime] = None

    @property
    def formatted_size(self) -> str:
        return format_size(self.size)


@dataclass
class CatalogStats:
    count: int = 0
    total_size: int = 0


@dataclass
class SearchFilter:
    query: str = ""
    file_type: Optional[str] = None          # ".pdf", "pdf", "All" or None
    folders: Optional[List[str]] = None      # raw path prefixes, OR-ed
    path_contains: Optional[str] = None
    modified_after: Optional[datetime] = None
    modified_before: Optional[datetime] = None
    min_size: Optional[int] = None           # bytes
    max_size: Optional[int] = None           # bytes
    limit: int = 1000


@dataclass
class Scope:
    name: str
    prefixes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "prefixes": list(self.prefixes)}

    @classmethod
    def from_dict(cls, d: dict) -> "Scope":
        return cls(name=str(d["name"]), prefixes=[str(p) for p in (d.get("prefixes") or [])])


class FolderNode:
    """A directory in the reconstructed folder tree. Identity is the path."""

    def __init__(self, path: str, name: Optional[str] = None):
        self.path = path
        self.name = name if name is not None else (os.path.basename(path) or path)
        self.children: List[FolderNode] = []
        self.is_expanded = False

    def __eq__(self, other) -> bool:
        if not isinstance(other, FolderNode):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"FolderNode({self.path!r}, children={len(self.children)})"

    def walk(self) -> Iterator["FolderNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, path: str) -> Optional["FolderNode"]:
        for node in self.walk():
            if node.path == path:
                return node
        return None
