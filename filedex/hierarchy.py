"""
Rebuild the folder tree implied by a flat set of indexed file paths.

Only directories appear, never files. A directory shows up only if some
indexed file lives in it or below it.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List, Set

from .models import FolderNode

log = logging.getLogger(__name__)


def parent_dir(path: str) -> str:
    return os.path.dirname(path)


def is_fs_root(path: str) -> bool:
    return parent_dir(path) == path


def depth(path: str) -> int:
    return len([p for p in path.replace("\\", "/").split("/") if p])


def ancestor_dirs(paths: Iterable[str]) -> Set[str]:
    """Every parent directory of every path, excluding the filesystem root."""
    folders: Set[str] = set()
    for p in paths:
        cur = parent_dir(p)
        while cur and not is_fs_root(cur):
            if cur in folders:
                break  # the rest of the chain is already in
            folders.add(cur)
            cur = parent_dir(cur)
    return folders


def build_hierarchy(dir_paths: Iterable[str], roots: Iterable[str],
                    include_empty_roots: bool = False) -> List[FolderNode]:
    """Assemble a forest of FolderNodes, one top-level node per configured root.

    Parents are materialized before children by visiting paths shallowest
    first. A non-root path hangs off its immediate parent; the parent node
    is created on demand when it is not in the set itself.
    """
    root_set = set(roots)
    node_map: Dict[str, FolderNode] = {}
    root_nodes: List[FolderNode] = []
    seen_roots: Set[str] = set()

    for path in sorted(set(dir_paths), key=lambda p: (depth(p), p)):
        node = node_map.get(path)
        if node is None:
            node = node_map[path] = FolderNode(path)

        if path in root_set:
            if path not in seen_roots:
                seen_roots.add(path)
                root_nodes.append(node)
            continue

        parent = parent_dir(path)
        if not parent or is_fs_root(parent):
            continue
        parent_node = node_map.get(parent)
        if parent_node is None:
            parent_node = node_map[parent] = FolderNode(parent)
        if node not in parent_node.children:
            parent_node.children.append(node)

    if include_empty_roots:
        for root in root_set - seen_roots:
            root_nodes.append(node_map.get(root) or FolderNode(root))

    log.debug("Built hierarchy with %d root nodes from %d folders", len(root_nodes), len(node_map))
    return sorted(root_nodes, key=lambda n: n.path)


def discover_folder_hierarchy(file_paths: Iterable[str], roots: Iterable[str],
                              include_empty_roots: bool = False) -> List[FolderNode]:
    return build_hierarchy(ancestor_dirs(file_paths), roots, include_empty_roots=include_empty_roots)
