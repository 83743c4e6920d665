#!/usr/bin/env python3
"""
filedex CLI: index folders and search the catalog.

Examples
  filedex add ~/Documents /Volumes/TeamShare/Projects --index
  filedex index
  filedex search report --type .pdf --after 2024-01-01 --min-size 100K
  filedex search --scope legal "lease"
  filedex tree --all-roots
  filedex scopes add legal /Volumes/TeamShare/Legal/ /Users/me/Legal/
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .config import (RootListStore, ScopeStore, default_limit_from_cfg, filedex_home,
                     load_cfg, network_prefixes_from_cfg, resolve_db_path, scan_policy_from_cfg)
from .coordinator import IndexingBusyError, IndexingCoordinator, IndexRun
from .db import CatalogStore
from .models import FolderNode, SearchFilter
from .util import format_size, parse_size


def _date(s: str) -> datetime:
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {s!r} (use YYYY-MM-DD[THH:MM])")

def _size(s: str) -> int:
    try:
        return parse_size(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="filedex", description="Local file catalog and search")
    ap.add_argument("--config", type=Path, help="config.yaml to use (default: $FILEDEX_HOME/config.yaml)")
    ap.add_argument("--db", type=Path, help="catalog database (overrides FILEDEX_DB and config)")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("roots", help="list configured root folders")

    p = sub.add_parser("add", help="add root folders")
    p.add_argument("paths", nargs="+")
    p.add_argument("--index", action="store_true", help="index the added folders right away")

    p = sub.add_parser("remove", help="remove root folders and their records")
    p.add_argument("paths", nargs="+")

    p = sub.add_parser("index", help="re-index all roots, or only the given folders")
    p.add_argument("paths", nargs="*")

    p = sub.add_parser("search", help="search file names")
    p.add_argument("query", nargs="?", default="", help="substring of the file name")
    p.add_argument("--type", dest="file_type", help="extension, e.g. pdf or .PDF")
    p.add_argument("--folder", dest="folders", action="append", help="path prefix (repeatable, OR-ed)")
    p.add_argument("--scope", help="named scope from scopes.yaml")
    p.add_argument("--path-contains", help="substring of the full path")
    p.add_argument("--after", type=_date, help="modified on/after (ISO date)")
    p.add_argument("--before", type=_date, help="modified on/before (ISO date)")
    p.add_argument("--min-size", type=_size, help="bytes, or 10K / 5M / 1G")
    p.add_argument("--max-size", type=_size)
    p.add_argument("--limit", type=int, default=None, help="max results")

    sub.add_parser("stats", help="catalog file count and total size")

    p = sub.add_parser("clear", help="delete every record (roots are kept)")
    p.add_argument("--yes", action="store_true", help="do not ask for confirmation")

    p = sub.add_parser("tree", help="folder hierarchy of the indexed files")
    p.add_argument("--all-roots", action="store_true", help="also show roots with no indexed files")

    p = sub.add_parser("scopes", help="manage named scopes")
    ssub = p.add_subparsers(dest="scope_cmd", required=True)
    ssub.add_parser("list")
    sp = ssub.add_parser("add")
    sp.add_argument("name")
    sp.add_argument("prefixes", nargs="+")
    sp = ssub.add_parser("remove")
    sp.add_argument("name")

    p = sub.add_parser("resume", help="re-index roots on a volume that just mounted")
    p.add_argument("mount")
    return ap


# ---------- run helpers ----------
def follow_run(run: IndexRun, label: str = "Indexing") -> int:
    with tqdm(desc=label, unit=" files") as bar:
        for ev in run.iter_events():
            if ev.kind == "root_started":
                bar.set_postfix_str(ev.root or "")
            if ev.count > bar.n:
                bar.update(ev.count - bar.n)
    return run.result()

def print_tree(nodes: List[FolderNode], indent: int = 0) -> None:
    for n in nodes:
        print(("  " * indent) + (n.path if indent == 0 else n.name + "/"))
        print_tree(sorted(n.children, key=lambda c: c.path), indent + 1)


# ---------- commands ----------
def cmd_roots(co: IndexingCoordinator, args) -> int:
    if not co.roots:
        print("No roots configured. Use: filedex add PATH", file=sys.stderr)
        return 2
    for r in co.roots:
        flags = []
        if co.is_network_folder(r): flags.append("network")
        if not co.is_reachable_folder(r): flags.append("unreachable")
        print(f"{r}  files={co.count_under(r):,}" + (f"  [{', '.join(flags)}]" if flags else ""))
    return 0

def cmd_add(co: IndexingCoordinator, args) -> int:
    added = [co.add_root(p) for p in args.paths]
    for r in added:
        print(f"[filedex] root -> {r}")
    if args.index:
        n = follow_run(co.run_index(added))
        print(f"[OK] Indexed {n:,} files")
    return 0

def cmd_remove(co: IndexingCoordinator, args) -> int:
    for p in args.paths:
        n = co.remove_root(p)
        print(f"[OK] Removed {p} ({n:,} records)")
    return 0

def cmd_index(co: IndexingCoordinator, args) -> int:
    targets = args.paths or None
    if targets is None and not co.roots:
        print("No roots configured. Use: filedex add PATH", file=sys.stderr)
        return 2
    n = follow_run(co.run_index(targets))
    st = co.stats()
    print(f"[OK] Indexed {n:,} files; catalog holds {st.count:,} files ({format_size(st.total_size)})")
    return 0

def cmd_search(co: IndexingCoordinator, args, cfg: dict) -> int:
    folders = list(args.folders or [])
    if args.scope:
        scope = ScopeStore(filedex_home() / "scopes.yaml").get(args.scope)
        if scope is None:
            print(f"Unknown scope: {args.scope}", file=sys.stderr)
            return 1
        folders.extend(scope.prefixes)
    f = SearchFilter(
        query=args.query, file_type=args.file_type, folders=folders or None,
        path_contains=args.path_contains, modified_after=args.after, modified_before=args.before,
        min_size=args.min_size, max_size=args.max_size,
        limit=args.limit or default_limit_from_cfg(cfg),
    )
    rows = co.search_advanced(f)
    if not rows:
        print("No results.")
        return 0
    for r in rows:
        print(f"{r.modified_time.astimezone():%Y-%m-%d %H:%M}  {r.formatted_size:>10}  {r.path}")
    print(f"-- {len(rows):,} result(s)")
    return 0

def cmd_stats(co: IndexingCoordinator, args) -> int:
    st = co.stats()
    print(f"files={st.count:,}  total={format_size(st.total_size)}  roots={len(co.roots)}")
    return 0

def cmd_clear(co: IndexingCoordinator, args) -> int:
    if not args.yes:
        ans = input("Delete every record from the catalog? [y/N] ").strip().lower()
        if ans not in ("y", "yes"):
            print("Aborted.")
            return 1
    n = co.clear()
    print(f"[OK] Cleared {n:,} records")
    return 0

def cmd_tree(co: IndexingCoordinator, args) -> int:
    nodes = co.discover_folder_hierarchy(include_empty_roots=args.all_roots)
    if not nodes:
        print("No indexed folders.")
        return 0
    print_tree(nodes)
    return 0

def cmd_scopes(args) -> int:
    store = ScopeStore(filedex_home() / "scopes.yaml")
    if args.scope_cmd == "list":
        for s in store.scopes:
            print(f"{s.name}: {', '.join(s.prefixes)}")
        return 0
    if args.scope_cmd == "add":
        store.add(args.name, args.prefixes)
        print(f"[OK] Saved scope {args.name}")
        return 0
    if store.remove(args.name):
        print(f"[OK] Removed scope {args.name}")
        return 0
    print(f"Unknown scope: {args.name}", file=sys.stderr)
    return 1

def cmd_resume(co: IndexingCoordinator, args) -> int:
    run = co.resume_if_folder_inside(args.mount)
    if run is None:
        print("No configured roots on that volume.")
        return 0
    n = follow_run(run, label="Resuming")
    print(f"[OK] Indexed {n:,} files")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.cmd == "scopes":
        return cmd_scopes(args)

    cfg = load_cfg(args.config)
    db_path = args.db or resolve_db_path(cfg)
    logging.getLogger("filedex").info("DB -> %s", db_path)

    with CatalogStore(db_path) as store:
        co = IndexingCoordinator(
            store, RootListStore(filedex_home() / "roots.yaml"),
            policy=scan_policy_from_cfg(cfg), network_prefixes=network_prefixes_from_cfg(cfg),
        )
        try:
            if args.cmd == "search":
                return cmd_search(co, args, cfg)
            handler = {
                "roots": cmd_roots, "add": cmd_add, "remove": cmd_remove, "index": cmd_index,
                "stats": cmd_stats, "clear": cmd_clear, "tree": cmd_tree, "resume": cmd_resume,
            }[args.cmd]
            return handler(co, args)
        except IndexingBusyError as e:
            print(str(e), file=sys.stderr)
            return 1
        finally:
            co.shutdown()


if __name__ == "__main__":
    sys.exit(main())
