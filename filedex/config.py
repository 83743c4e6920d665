"""
Configuration and persisted user lists.

State lives in FILEDEX_HOME (default ~/.filedex):
  config.yaml   optional settings, edited by hand
  roots.yaml    configured root folders, in order
  scopes.yaml   named folder-prefix sets for narrowing searches
  catalog.db    default catalog location

config.yaml
  db_path: "~/catalogs/files.db"
  network_prefixes: ["/Volumes/", "\\\\"]
  scan:
    skip_hidden: true
    skip_bundles: true
    bundle_exts: [".app", ".bundle", ...]
    ignore_dir_names: ["$recycle.bin", "system volume information"]
    batch_size: 500
    progress_every: 100
  search: {default_limit: 1000}
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .models import Scope
from .walker import DEFAULT_BUNDLE_EXTS, DEFAULT_IGNORE_DIRS, ScanPolicy

log = logging.getLogger(__name__)

DEFAULT_NETWORK_PREFIXES = ["/Volumes/", "\\\\"]


# -------- Paths / config helpers --------
def filedex_home() -> Path:
    env = os.getenv("FILEDEX_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".filedex"

def config_path() -> Path:
    return filedex_home() / "config.yaml"

def load_cfg(path: Optional[Path] = None) -> dict:
    p = Path(path) if path else config_path()
    if not p.is_file():
        return {}
    try:
        with open(p, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("Ignoring unreadable config %s: %s", p, e)
        return {}
    if not isinstance(cfg, dict):
        log.warning("Ignoring config %s: expected a mapping", p)
        return {}
    return cfg

def resolve_db_path(cfg: dict) -> Path:
    """
    Order of precedence:
    1) FILEDEX_DB env var
    2) cfg['db_path'] if provided
    3) catalog.db in the filedex home
    """
    env = os.getenv("FILEDEX_DB")
    if env:
        return Path(env).expanduser()
    cfg_db = (cfg or {}).get("db_path")
    if cfg_db:
        return Path(str(cfg_db)).expanduser()
    return filedex_home() / "catalog.db"

def scan_policy_from_cfg(cfg: dict) -> ScanPolicy:
    sc = ((cfg or {}).get("scan") or {})
    bundle_exts = sc.get("bundle_exts")
    ignore_dirs = sc.get("ignore_dir_names")
    return ScanPolicy(
        skip_hidden=bool(sc.get("skip_hidden", True)),
        skip_bundles=bool(sc.get("skip_bundles", True)),
        bundle_exts=(frozenset("." + str(e).lower().lstrip(".") for e in bundle_exts)
                     if bundle_exts is not None else DEFAULT_BUNDLE_EXTS),
        ignore_dir_names=(frozenset(str(d).lower() for d in ignore_dirs)
                          if ignore_dirs is not None else DEFAULT_IGNORE_DIRS),
        batch_size=max(1, int(sc.get("batch_size", 500))),
        progress_every=max(1, int(sc.get("progress_every", 100))),
    )

def network_prefixes_from_cfg(cfg: dict) -> List[str]:
    prefixes = (cfg or {}).get("network_prefixes")
    if prefixes is None:
        return list(DEFAULT_NETWORK_PREFIXES)
    return [str(p) for p in prefixes]

def default_limit_from_cfg(cfg: dict, fallback: int = 1000) -> int:
    return int(((cfg or {}).get("search") or {}).get("default_limit", fallback))


# -------- persisted lists --------
def _write_yaml_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise

def _read_yaml_list(path: Path, what: str) -> list:
    if not path.is_file():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        log.warning("Failed to load %s from %s: %s", what, path, e)
        return []
    if data is None:
        return []
    if not isinstance(data, list):
        log.warning("Failed to load %s from %s: expected a list", what, path)
        return []
    return data


class RootListStore:
    """Ordered list of canonical root paths, saved as a YAML list of strings."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else filedex_home() / "roots.yaml"

    def load(self) -> List[str]:
        return [str(p) for p in _read_yaml_list(self.path, "roots") if p]

    def save(self, roots: List[str]) -> None:
        _write_yaml_atomic(self.path, [str(r) for r in roots])


class ScopeStore:
    """Named scopes, saved as a YAML list of {name, prefixes}."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else filedex_home() / "scopes.yaml"
        self.scopes: List[Scope] = []
        self.load()

    def load(self) -> List[Scope]:
        scopes = []
        for item in _read_yaml_list(self.path, "scopes"):
            try:
                scopes.append(Scope.from_dict(item))
            except (KeyError, TypeError, AttributeError) as e:
                log.warning("Skipping malformed scope %r: %s", item, e)
        self.scopes = scopes
        return scopes

    def save(self) -> None:
        _write_yaml_atomic(self.path, [s.to_dict() for s in self.scopes])

    def get(self, name: str) -> Optional[Scope]:
        for s in self.scopes:
            if s.name == name:
                return s
        return None

    def add(self, name: str, prefixes: List[str]) -> Scope:
        scope = Scope(name=name, prefixes=list(prefixes))
        self.scopes = [s for s in self.scopes if s.name != name] + [scope]
        self.save()
        return scope

    def remove(self, name: str) -> bool:
        before = len(self.scopes)
        self.scopes = [s for s in self.scopes if s.name != name]
        if len(self.scopes) == before:
            return False
        self.save()
        return True
