from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Optional


# ================= time =================
# Seconds precision keeps stored timestamps lexically ordered.
def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

def to_iso(dt: datetime) -> str:
    """Render a datetime in the catalog's text form. Naive values are local time."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")

def parse_iso(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ================= paths =================
def normalize_root(path: str) -> str:
    """Absolute, standardized folder path: no trailing separator, no '.' or '..' parts."""
    return os.path.abspath(os.path.expanduser(str(path)))

def is_under(path: str, folder: str) -> bool:
    return path == folder or path.startswith(folder.rstrip("\\/") + os.sep)


# ================= sizes =================
_UNITS = ["bytes", "KB", "MB", "GB", "TB", "PB"]

def format_size(n: int) -> str:
    if n < 1000:
        return f"{n} bytes" if n != 1 else "1 byte"
    v = float(n)
    for unit in _UNITS[1:]:
        v /= 1000.0
        if v < 1000 or unit == _UNITS[-1]:
            return f"{v:.1f} {unit}"
    return f"{n} bytes"

_SIZE_RE = re.compile(r"^\s*(?P<num>\d+(?:\.\d+)?)\s*(?P<unit>[kmgt]?)b?\s*$", re.I)
_MULT = {"": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3, "t": 1024 ** 4}

def parse_size(s: str) -> int:
    """'4096', '10K', '1.5M', '2GB' -> bytes."""
    m = _SIZE_RE.match(s or "")
    if not m:
        raise ValueError(f"invalid size: {s!r}")
    return int(float(m.group("num")) * _MULT[m.group("unit").lower()])
