"""
Folder capabilities: access tokens that must be active while a root is walked.

Minting and persisting tokens belongs to the host platform. The engine only
resolves a root to a usable location, activates the capability for the walk
and releases it afterwards.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol, Tuple

log = logging.getLogger(__name__)


class FolderCapability(Protocol):
    def activate(self) -> bool: ...

    def deactivate(self) -> None: ...


class CapabilityResolver(Protocol):
    def resolve(self, path: str) -> Tuple[str, Optional[FolderCapability]]: ...


class PathResolver:
    """Plain filesystem paths need no capability."""

    def resolve(self, path: str) -> Tuple[str, Optional[FolderCapability]]:
        return path, None


@contextmanager
def activated(capability: Optional[FolderCapability]) -> Iterator[bool]:
    """Hold a capability for the duration of the block.

    Yields whether access was granted. An activate() that raises counts as
    not granted. deactivate() runs on every exit path, but only if activate()
    succeeded.
    """
    granted = False
    if capability is not None:
        try:
            granted = bool(capability.activate())
        except Exception as e:
            log.warning("Capability activation failed: %s", e)
    try:
        yield granted
    finally:
        if granted:
            capability.deactivate()
