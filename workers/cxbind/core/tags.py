"""
Tag registry — one process-wide identity per native resource kind.

Tags are registered once (at import, for the well-known libclang kinds) and
are immutable for the lifetime of the process.  All handle construction and
unwrap checks compare Tag objects by identity, never raw names.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Tag:
    """Identity of one resource kind."""
    name: str
    ident: int

    def __repr__(self) -> str:
        return f"Tag({self.name!r}, {self.ident})"


class TagRegistry:
    """Name → Tag table.  Registration is idempotent and lock-guarded."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tags: Dict[str, Tag] = {}

    def register_kind(self, name: str) -> Tag:
        """Return the Tag for *name*, creating it on first registration."""
        with self._lock:
            tag = self._tags.get(name)
            if tag is None:
                tag = Tag(name=name, ident=len(self._tags) + 1)
                self._tags[name] = tag
                logger.debug("Registered kind %s", tag)
            return tag

    def lookup(self, name: str) -> Tag:
        """Tag already registered under *name*; KeyError if none."""
        with self._lock:
            return self._tags[name]

    def tags(self) -> Tuple[Tag, ...]:
        with self._lock:
            return tuple(self._tags.values())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tags


REGISTRY = TagRegistry()


def register_kind(name: str) -> Tag:
    return REGISTRY.register_kind(name)


# ── Well-known libclang kinds ────────────────────────────────────────────────

INDEX = register_kind("Clang.Index")
TU = register_kind("Clang.TU")
CURSOR = register_kind("Clang.Cursor")
TYPE = register_kind("Clang.Type")
