"""
Schema — Pydantic models for cxbind outputs.

Two shapes:
  1. LifecycleStats         — per-kind resource counters of one binding.
  2. TuInspection           — one parsed TU: cursor tree, diagnostics,
                              and the stats after everything was released.

Runtime contract fields (present in every top-level output):
  package_name, binding_version, schema_version.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from cxbind import BINDING_VERSION, PACKAGE_NAME, SCHEMA_VERSION


# ── Lifecycle counters ───────────────────────────────────────────────────────

class KindStats(BaseModel):
    """Counters for one resource kind."""
    kind: str
    created: int = 0
    disposed: int = 0        # explicit + cascaded disposals
    finalized: int = 0       # released by the GC backstop
    live: int = 0            # reachable handles still LIVE
    outstanding: int = 0     # native resources not yet released


class LifecycleStats(BaseModel):
    package_name: str = PACKAGE_NAME
    binding_version: str = BINDING_VERSION
    schema_version: str = SCHEMA_VERSION
    kinds: List[KindStats] = Field(default_factory=list)

    def for_kind(self, kind: str) -> KindStats:
        for ks in self.kinds:
            if ks.kind == kind:
                return ks
        raise KeyError(kind)

    @property
    def outstanding(self) -> int:
        return sum(ks.outstanding for ks in self.kinds)


# ── Cursor tree ──────────────────────────────────────────────────────────────

class CursorNode(BaseModel):
    """One cursor in the inspected tree."""
    spelling: str
    kind: str
    type_spelling: Optional[str] = None   # None when the cursor has no type
    depth: int
    children: List[CursorNode] = Field(default_factory=list)


# ── TU inspection ────────────────────────────────────────────────────────────

class TuInspection(BaseModel):
    """
    cxbind_inspection.json — one translation unit, walked and released.
    """
    package_name: str = PACKAGE_NAME
    binding_version: str = BINDING_VERSION
    schema_version: str = SCHEMA_VERSION
    tu_path: str
    parse_status: str                      # OK | ERROR
    tu_spelling: Optional[str] = None
    diagnostics: List[str] = Field(default_factory=list)
    root: Optional[CursorNode] = None
    node_count: int = 0
    max_depth: Optional[int] = None
    stats: LifecycleStats = Field(default_factory=LifecycleStats)
