"""
Inspection runner — drive the binding end to end over one source file.

Creates an index, parses the file, walks the cursor tree (optionally
depth-limited), collects diagnostics, then disposes everything and records
the lifecycle counters so a caller can verify nothing leaked.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

from cxbind.bindings import ClangBinding
from cxbind.config import Settings
from cxbind.config import settings as default_settings
from cxbind.core.handle import Handle
from cxbind.core.native import get_library
from cxbind.errors import NativeConstructionError
from cxbind.io.schema import CursorNode, TuInspection
from cxbind.io.writer import write_inspection

logger = logging.getLogger(__name__)


# ── Tree walk ────────────────────────────────────────────────────────────────

def _walk(
    binding: ClangBinding,
    cursor: Handle,
    depth: int,
    max_depth: Optional[int],
) -> Tuple[CursorNode, int]:
    """Build the CursorNode subtree rooted at *cursor*; return it and its size."""
    ty = binding.get_cursor_type(cursor)
    node = CursorNode(
        spelling=binding.get_cursor_spelling(cursor),
        kind=binding.get_cursor_kind(cursor),
        type_spelling=binding.get_type_spelling(ty) if ty is not None else None,
        depth=depth,
    )
    count = 1
    if max_depth is None or depth < max_depth:
        for child in binding.get_cursor_children(cursor):
            sub, n = _walk(binding, child, depth + 1, max_depth)
            node.children.append(sub)
            count += n
    return node, count


# ── Public API ───────────────────────────────────────────────────────────────

def inspect_tu(
    tu_path: Path,
    *,
    args: Optional[Iterable[str]] = None,
    max_depth: Optional[int] = None,
    settings: Optional[Settings] = None,
    lib: Any = None,
    output_dir: Optional[Path] = None,
) -> TuInspection:
    """
    Parse and walk one translation unit.

    Parameters
    ----------
    tu_path : Path
        Source file to parse.
    args : Iterable[str], optional
        Extra compiler arguments (e.g. ``["-std=c11"]``).
    max_depth : int, optional
        Stop descending below this depth (root is depth 0).
    settings : Settings, optional
        Binding settings.  Defaults to the environment-derived settings.
    lib : optional
        An already-loaded libclang.  Loaded on demand if omitted.
    output_dir : Path, optional
        If given, the inspection is also written as JSON there.

    Returns
    -------
    TuInspection
        ``parse_status`` is ``"ERROR"`` when the index or TU could not be
        created; ``stats`` is taken after every handle was released.
    """
    settings = settings if settings is not None else default_settings
    if lib is None:
        lib = get_library(settings.LIBCLANG_PATH)
    binding = ClangBinding(lib, settings)

    inspection = TuInspection(
        tu_path=str(tu_path),
        parse_status="ERROR",
        max_depth=max_depth,
    )

    index = binding.create_index(False, False)
    if index is None:
        logger.error("Could not create a libclang index")
        inspection.diagnostics.append("index creation failed")
    else:
        try:
            try:
                tu = binding.parse_tu(index, tu_path, args)
            except NativeConstructionError as e:
                logger.warning("Failed to parse %s: %s", tu_path, e)
                inspection.diagnostics.append(str(e))
                tu = None

            if tu is None:
                logger.info("No translation unit for %s", tu_path)
            else:
                try:
                    inspection.parse_status = "OK"
                    inspection.tu_spelling = binding.get_tu_spelling(tu)
                    inspection.diagnostics = binding.get_tu_diagnostics(tu)
                    root = binding.get_tu_cursor(tu)
                    if root is not None:
                        inspection.root, inspection.node_count = _walk(
                            binding, root, 0, max_depth,
                        )
                finally:
                    binding.dispose_tu(tu)
        finally:
            binding.dispose_index(index)

    inspection.stats = binding.stats()
    logger.debug(
        "Inspected %s: %d nodes, %d diagnostics",
        tu_path, inspection.node_count, len(inspection.diagnostics),
    )

    if output_dir:
        write_inspection(inspection, output_dir)
        logger.info("Wrote cxbind inspection to %s", output_dir)

    return inspection
