"""
Host bindings — every exposed libclang operation, marshaled.

Each operation follows the same shape:

  1. unwrap handle arguments through the lifecycle manager (kind and
     provenance checked), coerce scalars;
  2. call libclang;
  3. wrap returned handles through the lifecycle manager (null sentinels
     become ``None``), copy returned strings and release the native buffer.

No state is kept between calls beyond what the handles carry.

``open_module()`` is the entry point: it loads libclang and returns the
host namespace table (createIndex, parseTU, getTUCursor, ...).
"""
from __future__ import annotations

import logging
from ctypes import c_void_p, pointer
from types import SimpleNamespace
from typing import Any, Iterable, List, Optional

from cxbind.config import Settings
from cxbind.config import settings as default_settings
from cxbind.core.handle import Handle
from cxbind.core.lifecycle import Constructor, LifecycleManager
from cxbind.core.marshal import argv_array, take_string, to_argv, to_cstring, to_flag
from cxbind.core.native import (
    CHILD_VISIT_CONTINUE,
    CURSOR_VISITOR,
    CXCursor,
    TU_OPTIONS_NONE,
    get_library,
    load_library,
)
from cxbind.core.tags import CURSOR, INDEX, TU, TYPE
from cxbind.errors import NativeConstructionError
from cxbind.io.schema import LifecycleStats
from cxbind.policy.kinds import NODE, SESSION, TYPE_DESCRIPTOR, UNIT, KindSpec

logger = logging.getLogger(__name__)


# ── Host name tables ─────────────────────────────────────────────────────────

CLANG_FUNCTIONS = (
    ("createIndex", "create_index"),
)

INDEX_FUNCTIONS = (
    ("disposeIndex", "dispose_index"),
    ("parseTU", "parse_tu"),
)

TU_FUNCTIONS = (
    ("disposeTU", "dispose_tu"),
    ("getTUCursor", "get_tu_cursor"),
    ("getTUSpelling", "get_tu_spelling"),
    ("getTUDiagnostics", "get_tu_diagnostics"),
)

CURSOR_FUNCTIONS = (
    ("getCursorSpelling", "get_cursor_spelling"),
    ("getCursorKind", "get_cursor_kind"),
    ("getCursorType", "get_cursor_type"),
    ("getCursorChildren", "get_cursor_children"),
)

TYPE_FUNCTIONS = (
    ("getTypeSpelling", "get_type_spelling"),
)

MODULE_FUNCTIONS = (
    ("lifecycleStats", "stats"),
)

HOST_FUNCTIONS = (
    CLANG_FUNCTIONS + INDEX_FUNCTIONS + TU_FUNCTIONS
    + CURSOR_FUNCTIONS + TYPE_FUNCTIONS + MODULE_FUNCTIONS
)


class ClangBinding:
    """Marshaling layer over one loaded libclang."""

    def __init__(self, lib: Any, settings: Optional[Settings] = None):
        self._lib = lib
        self._settings = settings if settings is not None else default_settings
        self._manager = LifecycleManager(
            lib, finalizer_backstop=self._settings.FINALIZER_BACKSTOP,
        )

    @property
    def manager(self) -> LifecycleManager:
        return self._manager

    def _construct(
        self,
        spec: KindSpec,
        construct: Constructor,
        owner: Optional[Handle] = None,
        *,
        nil_on_failure: Optional[bool] = None,
    ) -> Optional[Handle]:
        if nil_on_failure is None:
            nil_on_failure = self._settings.NIL_ON_CONSTRUCTION_FAILURE
        try:
            return self._manager.create(spec, construct, owner)
        except NativeConstructionError as e:
            if not nil_on_failure:
                raise
            logger.debug("Returning nil: %s", e)
            return None

    # ── Index ────────────────────────────────────────────────────────────────

    def create_index(self, exclude_pch: Any = None, diagnostics: Any = None) -> Optional[Handle]:
        mode = self._settings.FLAG_COERCION
        exclude = to_flag(exclude_pch, mode)
        display = to_flag(diagnostics, mode)
        return self._construct(
            SESSION, lambda: (self._lib.clang_createIndex(exclude, display), None),
        )

    def dispose_index(self, index: Any) -> None:
        self._manager.dispose(index, INDEX)

    def parse_tu(
        self,
        index: Any,
        file_name: Any,
        args: Optional[Iterable[Any]] = None,
    ) -> Optional[Handle]:
        """
        Parse *file_name* within *index*.

        The file name is passed as the first command-line argument, followed
        by ``DEFAULT_PARSE_ARGS`` and *args*.
        """
        idx = self._manager.unwrap(index, INDEX)
        argv = [to_cstring(file_name, "file_name")]
        argv += to_argv(self._settings.DEFAULT_PARSE_ARGS)
        argv += to_argv(args)
        c_argv = argv_array(argv)

        def construct():
            out = c_void_p()
            code = self._lib.clang_parseTranslationUnit2(
                idx, None, c_argv, len(argv), None, 0, TU_OPTIONS_NONE, pointer(out),
            )
            return out.value, code

        return self._construct(UNIT, construct, owner=index)

    # ── Translation unit ─────────────────────────────────────────────────────

    def dispose_tu(self, tu: Any) -> None:
        self._manager.dispose(tu, TU)

    def get_tu_cursor(self, tu: Any) -> Optional[Handle]:
        unit = self._manager.unwrap(tu, TU)
        return self._construct(
            NODE,
            lambda: (self._lib.clang_getTranslationUnitCursor(unit), None),
            owner=tu,
            nil_on_failure=True,
        )

    def get_tu_spelling(self, tu: Any) -> str:
        unit = self._manager.unwrap(tu, TU)
        return take_string(self._lib, self._lib.clang_getTranslationUnitSpelling(unit))

    def get_tu_diagnostics(self, tu: Any) -> List[str]:
        """Formatted diagnostics; each native diagnostic is released here."""
        unit = self._manager.unwrap(tu, TU)
        lib = self._lib
        options = lib.clang_defaultDiagnosticDisplayOptions()
        messages: List[str] = []
        for i in range(lib.clang_getNumDiagnostics(unit)):
            diag = lib.clang_getDiagnostic(unit, i)
            if not diag:
                continue
            try:
                messages.append(take_string(lib, lib.clang_formatDiagnostic(diag, options)))
            finally:
                lib.clang_disposeDiagnostic(diag)
        return messages

    # ── Cursor ───────────────────────────────────────────────────────────────

    def get_cursor_spelling(self, cursor: Any) -> str:
        cur = self._manager.unwrap(cursor, CURSOR)
        return take_string(self._lib, self._lib.clang_getCursorSpelling(cur))

    def get_cursor_kind(self, cursor: Any) -> str:
        cur = self._manager.unwrap(cursor, CURSOR)
        kind = self._lib.clang_getCursorKind(cur)
        return take_string(self._lib, self._lib.clang_getCursorKindSpelling(kind))

    def get_cursor_type(self, cursor: Any) -> Optional[Handle]:
        cur = self._manager.unwrap(cursor, CURSOR)
        return self._construct(
            TYPE_DESCRIPTOR,
            lambda: (self._lib.clang_getCursorType(cur), None),
            owner=cursor.owner,
            nil_on_failure=True,
        )

    def get_cursor_children(self, cursor: Any) -> List[Handle]:
        """Direct children of *cursor*, in source order."""
        cur = self._manager.unwrap(cursor, CURSOR)
        collected: List[CXCursor] = []

        def visit(child, parent, client_data):
            # the visitor's struct lives on the native stack; keep a copy
            collected.append(CXCursor.from_buffer_copy(child))
            return CHILD_VISIT_CONTINUE

        visitor = CURSOR_VISITOR(visit)
        self._lib.clang_visitChildren(cur, visitor, None)

        children: List[Handle] = []
        for raw in collected:
            child = self._construct(
                NODE, lambda raw=raw: (raw, None), owner=cursor.owner, nil_on_failure=True,
            )
            if child is not None:
                children.append(child)
        return children

    # ── Type ─────────────────────────────────────────────────────────────────

    def get_type_spelling(self, type_handle: Any) -> str:
        ty = self._manager.unwrap(type_handle, TYPE)
        return take_string(self._lib, self._lib.clang_getTypeSpelling(ty))

    # ── Module ───────────────────────────────────────────────────────────────

    def stats(self) -> LifecycleStats:
        return self._manager.stats()

    def namespace(self) -> SimpleNamespace:
        """The host-visible table: camelCase name → bound operation."""
        return SimpleNamespace(**{
            host_name: getattr(self, attr) for host_name, attr in HOST_FUNCTIONS
        })


def open_module(
    library_path: Optional[str] = None,
    settings: Optional[Settings] = None,
    lib: Any = None,
) -> SimpleNamespace:
    """
    Load libclang and return the host namespace table.

    Raises
    ------
    NativeLoadError
        If libclang cannot be located or loaded; the module is unusable.
    """
    settings = settings if settings is not None else default_settings
    if lib is None:
        if library_path:
            lib = load_library(library_path)
        else:
            lib = get_library(settings.LIBCLANG_PATH)
    return ClangBinding(lib, settings).namespace()
