"""
Shared pytest fixtures for cxbind tests.

Provides ``FakeClang``, an in-process stand-in for the libclang symbols the
binding calls.  It speaks the same ctypes structs (CXCursor, CXType,
CXString) and understands a tiny C subset (top-level variable and function
declarations, ``#error`` lines).  It keeps count of every native allocation
and raises AssertionError on any native double free or use of a released
resource, so a test passes only if the binding never lets one through.

Tests that need the real libclang use the ``real_libclang`` fixture and are
skipped when it cannot be loaded.
"""
from __future__ import annotations

import os
import re
import textwrap
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from cxbind.bindings import ClangBinding, open_module
from cxbind.config import Settings
from cxbind.core.native import CXCursor, CXString, CXType, load_library
from cxbind.errors import NativeLoadError


# ── Sample sources ───────────────────────────────────────────────────────────

ONE_DECL_C = textwrap.dedent("""\
    int answer;
""")

MULTI_DECL_C = textwrap.dedent("""\
    int counter = 0;
    double ratio;

    int add(int a, int b) {
        int result = a + b;
        return result;
    }

    void reset(void) {
        counter = 0;
    }
""")

ERROR_DIRECTIVE_C = textwrap.dedent("""\
    int before;
    #error unsupported platform
    int after;
""")


# ── Fake libclang ────────────────────────────────────────────────────────────

CURSOR_TRANSLATION_UNIT = 300
CURSOR_VAR_DECL = 9
CURSOR_FUNCTION_DECL = 8
CURSOR_PARM_DECL = 10
CURSOR_INVALID_FILE = 70

KIND_SPELLINGS = {
    CURSOR_TRANSLATION_UNIT: "TranslationUnit",
    CURSOR_VAR_DECL: "VarDecl",
    CURSOR_FUNCTION_DECL: "FunctionDecl",
    CURSOR_PARM_DECL: "ParmDecl",
    CURSOR_INVALID_FILE: "InvalidFile",
}

TYPE_INVALID = 0
TYPE_INT = 17
TYPE_FUNCTION_PROTO = 111

_DECL_RE = re.compile(
    r"^\s*(?P<type>(?:const\s+|unsigned\s+)*(?:int|char|float|double|void|long|short)\s*\**)"
    r"\s*(?P<name>[A-Za-z_]\w*)\s*(?P<rest>[;=(\[])"
)


@dataclass
class FakeNode:
    ident: int
    spelling: str
    kind: int
    type_kind: int = TYPE_INVALID
    type_spelling: str = ""
    children: List[int] = field(default_factory=list)


@dataclass
class FakeUnit:
    index: int
    path: str
    root: int
    diagnostics: List[str] = field(default_factory=list)


class FakeClang:
    """In-process libclang double with allocation accounting."""

    def __init__(self, *, null_root: bool = False, fail_index: bool = False):
        self.null_root = null_root
        self.fail_index = fail_index
        self._next = 0x1000
        self.indices: set = set()
        self.units: Dict[int, FakeUnit] = {}
        self.nodes: Dict[int, FakeNode] = {}
        self.strings: Dict[int, bytes] = {}
        self.live_diagnostics: Dict[int, str] = {}
        self.string_disposals = 0
        self.calls: Counter = Counter()
        self.index_flags: List[tuple] = []
        self.last_argv: List[bytes] = []

    # -- bookkeeping -----------------------------------------------------------

    def _alloc(self) -> int:
        self._next += 0x10
        return self._next

    def outstanding(self) -> Dict[str, int]:
        return {
            "indices": len(self.indices),
            "units": len(self.units),
            "strings": len(self.strings),
            "diagnostics": len(self.live_diagnostics),
        }

    def _string(self, text: str) -> CXString:
        key = self._alloc()
        self.strings[key] = text.encode("utf-8")
        s = CXString()
        s.data = key
        return s

    def _cursor(self, node: FakeNode, unit: int) -> CXCursor:
        c = CXCursor()
        c.kind = node.kind
        c.data[0] = node.ident
        c.data[1] = unit
        return c

    def _node(self, cursor) -> FakeNode:
        unit = cursor.data[1]
        assert unit in self.units, "cursor used after its translation unit was disposed"
        return self.nodes[cursor.data[0]]

    def _new_node(self, **kwargs) -> FakeNode:
        node = FakeNode(ident=self._alloc(), **kwargs)
        self.nodes[node.ident] = node
        return node

    def _parse(self, path: str) -> FakeUnit:
        root = self._new_node(spelling=path, kind=CURSOR_TRANSLATION_UNIT)
        unit = FakeUnit(index=0, path=path, root=root.ident)
        depth = 0
        for lineno, line in enumerate(Path(path).read_text().splitlines(), start=1):
            if line.startswith("#error"):
                msg = line[len("#error"):].strip()
                unit.diagnostics.append(f"{path}:{lineno}:2: error: {msg}")
                continue
            m = _DECL_RE.match(line) if depth == 0 else None
            if m:
                type_text = " ".join(m.group("type").split())
                if m.group("rest") == "(":
                    params = line[m.end():line.index(")")]
                    param_nodes = []
                    for p in params.split(","):
                        p = p.strip()
                        if not p or p == "void":
                            continue
                        ptype, pname = p.rsplit(" ", 1)
                        param_nodes.append(self._new_node(
                            spelling=pname, kind=CURSOR_PARM_DECL,
                            type_kind=TYPE_INT, type_spelling=ptype,
                        ))
                    proto = ", ".join(n.type_spelling for n in param_nodes) or "void"
                    decl = self._new_node(
                        spelling=m.group("name"), kind=CURSOR_FUNCTION_DECL,
                        type_kind=TYPE_FUNCTION_PROTO,
                        type_spelling=f"{type_text} ({proto})",
                        children=[n.ident for n in param_nodes],
                    )
                else:
                    decl = self._new_node(
                        spelling=m.group("name"), kind=CURSOR_VAR_DECL,
                        type_kind=TYPE_INT, type_spelling=type_text,
                    )
                root.children.append(decl.ident)
            depth += line.count("{") - line.count("}")
        return unit

    # -- index -----------------------------------------------------------------

    def clang_createIndex(self, exclude_pch, display_diagnostics):
        self.calls["clang_createIndex"] += 1
        self.index_flags.append((exclude_pch, display_diagnostics))
        if self.fail_index:
            return None
        ptr = self._alloc()
        self.indices.add(ptr)
        return ptr

    def clang_disposeIndex(self, index):
        self.calls["clang_disposeIndex"] += 1
        assert index in self.indices, "double free of index"
        assert not any(u.index == index for u in self.units.values()), \
            "index disposed before its translation units"
        self.indices.discard(index)

    # -- translation unit ------------------------------------------------------

    def clang_parseTranslationUnit2(self, index, source, argv, argc,
                                    unsaved, num_unsaved, options, out_tu):
        self.calls["clang_parseTranslationUnit2"] += 1
        assert index in self.indices, "parse on a released index"
        self.last_argv = [argv[i] for i in range(argc)]
        path = self.last_argv[0].decode("utf-8")
        if not os.path.exists(path):
            return 1  # CXError_Failure
        unit = self._parse(path)
        unit.index = index
        ptr = self._alloc()
        self.units[ptr] = unit
        out_tu.contents.value = ptr
        return 0

    def clang_disposeTranslationUnit(self, tu):
        self.calls["clang_disposeTranslationUnit"] += 1
        assert tu in self.units, "double free of translation unit"
        del self.units[tu]

    def clang_getTranslationUnitCursor(self, tu):
        unit = self.units[tu]
        if self.null_root:
            c = CXCursor()
            c.kind = CURSOR_INVALID_FILE
            return c
        return self._cursor(self.nodes[unit.root], tu)

    def clang_getTranslationUnitSpelling(self, tu):
        return self._string(self.units[tu].path)

    def clang_getNumDiagnostics(self, tu):
        return len(self.units[tu].diagnostics)

    def clang_getDiagnostic(self, tu, i):
        ptr = self._alloc()
        self.live_diagnostics[ptr] = self.units[tu].diagnostics[i]
        return ptr

    def clang_defaultDiagnosticDisplayOptions(self):
        return 1

    def clang_formatDiagnostic(self, diag, options):
        return self._string(self.live_diagnostics[diag])

    def clang_disposeDiagnostic(self, diag):
        assert diag in self.live_diagnostics, "double free of diagnostic"
        del self.live_diagnostics[diag]

    # -- cursor ----------------------------------------------------------------

    def clang_Cursor_isNull(self, cursor):
        return 1 if not cursor.data[0] else 0

    def clang_getCursorSpelling(self, cursor):
        self.calls["clang_getCursorSpelling"] += 1
        return self._string(self._node(cursor).spelling)

    def clang_getCursorKind(self, cursor):
        if not cursor.data[0]:
            return cursor.kind
        return self._node(cursor).kind

    def clang_getCursorKindSpelling(self, kind):
        return self._string(KIND_SPELLINGS.get(kind, "UnexposedDecl"))

    def clang_getCursorType(self, cursor):
        node = self._node(cursor)
        t = CXType()
        t.kind = node.type_kind
        t.data[0] = node.ident
        t.data[1] = cursor.data[1]
        return t

    def clang_visitChildren(self, cursor, visitor, client_data):
        node = self._node(cursor)
        for child_id in node.children:
            child = self._cursor(self.nodes[child_id], cursor.data[1])
            if visitor(child, cursor, client_data) == 0:
                return 1
        return 0

    # -- type ------------------------------------------------------------------

    def clang_getTypeSpelling(self, ty):
        assert ty.data[1] in self.units, "type used after its translation unit was disposed"
        return self._string(self.nodes[ty.data[0]].type_spelling)

    # -- strings ---------------------------------------------------------------

    def clang_getCString(self, s):
        assert s.data in self.strings, "string read after release"
        return self.strings[s.data]

    def clang_disposeString(self, s):
        assert s.data in self.strings, "string released twice"
        del self.strings[s.data]
        self.string_disposals += 1


# ── Fixtures ────────────────────────────────────────────────────────────────

def make_settings(**overrides) -> Settings:
    """Settings isolated from the caller's environment and .env file."""
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def fake_clang() -> FakeClang:
    return FakeClang()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def binding(fake_clang: FakeClang, settings: Settings) -> ClangBinding:
    return ClangBinding(fake_clang, settings)


@pytest.fixture
def clang(fake_clang: FakeClang, settings: Settings):
    """The host namespace table over the fake library."""
    return open_module(settings=settings, lib=fake_clang)


@pytest.fixture
def one_decl_file(tmp_path: Path) -> Path:
    p = tmp_path / "one.c"
    p.write_text(ONE_DECL_C)
    return p


@pytest.fixture
def multi_decl_file(tmp_path: Path) -> Path:
    p = tmp_path / "multi.c"
    p.write_text(MULTI_DECL_C)
    return p


@pytest.fixture
def error_directive_file(tmp_path: Path) -> Path:
    p = tmp_path / "broken.c"
    p.write_text(ERROR_DIRECTIVE_C)
    return p


@pytest.fixture
def missing_file(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent.c"


@pytest.fixture(scope="session")
def real_libclang():
    """The system libclang; skips the test when none can be loaded."""
    try:
        return load_library()
    except NativeLoadError as e:
        pytest.skip(f"libclang not available: {e}")
