"""
Native library access — locate libclang, load it, register prototypes.

Responsibilities:
  - Find the libclang shared library (explicit path, the ``libclang`` wheel,
    the system linker path, well-known platform locations).
  - Declare argtypes/restype for every symbol the binding calls, so ctypes
    never guesses a calling convention.
  - Define the by-value structs libclang passes around (CXString, CXCursor,
    CXType).

Failure to locate, load, or resolve a symbol is fatal: ``NativeLoadError``.

This module intentionally knows nothing about handles or lifecycles.
"""
from __future__ import annotations

import ctypes
import ctypes.util
import glob
import importlib.util
import logging
import os
import sys
import threading
from ctypes import (
    CFUNCTYPE,
    POINTER,
    Structure,
    c_char_p,
    c_int,
    c_uint,
    c_void_p,
)
from pathlib import Path
from typing import List, Optional

from cxbind.errors import NativeLoadError

logger = logging.getLogger(__name__)


# ── By-value structs ─────────────────────────────────────────────────────────

class CXString(Structure):
    _fields_ = [("data", c_void_p), ("private_flags", c_uint)]


class CXCursor(Structure):
    _fields_ = [("kind", c_int), ("xdata", c_int), ("data", c_void_p * 3)]


class CXType(Structure):
    _fields_ = [("kind", c_int), ("data", c_void_p * 2)]


# CXCursorVisitor: (cursor, parent, client_data) -> CXChildVisitResult
CURSOR_VISITOR = CFUNCTYPE(c_int, CXCursor, CXCursor, c_void_p)

CHILD_VISIT_CONTINUE = 1

TYPE_KIND_INVALID = 0
TU_OPTIONS_NONE = 0


# ── Prototype table ──────────────────────────────────────────────────────────

# (symbol, argtypes, restype)
PROTOTYPES = [
    ("clang_createIndex", [c_int, c_int], c_void_p),
    ("clang_disposeIndex", [c_void_p], None),
    ("clang_parseTranslationUnit2",
     [c_void_p, c_char_p, POINTER(c_char_p), c_int, c_void_p, c_uint, c_uint,
      POINTER(c_void_p)],
     c_int),
    ("clang_disposeTranslationUnit", [c_void_p], None),
    ("clang_getTranslationUnitCursor", [c_void_p], CXCursor),
    ("clang_getTranslationUnitSpelling", [c_void_p], CXString),
    ("clang_getNumDiagnostics", [c_void_p], c_uint),
    ("clang_getDiagnostic", [c_void_p, c_uint], c_void_p),
    ("clang_formatDiagnostic", [c_void_p, c_uint], CXString),
    ("clang_defaultDiagnosticDisplayOptions", [], c_uint),
    ("clang_disposeDiagnostic", [c_void_p], None),
    ("clang_Cursor_isNull", [CXCursor], c_int),
    ("clang_getCursorSpelling", [CXCursor], CXString),
    ("clang_getCursorKind", [CXCursor], c_int),
    ("clang_getCursorKindSpelling", [c_int], CXString),
    ("clang_getCursorType", [CXCursor], CXType),
    ("clang_visitChildren", [CXCursor, CURSOR_VISITOR, c_void_p], c_uint),
    ("clang_getTypeSpelling", [CXType], CXString),
    ("clang_getCString", [CXString], c_char_p),
    ("clang_disposeString", [CXString], None),
]


# ── Library location ─────────────────────────────────────────────────────────

_LIBRARY_NAMES = {
    "darwin": "libclang.dylib",
    "win32": "libclang.dll",
}


def _library_file_name() -> str:
    return _LIBRARY_NAMES.get(sys.platform, "libclang.so")


def _wheel_library_path() -> Optional[str]:
    """Path of the libclang bundled with the ``libclang`` wheel, if installed."""
    spec = importlib.util.find_spec("clang")
    if spec is None or not spec.submodule_search_locations:
        return None
    for location in spec.submodule_search_locations:
        candidate = Path(location) / "native" / _library_file_name()
        if candidate.is_file():
            return str(candidate)
    return None


def _platform_search_paths() -> List[str]:
    """Well-known install locations, most preferred first."""
    paths: List[str] = []

    if sys.platform == "darwin":
        paths.append("/opt/homebrew/opt/llvm/lib/libclang.dylib")
        paths.extend(sorted(glob.glob("/opt/homebrew/Cellar/llvm/*/lib/libclang.dylib"), reverse=True))
        paths.append("/usr/local/opt/llvm/lib/libclang.dylib")
        paths.append("/Library/Developer/CommandLineTools/usr/lib/libclang.dylib")
    elif sys.platform == "win32":
        paths.append(r"C:\Program Files\LLVM\bin\libclang.dll")
        paths.append(r"C:\Program Files (x86)\LLVM\bin\libclang.dll")
    else:
        paths.extend(sorted(glob.glob("/usr/lib/llvm-*/lib/libclang.so*"), reverse=True))
        paths.extend(sorted(glob.glob("/usr/lib/x86_64-linux-gnu/libclang-*.so*"), reverse=True))
        paths.append("/usr/lib64/libclang.so")
        paths.append("/usr/lib/libclang.so")
        paths.append("/usr/local/lib/libclang.so")

    return paths


def candidate_paths(explicit: Optional[str] = None) -> List[str]:
    """Ordered list of libclang candidates to try."""
    candidates: List[str] = []
    if explicit:
        candidates.append(explicit)

    wheel = _wheel_library_path()
    if wheel:
        candidates.append(wheel)

    found = ctypes.util.find_library("clang")
    if found:
        candidates.append(found)

    candidates.extend(p for p in _platform_search_paths() if os.path.isfile(p))

    unique: List[str] = []
    for c in candidates:
        if c not in unique:
            unique.append(c)
    return unique


# ── Loading ──────────────────────────────────────────────────────────────────

def register_prototypes(lib: ctypes.CDLL) -> ctypes.CDLL:
    """Declare every symbol's signature on *lib*; fail on a missing symbol."""
    for name, argtypes, restype in PROTOTYPES:
        try:
            func = getattr(lib, name)
        except AttributeError as e:
            raise NativeLoadError(
                f"libclang at {getattr(lib, '_name', '?')} lacks symbol {name}"
            ) from e
        func.argtypes = argtypes
        func.restype = restype
    return lib


def load_library(path: Optional[str] = None) -> ctypes.CDLL:
    """
    Load libclang and register its prototypes.

    Parameters
    ----------
    path : str, optional
        Explicit shared-library path.  When given, it is the only candidate
        tried; a failure to load it is not papered over by searching.

    Raises
    ------
    NativeLoadError
        If no candidate loads, or the loaded library lacks a symbol.
    """
    if path:
        candidates = [path]
    else:
        candidates = candidate_paths()

    if not candidates:
        raise NativeLoadError("libclang not found", searched=_platform_search_paths())

    errors: List[str] = []
    for candidate in candidates:
        try:
            lib = ctypes.CDLL(candidate)
        except OSError as e:
            logger.debug("Could not load %s: %s", candidate, e)
            errors.append(f"{candidate}: {e}")
            continue
        logger.info("Loaded libclang from %s", candidate)
        return register_prototypes(lib)

    raise NativeLoadError("libclang could not be loaded", searched=errors)


_LIBRARY: ctypes.CDLL | None = None
_LIBRARY_LOCK = threading.Lock()


def get_library(path: Optional[str] = None) -> ctypes.CDLL:
    """
    Return the process-wide libclang, loading it on first use.

    Raises
    ------
    NativeLoadError
        If loading fails, or if *path* names a different library than the
        one already loaded.
    """
    global _LIBRARY
    with _LIBRARY_LOCK:
        if _LIBRARY is None:
            _LIBRARY = load_library(path)
        elif path and path != _LIBRARY._name:
            raise NativeLoadError(
                f"libclang is already loaded from {_LIBRARY._name}; cannot switch to {path}"
            )
        return _LIBRARY
