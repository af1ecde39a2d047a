"""
Marshaling helpers — host scalars in, native strings out.

Coercion rules are explicit so that the same host value produces the same
native argument regardless of caller:

  flags   : FlagCoercion.PYTHON → bool(value)
            FlagCoercion.LUA    → false only for None / False
  strings : str → UTF-8, bytes as-is, os.PathLike → os.fsencode,
            int / float → str(value); anything else is an ArgumentError.
"""
from __future__ import annotations

import os
from ctypes import c_char_p
from typing import Any, Iterable, List, Optional

from cxbind.config import FlagCoercion
from cxbind.errors import ArgumentError


def to_flag(value: Any, mode: FlagCoercion = FlagCoercion.PYTHON) -> int:
    """Coerce a host value into a C int flag (0 or 1)."""
    if mode is FlagCoercion.LUA:
        return 0 if value is None or value is False else 1
    return 1 if value else 0


def to_cstring(value: Any, what: str = "argument") -> bytes:
    """Coerce a host value into NUL-free bytes for a ``const char *``."""
    if isinstance(value, bool) or value is None:
        raise ArgumentError(f"{what} must be a string, got {type(value).__name__}")
    if isinstance(value, bytes):
        raw = value
    elif isinstance(value, str):
        raw = value.encode("utf-8")
    elif isinstance(value, os.PathLike):
        raw = os.fsencode(value)
    elif isinstance(value, (int, float)):
        raw = str(value).encode("ascii")
    else:
        raise ArgumentError(f"{what} must be a string, got {type(value).__name__}")
    if b"\0" in raw:
        raise ArgumentError(f"{what} contains an embedded NUL byte")
    return raw


def to_argv(values: Optional[Iterable[Any]]) -> List[bytes]:
    """Coerce a sequence of command-line arguments."""
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise ArgumentError("args must be a sequence of strings, not a single string")
    return [to_cstring(v, "command-line argument") for v in values]


def argv_array(args: List[bytes]):
    """Build a ``char *[]`` for *args* (kept alive by the caller)."""
    return (c_char_p * len(args))(*args)


def take_string(lib: Any, cxstring) -> str:
    """
    Copy a CXString into a host ``str`` and release the native buffer.

    The buffer is released exactly once, even if decoding fails.
    """
    try:
        raw = lib.clang_getCString(cxstring)
        if raw is None:
            return ""
        return raw.decode("utf-8", errors="replace")
    finally:
        lib.clang_disposeString(cxstring)
