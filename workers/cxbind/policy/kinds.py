"""
Kind policy — per-kind construction checks and destructors.

The policy encapsulates everything that differs between resource kinds so
the lifecycle manager contains no per-kind opinions:

  - how the native constructor signals failure (null pointer, error code,
    null-cursor sentinel, invalid type kind);
  - which native symbol releases the resource, if any;
  - which kind owns it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Tuple

from cxbind.core.native import TYPE_KIND_INVALID
from cxbind.core.tags import CURSOR, INDEX, TU, TYPE, Tag
from cxbind.errors import ConstructionFailure


class CXErrorCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    CRASHED = 2
    INVALID_ARGUMENTS = 3
    AST_READ_ERROR = 4


# (reason, code, detail), or None when construction succeeded
Failure = Optional[Tuple[ConstructionFailure, Optional[int], str]]


@dataclass(frozen=True)
class KindSpec:
    """How one resource kind is constructed, validated and released."""

    tag: Tag
    check: Callable[[Any, Any, Optional[int]], Failure]
    destructor: Optional[str] = None     # native symbol, None if not disposable
    owner: Optional[Tag] = None

    @property
    def disposable(self) -> bool:
        return self.destructor is not None


# ── Failure checks ───────────────────────────────────────────────────────────

def _check_pointer(lib, payload, status: Optional[int]) -> Failure:
    if not payload:
        return ConstructionFailure.NULL_HANDLE, None, ""
    return None


def _check_error_code(lib, payload, status: Optional[int]) -> Failure:
    if status is not None and status != CXErrorCode.SUCCESS:
        try:
            detail = CXErrorCode(status).name
        except ValueError:
            detail = "UNKNOWN"
        return ConstructionFailure.ERROR_CODE, status, detail
    if not payload:
        return ConstructionFailure.NULL_HANDLE, None, ""
    return None


def _check_cursor(lib, payload, status: Optional[int]) -> Failure:
    if lib.clang_Cursor_isNull(payload):
        return ConstructionFailure.NULL_CURSOR, None, ""
    return None


def _check_type(lib, payload, status: Optional[int]) -> Failure:
    if payload.kind == TYPE_KIND_INVALID:
        return ConstructionFailure.INVALID_TYPE, None, ""
    return None


# ── Specs ────────────────────────────────────────────────────────────────────

SESSION = KindSpec(
    tag=INDEX,
    check=_check_pointer,
    destructor="clang_disposeIndex",
)

UNIT = KindSpec(
    tag=TU,
    check=_check_error_code,
    destructor="clang_disposeTranslationUnit",
    owner=INDEX,
)

NODE = KindSpec(
    tag=CURSOR,
    check=_check_cursor,
    owner=TU,
)

TYPE_DESCRIPTOR = KindSpec(
    tag=TYPE,
    check=_check_type,
    owner=TU,
)

KINDS: Tuple[KindSpec, ...] = (SESSION, UNIT, NODE, TYPE_DESCRIPTOR)
