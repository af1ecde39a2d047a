"""
Error taxonomy for the binding layer.

Every failure surfaces synchronously to the immediate caller.  Nothing here
is retried: libclang is deterministic for identical inputs.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence


class ConstructionFailure(str, Enum):
    """How a native constructor signalled failure."""
    NULL_HANDLE = "NULL_HANDLE"
    ERROR_CODE = "ERROR_CODE"
    NULL_CURSOR = "NULL_CURSOR"
    INVALID_TYPE = "INVALID_TYPE"


class BindingError(Exception):
    """Base class for all cxbind errors."""


class TypeMismatch(BindingError, TypeError):
    """A value of the wrong handle kind was passed to an operation."""

    def __init__(self, expected: str, actual: str, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"expected {expected} handle, got {actual}")


class ArgumentError(BindingError, TypeError):
    """A scalar argument could not be coerced for the native call."""


class LifecycleError(BindingError):
    """A handle was used outside its LIVE state."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(message)


class DoubleDisposeError(LifecycleError):
    def __init__(self, kind: str):
        super().__init__(kind, f"{kind} handle is already disposed")


class UseAfterDisposeError(LifecycleError):
    def __init__(self, kind: str):
        super().__init__(kind, f"{kind} handle used after dispose")


class NativeConstructionError(BindingError):
    """The native constructor for *kind* returned its failure signal."""

    def __init__(
        self,
        kind: str,
        reason: ConstructionFailure,
        code: Optional[int] = None,
        detail: str = "",
    ):
        self.kind = kind
        self.reason = reason
        self.code = code
        msg = f"{kind} construction failed: {reason.value}"
        if code is not None:
            msg += f" (code={code})"
        if detail:
            msg += f" [{detail}]"
        super().__init__(msg)


class NativeLoadError(BindingError, OSError):
    """libclang could not be located, loaded, or is missing a symbol."""

    def __init__(self, message: str, searched: Sequence[str] = ()):
        self.searched: List[str] = list(searched)
        if self.searched:
            message += " (searched: " + ", ".join(self.searched) + ")"
        super().__init__(message)
