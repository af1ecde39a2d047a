"""
Handle wrappers — kind-tagged boxes around raw native values.

A Handle carries exactly one native payload (a pointer integer for
Index/TU, a CXCursor / CXType struct for Cursor/Type) plus the Tag of its
kind and its disposal state.  ``unwrap`` is the single choke point every
native call goes through before a payload is dereferenced.
"""
from __future__ import annotations

import threading
import weakref
from enum import Enum
from typing import Any, List, Optional

from cxbind.core.tags import Tag
from cxbind.errors import TypeMismatch, UseAfterDisposeError


class HandleState(str, Enum):
    LIVE = "LIVE"
    DISPOSED = "DISPOSED"


class Handle:
    """
    Opaque box for one native resource.

    ``owner`` is the handle whose disposal invalidates this one (the Index
    for a TU, the TU for a Cursor or Type).  A handle keeps its owner alive;
    the owner only holds weak references back.
    """

    __slots__ = (
        "tag",
        "owner",
        "_payload",
        "_state",
        "_lock",
        "_dependents",
        "_finalizer",
        "_child_finalizers",
        "__weakref__",
    )

    def __init__(self, tag: Tag, payload: Any, owner: Optional[Handle] = None):
        self.tag = tag
        self.owner = owner
        self._payload = payload
        self._state = HandleState.LIVE
        self._lock = threading.Lock()
        self._dependents: weakref.WeakSet = weakref.WeakSet()
        self._finalizer: Optional[weakref.finalize] = None
        # backstops of disposable dependents; run before this handle's own
        self._child_finalizers: List[weakref.finalize] = []

    @property
    def kind(self) -> str:
        return self.tag.name

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state is HandleState.LIVE

    def dependents(self) -> List[Handle]:
        """Snapshot of handles owned by this one."""
        return list(self._dependents)

    def retire(self) -> bool:
        """
        Atomically move LIVE → DISPOSED.

        Returns True for the single caller that performed the transition,
        False for every later caller.
        """
        with self._lock:
            if self._state is HandleState.DISPOSED:
                return False
            self._state = HandleState.DISPOSED
            return True

    def __repr__(self) -> str:
        return f"<Handle {self.tag.name} {self._state.value} at 0x{id(self):x}>"


def _describe(value: Any) -> str:
    if isinstance(value, Handle):
        return value.tag.name
    return type(value).__name__


def wrap(tag: Tag, native_value: Any, owner: Optional[Handle] = None) -> Handle:
    """Box *native_value* verbatim under *tag*.  Never validates the value."""
    handle = Handle(tag, native_value, owner)
    if owner is not None:
        owner._dependents.add(handle)
    return handle


def check_kind(handle: Any, expected: Tag) -> Handle:
    """Return *handle* if it is a Handle tagged *expected*; else TypeMismatch."""
    if not isinstance(handle, Handle) or handle.tag is not expected:
        raise TypeMismatch(expected.name, _describe(handle))
    return handle


def unwrap(handle: Any, expected: Tag) -> Any:
    """
    Return the payload of *handle* if it is a LIVE handle of kind *expected*.

    Raises
    ------
    TypeMismatch
        If *handle* is not a Handle, or carries a different tag.
    UseAfterDisposeError
        If *handle* has been disposed (directly or through its owner).
    """
    check_kind(handle, expected)
    if handle._state is HandleState.DISPOSED:
        raise UseAfterDisposeError(handle.tag.name)
    return handle._payload
