"""
Lifecycle manager — create/dispose pairing for every resource kind.

Handles are only ever created here, after the native constructor succeeded,
and only ever released here.  Disposal is explicit; a ``weakref.finalize``
backstop releases LIVE native resources whose handle became unreachable,
and is detached on explicit disposal.  An owner's backstop first runs the
backstops of its still-LIVE dependents, so an Index is never released ahead
of its TUs even when both become garbage together in a reference cycle.

Only handles this manager created are accepted back; anything else is a
``TypeMismatch`` and never reaches a native call.

Ownership cascades: disposing an Index first disposes its LIVE TUs (libclang
requires TUs to be released before their index), and disposing a TU
invalidates its Cursor and Type handles.
"""
from __future__ import annotations

import logging
import threading
import weakref
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from cxbind.core.handle import Handle, check_kind, unwrap, wrap
from cxbind.core.tags import Tag
from cxbind.errors import DoubleDisposeError, NativeConstructionError, TypeMismatch
from cxbind.io.schema import KindStats, LifecycleStats
from cxbind.policy.kinds import KINDS, KindSpec

logger = logging.getLogger(__name__)

# construct() -> (payload, status); status is None for kinds without one
Constructor = Callable[[], Tuple[Any, Optional[int]]]


class LifecycleManager:
    """
    Owns the LIVE → DISPOSED state machine for one native library.

    Usage::

        mgr = LifecycleManager(lib)
        idx = mgr.create(SESSION, lambda: (lib.clang_createIndex(0, 0), None))
        ...
        mgr.dispose(idx, INDEX)
    """

    def __init__(
        self,
        lib: Any,
        kinds: Sequence[KindSpec] = KINDS,
        *,
        finalizer_backstop: bool = True,
    ):
        self._lib = lib
        self._kinds: Dict[Tag, KindSpec] = {spec.tag: spec for spec in kinds}
        self._finalizer_backstop = finalizer_backstop
        # reentrant: a finalizer may fire while this thread holds the lock
        self._lock = threading.RLock()
        self._created: Counter = Counter()
        self._disposed: Counter = Counter()
        self._finalized: Counter = Counter()
        self._handles: Dict[Tag, weakref.WeakSet] = {
            tag: weakref.WeakSet() for tag in self._kinds
        }

    # -- creation --------------------------------------------------------------

    def create(
        self,
        spec: KindSpec,
        construct: Constructor,
        owner: Optional[Handle] = None,
    ) -> Handle:
        """
        Run the native constructor for *spec* and wrap its result.

        Raises
        ------
        NativeConstructionError
            If the kind's policy recognises the result as a failure signal.
            The sentinel is never wrapped.
        """
        if spec.tag not in self._kinds:
            raise KeyError(f"kind {spec.tag.name} is not managed here")
        if spec.owner is not None:
            self._check_owned(owner, spec.owner)

        payload, status = construct()

        failure = spec.check(self._lib, payload, status)
        if failure is not None:
            reason, code, detail = failure
            logger.debug("%s construction failed: %s %s", spec.tag.name, reason.value, detail)
            raise NativeConstructionError(spec.tag.name, reason, code, detail)

        handle = wrap(spec.tag, payload, owner)
        if spec.disposable and self._finalizer_backstop:
            handle._finalizer = weakref.finalize(
                handle, self._release_unreachable, spec, payload, handle._child_finalizers,
            )

        with self._lock:
            self._created[spec.tag] += 1
            self._handles[spec.tag].add(handle)
            if owner is not None and handle._finalizer is not None:
                pending = [f for f in owner._child_finalizers if f.alive]
                pending.append(handle._finalizer)
                owner._child_finalizers[:] = pending

        return handle

    # -- provenance ------------------------------------------------------------

    def _check_owned(self, handle: Any, expected: Tag) -> Handle:
        """*handle* must be a *expected*-tagged handle created by this manager."""
        check_kind(handle, expected)
        with self._lock:
            owned = handle in self._handles.get(expected, ())
        if not owned:
            raise TypeMismatch(
                expected.name, handle.kind,
                f"{expected.name} handle was not created by this binding",
            )
        return handle

    def unwrap(self, handle: Any, expected: Tag) -> Any:
        """
        Payload of a LIVE *expected* handle created by this manager.

        Raises
        ------
        TypeMismatch
            Wrong kind, not a Handle, or a handle from elsewhere.
        UseAfterDisposeError
            The handle was disposed (directly or by cascade).
        """
        self._check_owned(handle, expected)
        return unwrap(handle, expected)

    # -- disposal --------------------------------------------------------------

    def dispose(self, handle: Any, expected: Tag) -> None:
        """
        Move *handle* from LIVE to DISPOSED and release its native resource.

        Raises
        ------
        TypeMismatch
            Wrong kind, a handle this manager did not create, or a kind
            without a native destructor.
        DoubleDisposeError
            The handle was already disposed (directly or by cascade).  The
            native destructor is not called again.
        """
        check_kind(handle, expected)
        spec = self._kinds[expected]
        if not spec.disposable:
            raise TypeMismatch(
                expected.name, handle.kind,
                f"{expected.name} handles are released with their owner, not disposed",
            )
        self._check_owned(handle, expected)
        if not handle.retire():
            raise DoubleDisposeError(handle.kind)
        self._release(handle, spec)

    def _release(self, handle: Handle, spec: KindSpec) -> None:
        """Release an already-retired handle, dependents first."""
        for dep in handle.dependents():
            if dep.retire():
                self._release(dep, self._kinds[dep.tag])

        if handle._finalizer is not None:
            handle._finalizer.detach()
            handle._finalizer = None

        try:
            if spec.disposable:
                getattr(self._lib, spec.destructor)(handle._payload)
                logger.debug("Disposed %s", handle.tag.name)
        except Exception:
            logger.error("%s failed for %s; native resource may leak", spec.destructor, handle.tag.name)
            raise
        finally:
            with self._lock:
                self._disposed[spec.tag] += 1

    def _release_unreachable(
        self,
        spec: KindSpec,
        payload: Any,
        child_finalizers: List[weakref.finalize],
    ) -> None:
        # finalize objects run at most once; dead ones are no-ops
        for child in list(child_finalizers):
            child()
        logger.warning(
            "Releasing unreachable LIVE %s handle via finalizer; dispose it explicitly",
            spec.tag.name,
        )
        getattr(self._lib, spec.destructor)(payload)
        with self._lock:
            self._finalized[spec.tag] += 1

    # -- accounting ------------------------------------------------------------

    def stats(self) -> LifecycleStats:
        """Per-kind counters; ``outstanding == 0`` everywhere means no leak."""
        kinds = []
        with self._lock:
            for tag, spec in self._kinds.items():
                live = sum(1 for h in self._handles[tag] if h.is_live)
                if spec.disposable:
                    outstanding = self._created[tag] - self._disposed[tag] - self._finalized[tag]
                else:
                    outstanding = live
                kinds.append(KindStats(
                    kind=tag.name,
                    created=self._created[tag],
                    disposed=self._disposed[tag],
                    finalized=self._finalized[tag],
                    live=live,
                    outstanding=outstanding,
                ))
        return LifecycleStats(kinds=kinds)
