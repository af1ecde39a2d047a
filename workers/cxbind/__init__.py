"""
cxbind — safe opaque-handle binding over libclang.

Wraps libclang's create/use/dispose resource families (Index, TU, Cursor,
Type) in kind-tagged, lifecycle-tracked handles and exposes them through a
single host namespace table.  See ``cxbind.bindings.open_module``.
"""

__version__ = "0.1.0"
BINDING_VERSION = "v0"
PACKAGE_NAME = "cxbind"
SCHEMA_VERSION = "0.1"
