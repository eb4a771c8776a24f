"""Shared object store protocol and factory helpers."""

from __future__ import annotations

import importlib
from typing import Callable, Protocol, runtime_checkable


class ObjectNotFound(LookupError):
    """Raised when a bucket/key pair holds no object."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"{bucket}/{key}")
        self.bucket = bucket
        self.key = key


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol describing the minimal contract for object store adapters."""

    def put_object(self, bucket: str, key: str, data: bytes) -> None:
        """Persist raw bytes under ``bucket``/``key``."""

    def get_object(self, bucket: str, key: str) -> bytes:
        """Load raw bytes, raising :class:`ObjectNotFound` when missing."""

    def delete_object(self, bucket: str, key: str) -> None:
        """Remove an object; deleting a missing object is a no-op."""


_ObjectStoreFactory: Callable[[], ObjectStore] | None = None
_BOOTSTRAP_MODULES: tuple[str, ...] = ("common.object_store_defaults",)


def set_default_object_store_factory(factory: Callable[[], ObjectStore]) -> None:
    """Register the callable producing the default :class:`ObjectStore`."""

    global _ObjectStoreFactory
    _ObjectStoreFactory = factory


def _bootstrap_default_factory() -> None:
    if _ObjectStoreFactory is not None:
        return

    for module_name in _BOOTSTRAP_MODULES:
        importlib.import_module(module_name)
        if _ObjectStoreFactory is not None:
            break


def get_default_object_store() -> ObjectStore:
    """Return the configured default :class:`ObjectStore`."""

    if _ObjectStoreFactory is None:
        _bootstrap_default_factory()

    if _ObjectStoreFactory is None:
        raise RuntimeError("object_store_factory_not_configured")

    store = _ObjectStoreFactory()
    if not isinstance(store, ObjectStore):  # pragma: no cover - defensive
        raise TypeError("invalid_object_store_factory")
    return store


__all__ = [
    "ObjectNotFound",
    "ObjectStore",
    "get_default_object_store",
    "set_default_object_store_factory",
]
