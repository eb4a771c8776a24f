"""Extraction and injection of binary leaves inside JSON-shaped payloads.

The codec walks a value tree and classifies every node exactly once as one of
:class:`NodeKind`. Binary leaves are pulled out in traversal order and
replaced by :class:`Extracted` placeholders; a later :func:`inject` pass swaps
each placeholder for whatever the caller resolved it to (usually a
server-issued asset id).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Union

__all__ = [
    "Blob",
    "Extracted",
    "Literal",
    "NodeKind",
    "classify",
    "extract",
    "inject",
    "is_blob",
]


@dataclass(eq=False)
class Blob:
    """In-memory binary attachment.

    Instances compare and hash by identity, so two blobs holding the same
    bytes are still two distinct attachments.
    """

    data: bytes
    mime: str = "application/octet-stream"
    filename: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.data)


def is_blob(value: object) -> bool:
    """Default binary-leaf predicate."""

    return isinstance(value, Blob)


class NodeKind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    RECORD = "record"
    BINARY_LEAF = "binary_leaf"


@dataclass(frozen=True)
class Extracted:
    """Placeholder standing where the ``token``-th binary leaf used to be."""

    token: int


@dataclass(frozen=True)
class Literal:
    """Non-binary leaf carried through the walk unchanged."""

    value: Any


Slot = Union[Extracted, Literal]
BinaryPredicate = Callable[[object], bool]
Resolver = Callable[[Extracted], Any]


def classify(value: object, is_binary_leaf: BinaryPredicate) -> NodeKind:
    """Return the node kind of ``value``.

    The binary predicate wins over the structural checks so that a caller may
    treat e.g. ``bytes`` or a mapping-like file object as a leaf.
    """

    if is_binary_leaf(value):
        return NodeKind.BINARY_LEAF
    if isinstance(value, (list, tuple)):
        return NodeKind.LIST
    if isinstance(value, Mapping):
        return NodeKind.RECORD
    return NodeKind.SCALAR


def _extract_node(
    value: Any, is_binary_leaf: BinaryPredicate, leaves: list[Any]
) -> Slot | list | tuple | dict:
    kind = classify(value, is_binary_leaf)
    if kind is NodeKind.BINARY_LEAF:
        leaves.append(value)
        return Extracted(len(leaves) - 1)
    if kind is NodeKind.LIST:
        items = [_extract_node(item, is_binary_leaf, leaves) for item in value]
        return tuple(items) if isinstance(value, tuple) else items
    if kind is NodeKind.RECORD:
        return {
            key: _extract_node(item, is_binary_leaf, leaves)
            for key, item in value.items()
        }
    return Literal(value)


def extract(
    value: Any, is_binary_leaf: BinaryPredicate = is_blob
) -> tuple[Any, list[Any]]:
    """Split ``value`` into a sanitized tree and its ordered binary leaves.

    Every leaf position of the sanitized tree holds a slot: ``Extracted`` where
    a binary leaf was, ``Literal`` around any other value, so payload content
    can never be mistaken for a placeholder. Returns ``(value, [])`` with the
    input itself when no leaf is found.
    """

    leaves: list[Any] = []
    sanitized = _extract_node(value, is_binary_leaf, leaves)
    if not leaves:
        return value, leaves
    return sanitized, leaves


def inject(value: Any, resolve: Resolver) -> Any:
    """Resolve every :class:`Extracted` slot and unwrap every :class:`Literal`."""

    if isinstance(value, Extracted):
        return resolve(value)
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, list):
        return [inject(item, resolve) for item in value]
    if isinstance(value, tuple):
        return tuple(inject(item, resolve) for item in value)
    if isinstance(value, dict):
        return {key: inject(item, resolve) for key, item in value.items()}
    return value
