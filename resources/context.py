"""Value objects passed between the REST layer and the stores."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

from .models import AppMember

DEFAULT_MIME = "application/octet-stream"


@dataclass(frozen=True)
class AssetPayload:
    """Bytes plus the metadata an asset row is created from."""

    data: bytes
    mime: str | None = DEFAULT_MIME
    filename: str | None = None
    name: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_upload(cls, upload: Any, *, name: str | None = None) -> "AssetPayload":
        """Build a payload from a Django ``UploadedFile``."""

        return cls(
            data=upload.read(),
            mime=getattr(upload, "content_type", None) or DEFAULT_MIME,
            filename=getattr(upload, "name", None) or None,
            name=name or None,
        )


@dataclass(frozen=True)
class AssetFlags:
    clonable: bool = False
    seed: bool = False
    ephemeral: bool = False


@dataclass(frozen=True)
class PreparedAsset:
    """An asset the body processor decided to create alongside a resource."""

    id: uuid.UUID
    payload: AssetPayload


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, and the body and files that arrived with the request."""

    member: AppMember | None = None
    body: Any = None
    files: Sequence[AssetPayload] = field(default_factory=tuple)
