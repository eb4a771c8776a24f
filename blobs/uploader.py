"""Two-pass blob upload: extract, upload every distinct leaf, inject ids."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Literal as TypingLiteral, Optional

import httpx

from common.logging import get_logger

from .codec import BinaryPredicate, Blob, Extracted, extract, inject, is_blob
from .errors import TransportFailure

logger = get_logger(__name__)

SerializationMode = TypingLiteral["default", "custom"]

_HTTP_TIMEOUT = httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0)
_UPLOAD_FIELD = "file"


@dataclass(frozen=True)
class UploadConfig:
    """Where and how blobs of one payload are uploaded.

    ``serialization="custom"`` wraps each leaf as a named multipart field,
    ``"default"`` posts the raw bytes tagged with the leaf's content type.
    """

    destination: str
    method: str = "POST"
    serialization: SerializationMode = "default"

    def __post_init__(self) -> None:
        if self.serialization not in ("default", "custom"):
            raise ValueError(f"unknown serialization mode: {self.serialization}")


def identifier_from_response(response: httpx.Response) -> str:
    """Return the asset identifier carried by an upload response."""

    try:
        body: Any = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = response.text.strip()

    if isinstance(body, dict):
        body = body.get("id")
    if isinstance(body, (int, float)) and not isinstance(body, bool):
        body = str(body)
    if not isinstance(body, str) or not body:
        raise TransportFailure(
            "upload response did not contain an identifier",
            status_code=response.status_code,
            destination=str(response.request.url),
        )
    return body


class BlobUploader:
    """Upload the binary leaves of a payload and return the rewritten payload."""

    def __init__(
        self,
        config: UploadConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        is_binary_leaf: BinaryPredicate = is_blob,
    ) -> None:
        self._config = config
        self._client = client
        self._is_binary_leaf = is_binary_leaf

    def _request_kwargs(self, leaf: Any) -> dict[str, Any]:
        data, mime, filename = _leaf_parts(leaf)
        if self._config.serialization == "custom":
            return {"files": {_UPLOAD_FIELD: (filename or "blob", data, mime)}}
        return {"content": data, "headers": {"Content-Type": mime}}

    async def _upload_one(self, client: httpx.AsyncClient, leaf: Any) -> str:
        start = time.perf_counter()
        try:
            response = await client.request(
                self._config.method,
                self._config.destination,
                **self._request_kwargs(leaf),
            )
        except httpx.HTTPError as exc:
            raise TransportFailure(
                f"blob upload failed: {exc}", destination=self._config.destination
            ) from exc

        if response.is_error:
            raise TransportFailure(
                f"blob upload rejected with status {response.status_code}",
                status_code=response.status_code,
                destination=self._config.destination,
            )

        identifier = identifier_from_response(response)
        logger.info(
            "blobs.upload.completed",
            destination=self._config.destination,
            status_code=response.status_code,
            asset_id=identifier,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return identifier

    async def upload(self, payload: Any) -> Any:
        sanitized, leaves = extract(payload, self._is_binary_leaf)
        if not leaves:
            return payload

        # Occurrences sharing one object reference share one upload.
        distinct: dict[int, Any] = {}
        for leaf in leaves:
            distinct.setdefault(id(leaf), leaf)

        logger.info(
            "blobs.upload.started",
            destination=self._config.destination,
            serialization=self._config.serialization,
            leaves=len(leaves),
            uploads=len(distinct),
        )

        if self._client is not None:
            identifiers = await self._upload_all(self._client, distinct)
        else:
            async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT) as client:
                identifiers = await self._upload_all(client, distinct)

        def resolve(placeholder: Extracted) -> str:
            return identifiers[id(leaves[placeholder.token])]

        return inject(sanitized, resolve)

    async def _upload_all(
        self, client: httpx.AsyncClient, distinct: dict[int, Any]
    ) -> dict[int, str]:
        keys = list(distinct)
        results = await asyncio.gather(
            *(self._upload_one(client, distinct[key]) for key in keys)
        )
        return dict(zip(keys, results))


def _leaf_parts(leaf: Any) -> tuple[bytes, str, str | None]:
    if isinstance(leaf, Blob):
        return leaf.data, leaf.mime or "application/octet-stream", leaf.filename
    if isinstance(leaf, (bytes, bytearray, memoryview)):
        return bytes(leaf), "application/octet-stream", None
    data = getattr(leaf, "data", None)
    if data is None and hasattr(leaf, "read"):
        data = leaf.read()
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"unsupported binary leaf: {type(leaf).__name__}")
    mime = getattr(leaf, "mime", None) or getattr(leaf, "content_type", None)
    return bytes(data), mime or "application/octet-stream", getattr(leaf, "filename", None)


async def upload_blobs(
    payload: Any,
    config: UploadConfig,
    *,
    client: Optional[httpx.AsyncClient] = None,
    is_binary_leaf: BinaryPredicate = is_blob,
) -> Any:
    """Convenience wrapper around :meth:`BlobUploader.upload`."""

    uploader = BlobUploader(config, client=client, is_binary_leaf=is_binary_leaf)
    return await uploader.upload(payload)
