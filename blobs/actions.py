"""Client-side resource actions carrying embedded blobs."""

from __future__ import annotations

from typing import Any

import httpx

from common.logging import get_logger

from .codec import BinaryPredicate, is_blob
from .errors import TransportFailure
from .uploader import BlobUploader, UploadConfig

logger = get_logger(__name__)


def default_upload_config(api_url: str, app_id: int | str) -> UploadConfig:
    """Upload configuration targeting the app's own asset endpoint."""

    return UploadConfig(destination=f"{api_url.rstrip('/')}/api/apps/{app_id}/assets")


async def submit_resource(
    client: httpx.AsyncClient,
    url: str,
    payload: Any,
    upload_config: UploadConfig,
    *,
    method: str = "POST",
    is_binary_leaf: BinaryPredicate = is_blob,
) -> Any:
    """Upload every blob in ``payload``, then send the resource mutation.

    The mutation request is only issued once all uploads succeeded; any
    :class:`TransportFailure` propagates before it is attempted.
    """

    uploader = BlobUploader(upload_config, client=client, is_binary_leaf=is_binary_leaf)
    try:
        body = await uploader.upload(payload)
    except TransportFailure:
        logger.warning("blobs.submit.aborted", url=url, method=method)
        raise

    response = await client.request(method, url, json=body)
    response.raise_for_status()
    logger.info(
        "blobs.submit.completed",
        url=url,
        method=method,
        status_code=response.status_code,
    )
    if response.status_code == 204 or not response.content:
        return None
    return response.json()
