"""Client-side blob extraction and upload helpers."""

from .actions import default_upload_config, submit_resource
from .codec import Blob, Extracted, Literal, NodeKind, classify, extract, inject, is_blob
from .errors import TransportFailure
from .uploader import BlobUploader, UploadConfig, upload_blobs

__all__ = [
    "Blob",
    "BlobUploader",
    "Extracted",
    "Literal",
    "NodeKind",
    "TransportFailure",
    "UploadConfig",
    "classify",
    "default_upload_config",
    "extract",
    "inject",
    "is_blob",
    "submit_resource",
    "upload_blobs",
]
