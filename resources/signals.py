from __future__ import annotations

from django.db import transaction
from django.db.models.signals import post_delete
from django.dispatch import receiver

from common.logging import get_logger
from common.object_store import get_default_object_store

from .asset_store import asset_bucket
from .models import Asset

logger = get_logger(__name__)


@receiver(post_delete, sender=Asset, dispatch_uid="resources.asset_bytes_cleanup")
def remove_asset_bytes(sender, instance: Asset, **kwargs) -> None:
    """Drop the bytes of a hard-deleted asset once the deletion commits."""

    bucket = asset_bucket()
    key = instance.object_key
    asset_id = str(instance.pk)

    def _cleanup() -> None:
        get_default_object_store().delete_object(bucket, key)
        logger.info("assets.bytes.deleted", asset_id=asset_id, bucket=bucket)

    transaction.on_commit(_cleanup)
