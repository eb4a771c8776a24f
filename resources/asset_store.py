"""Persistence of asset rows and their bytes."""

from __future__ import annotations

import uuid
from typing import Iterable, Sequence

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q

from common.logging import get_logger
from common.object_store import ObjectStore, get_default_object_store

from .context import AssetFlags, AssetPayload, PreparedAsset
from .errors import Conflict, NotFound
from .models import App, AppMember, Asset, Group, Resource

logger = get_logger(__name__)

DEFAULT_ASSET_BUCKET = "assets"


def asset_bucket() -> str:
    return getattr(settings, "ASSET_BUCKET", DEFAULT_ASSET_BUCKET)


def _owner_fields(owner: Resource | Group | AppMember | None) -> dict[str, object]:
    if owner is None:
        return {}
    if isinstance(owner, Resource):
        return {"resource": owner}
    if isinstance(owner, Group):
        return {"group": owner}
    if isinstance(owner, AppMember):
        return {"app_member": owner}
    raise TypeError(f"unsupported asset owner: {type(owner).__name__}")


def _parse_uuid(value: object) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def adoptable(asset: Asset, member: AppMember | None) -> bool:
    """Whether a resource may take over ``asset``.

    Only plain uploads qualify: seed assets, group assets and assets of other
    members keep their owner.
    """

    if asset.resource_id is not None or asset.group_id is not None or asset.seed:
        return False
    return asset.app_member_id is None or (
        member is not None and asset.app_member_id == member.pk
    )


def _adoptable_filter(member: AppMember | None) -> Q:
    unowned = Q(app_member__isnull=True)
    if member is not None:
        unowned |= Q(app_member=member)
    return Q(resource__isnull=True, group__isnull=True, seed=False) & unowned


class AssetStore:
    """Create, resolve and destroy assets.

    Rows are written inside the caller's transaction; bytes reach the object
    store only once that transaction commits.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore | None = None,
        bucket: str | None = None,
    ) -> None:
        self._object_store = object_store
        self._bucket = bucket

    @property
    def object_store(self) -> ObjectStore:
        return self._object_store or get_default_object_store()

    @property
    def bucket(self) -> str:
        return self._bucket or asset_bucket()

    def _schedule_write(self, asset: Asset, data: bytes) -> None:
        store = self.object_store
        bucket = self.bucket
        key = asset.object_key

        def _write() -> None:
            store.put_object(bucket, key, data)
            logger.info(
                "assets.bytes.stored",
                asset_id=str(asset.id),
                bucket=bucket,
                size_bytes=len(data),
            )

        transaction.on_commit(_write)

    def _ensure_name_available(self, app: App, name: str | None, ephemeral: bool) -> None:
        if name and Asset.objects.filter(app=app, name=name, ephemeral=ephemeral).exists():
            raise Conflict(f"An asset named {name} already exists")

    def create(
        self,
        app: App,
        payload: AssetPayload,
        flags: AssetFlags = AssetFlags(),
        owner: Resource | Group | AppMember | None = None,
        *,
        asset_id: uuid.UUID | None = None,
    ) -> Asset:
        """Create one asset row and schedule its bytes for storage."""

        self._ensure_name_available(app, payload.name, flags.ephemeral)
        asset = Asset(
            id=asset_id or uuid.uuid4(),
            app=app,
            name=payload.name,
            filename=payload.filename,
            mime=payload.mime,
            size=payload.size,
            clonable=flags.clonable,
            seed=flags.seed,
            ephemeral=flags.ephemeral,
            **_owner_fields(owner),
        )
        with transaction.atomic():
            try:
                with transaction.atomic():
                    asset.save(force_insert=True)
            except IntegrityError as exc:
                raise Conflict(f"An asset named {payload.name} already exists") from exc
            self._schedule_write(asset, payload.data)

        logger.info(
            "assets.created",
            app_id=app.pk,
            asset_id=str(asset.id),
            mime=asset.mime,
            size_bytes=asset.size,
            seed=asset.seed,
            ephemeral=asset.ephemeral,
        )
        return asset

    def create_seed(
        self,
        app: App,
        payload: AssetPayload,
        member: AppMember | None = None,
        *,
        clonable: bool = False,
    ) -> Asset:
        """Create a seed asset, plus an ephemeral working copy in demo apps."""

        with transaction.atomic():
            asset = self.create(
                app, payload, AssetFlags(clonable=clonable, seed=True), owner=member
            )
            if app.demo_mode:
                self.create(
                    app, payload, AssetFlags(clonable=clonable, ephemeral=True), owner=member
                )
        return asset

    def resolve(self, app: App, id_or_name: str) -> tuple[Asset, bool]:
        """Find a live asset by id, then by name.

        Returns the asset and whether it was found through its name.
        """

        asset_id = _parse_uuid(id_or_name)
        if asset_id is not None:
            asset = Asset.objects.filter(app=app, id=asset_id).first()
            if asset is not None:
                return asset, False

        # Demo apps serve their ephemeral copies first.
        ordering = "-ephemeral" if app.demo_mode else "ephemeral"
        asset = (
            Asset.objects.filter(app=app, name=id_or_name).order_by(ordering).first()
        )
        if asset is None:
            raise NotFound("Asset not found")
        return asset, True

    def read(self, asset: Asset) -> bytes:
        return self.object_store.get_object(self.bucket, asset.object_key)

    def query(
        self, app: App, filter_fragment: Q | None = None, *, include_seed: bool = False
    ):
        queryset = Asset.objects.filter(app=app)
        if not include_seed:
            queryset = queryset.filter(seed=False)
        if filter_fragment is not None:
            queryset = queryset.filter(filter_fragment)
        return queryset.order_by("created_at", "id")

    def count(self, app: App, filter_fragment: Q | None = None) -> int:
        return self.query(app, filter_fragment).count()

    def known_assets(self, app: App) -> list[Asset]:
        """Live assets of ``app`` a resource body may reference."""

        return list(
            Asset.objects.filter(app=app).only(
                "id",
                "app_id",
                "name",
                "ephemeral",
                "seed",
                "resource_id",
                "group_id",
                "app_member_id",
            )
        )

    def bulk_create_for_resource(
        self,
        resource: Resource,
        prepared: Sequence[PreparedAsset],
        *,
        flags: AssetFlags | None = None,
    ) -> list[Asset]:
        """Create the assets a resource mutation introduced, owned by it."""

        if not prepared:
            return []

        flags = flags or AssetFlags(
            clonable=resource.clonable, seed=resource.seed, ephemeral=resource.ephemeral
        )
        created = [
            self.create(
                resource.app,
                item.payload,
                flags,
                owner=resource,
                asset_id=item.id,
            )
            for item in prepared
        ]
        logger.info(
            "assets.bulk_created",
            resource_id=resource.pk,
            count=len(created),
        )
        return created

    def adopt(
        self,
        resource: Resource,
        asset_ids: Iterable[uuid.UUID | str],
        member: AppMember | None = None,
    ) -> int:
        """Move plain uploads referenced by ``resource`` under it.

        Assets owned by a group, another member or another resource, and seed
        assets, are left alone.
        """

        ids = [asset_id for asset_id in map(_parse_uuid, asset_ids) if asset_id]
        if not ids:
            return 0
        adopted = (
            Asset.objects.filter(app_id=resource.app_id, id__in=ids)
            .filter(_adoptable_filter(member))
            .update(resource=resource, app_member=None)
        )
        if adopted:
            logger.info("assets.adopted", resource_id=resource.pk, count=adopted)
        return adopted

    def purge(self, asset_ids: Iterable[uuid.UUID | str]) -> int:
        """Hard-delete rows regardless of soft-delete semantics."""

        ids = [asset_id for asset_id in map(_parse_uuid, asset_ids) if asset_id]
        if not ids:
            return 0
        deleted, _ = Asset.all_objects.filter(id__in=ids).delete()
        logger.info("assets.purged", count=deleted)
        return deleted

    def destroy(self, asset: Asset) -> None:
        asset.destroy()
        logger.info(
            "assets.destroyed",
            asset_id=str(asset.id),
            ephemeral=asset.ephemeral,
        )

    def destroy_many(self, app: App, asset_ids: Iterable[uuid.UUID | str]) -> int:
        """Destroy the given assets of ``app``; unknown ids are ignored."""

        ids = [asset_id for asset_id in map(_parse_uuid, asset_ids) if asset_id]
        if not ids:
            return 0
        return Asset.objects.filter(app=app, id__in=ids).destroy()

    def destroy_for_resource(self, resource: Resource) -> int:
        return Asset.objects.filter(resource=resource).destroy()

    def delete_seed(self, app: App) -> int:
        """Remove every seed asset of ``app`` and its ephemeral copies."""

        deleted, _ = Asset.all_objects.filter(
            Q(seed=True) | Q(ephemeral=True), app=app
        ).delete()
        logger.info("assets.seed_deleted", app_id=app.pk, count=deleted)
        return deleted

    def delete_bytes(self, asset: Asset) -> None:
        self.object_store.delete_object(self.bucket, asset.object_key)
