"""Persistence and representation of resource rows."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from common.logging import get_logger

from .asset_store import AssetStore
from .errors import NotFound
from .models import App, AppMember, Resource, ResourceVersion

logger = get_logger(__name__)

DEFAULT_EXCLUDE: tuple[str, ...] = ("$clonable",)


def _member_summary(member: AppMember | None) -> dict[str, Any] | None:
    if member is None:
        return None
    return {"id": str(member.id), "name": member.name}


def _timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ResourceStore:
    """Read and write :class:`Resource` rows of one app."""

    def __init__(self, *, asset_store: AssetStore | None = None) -> None:
        self._assets = asset_store or AssetStore()

    def create(
        self,
        app: App,
        type: str,
        data: Mapping[str, Any],
        author: AppMember | None = None,
        *,
        clonable: bool = False,
        seed: bool = False,
        ephemeral: bool = False,
        expires: datetime | None = None,
    ) -> Resource:
        resource = Resource.objects.create(
            app=app,
            type=type,
            data=dict(data),
            author=author,
            editor=author,
            clonable=clonable,
            seed=seed,
            ephemeral=ephemeral,
            expires=expires,
        )
        logger.info(
            "resources.created",
            app_id=app.pk,
            resource_type=type,
            resource_id=resource.pk,
        )
        return resource

    def _scoped(self, app: App, type: str, filter_fragment: Q | None):
        queryset = Resource.objects.filter(app=app, type=type).filter(
            Q(expires__isnull=True) | Q(expires__gt=timezone.now())
        )
        if filter_fragment is not None:
            queryset = queryset.filter(filter_fragment)
        return queryset

    def get(
        self,
        app: App,
        type: str,
        id: int | str,
        filter_fragment: Q | None = None,
        *,
        for_update: bool = False,
    ) -> Resource:
        """Return one live resource, optionally row-locked."""

        queryset = self._scoped(app, type, filter_fragment).select_related(
            "author", "editor"
        )
        if for_update:
            # of=("self",) keeps the nullable author/editor joins unlocked.
            queryset = queryset.select_for_update(of=("self",))
        try:
            return queryset.get(pk=id)
        except (Resource.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFound("Resource not found") from exc

    def query(
        self, app: App, type: str, filter_fragment: Q | None = None
    ) -> list[Resource]:
        return list(
            self._scoped(app, type, filter_fragment)
            .select_related("author", "editor")
            .order_by("id")
        )

    def count(self, app: App, type: str, filter_fragment: Q | None = None) -> int:
        return self._scoped(app, type, filter_fragment).count()

    def to_representation(
        self,
        resource: Resource,
        exclude: Iterable[str] | None = DEFAULT_EXCLUDE,
        include: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        """Shape ``resource`` for API responses.

        ``exclude`` drops keys first, then ``include`` narrows the result to an
        allow-list.
        """

        result: dict[str, Any] = {
            **(resource.data or {}),
            "id": resource.pk,
            "$created": _timestamp(resource.created_at),
            "$updated": _timestamp(resource.updated_at),
        }
        author = _member_summary(resource.author)
        if author is not None:
            result["$author"] = author
        editor = _member_summary(resource.editor)
        if editor is not None:
            result["$editor"] = editor
        if resource.clonable is not None:
            result["$clonable"] = resource.clonable
        if resource.ephemeral:
            result["$ephemeral"] = True
        if resource.expires:
            result["$expires"] = _timestamp(resource.expires)

        for key in exclude or ():
            result.pop(key, None)
        if include is not None:
            allowed = set(include)
            result = {key: value for key, value in result.items() if key in allowed}
        return result

    def versions(self, resource: Resource) -> list[ResourceVersion]:
        return list(resource.versions.select_related("previous_editor"))

    def destroy(self, resource: Resource) -> None:
        """Destroy ``resource`` and every asset it owns."""

        with transaction.atomic():
            if resource.ephemeral:
                # Row deletion cascades to the owned asset rows.
                resource.delete()
            else:
                self._assets.destroy_for_resource(resource)
                resource.soft_delete()
        logger.info(
            "resources.destroyed",
            app_id=resource.app_id,
            resource_type=resource.type,
            ephemeral=resource.ephemeral,
        )

    def purge_expired(self, now: datetime | None = None) -> int:
        """Destroy every live resource whose ``expires`` lies in the past."""

        cutoff = now or timezone.now()
        expired = list(Resource.objects.filter(expires__lte=cutoff))
        for resource in expired:
            self.destroy(resource)
        if expired:
            logger.info("resources.expired_purged", count=len(expired))
        return len(expired)
