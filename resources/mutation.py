"""Transactional coordination of resource mutations and their assets."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

from django.db import transaction
from django.db.models import Q

from common.logging import get_logger

from .asset_store import AssetStore, adoptable
from .body import ProcessedBody, process_resource_body, referenced_asset_ids
from .context import PreparedAsset, RequestContext
from .definitions import ResourceAction, ResourceDefinition, get_resource_definition
from .errors import NotFound
from .models import App, AppMember, Asset, Resource, ResourceVersion
from .permissions import verify_resource_action_permission
from .resource_store import ResourceStore

logger = get_logger(__name__)

PermissionCheck = Callable[..., Q]
BodyProcessor = Callable[..., ProcessedBody]


class MutationStage(str, Enum):
    VALIDATE = "validate"
    DIFF_ASSETS = "diff_assets"
    PERSIST = "persist"
    RELOAD = "reload"


@dataclass(frozen=True)
class AssetDiff:
    create: list[PreparedAsset]
    orphaned: list[str]
    adopt: list[str]


def diff_assets(
    definition: ResourceDefinition,
    data: dict[str, Any],
    processed: ProcessedBody,
    known_assets: Sequence[Asset],
    member: AppMember | None = None,
) -> AssetDiff:
    """Reconcile the assets linked to a resource with what ``data`` references.

    Dropped ids still referenced by the merged data are not orphans. Plain
    uploads referenced by the data (unowned or owned by ``member``) are
    adopted; seed, group and other members' assets are only referenced.
    """

    still_referenced = referenced_asset_ids(definition.json_schema, data)
    prepared_ids = {str(item.id) for item in processed.prepared}
    orphaned = [
        asset_id for asset_id in processed.dropped if asset_id not in still_referenced
    ]
    adopt = [
        str(asset.id)
        for asset in known_assets
        if adoptable(asset, member)
        and str(asset.id) in still_referenced
        and str(asset.id) not in prepared_ids
    ]
    return AssetDiff(create=list(processed.prepared), orphaned=orphaned, adopt=adopt)


class ResourceMutationCoordinator:
    """Run resource actions as single validate/diff/persist/reload units."""

    def __init__(
        self,
        *,
        resource_store: ResourceStore | None = None,
        asset_store: AssetStore | None = None,
        permission_check: PermissionCheck = verify_resource_action_permission,
        body_processor: BodyProcessor = process_resource_body,
    ) -> None:
        self._assets = asset_store or AssetStore()
        self._resources = resource_store or ResourceStore(asset_store=self._assets)
        self._permission_check = permission_check
        self._body_processor = body_processor

    @property
    def resource_store(self) -> ResourceStore:
        return self._resources

    @property
    def asset_store(self) -> AssetStore:
        return self._assets

    def _definition(self, app: App, resource_type: str) -> ResourceDefinition:
        definition = get_resource_definition(app.definition, resource_type)
        if definition is None:
            raise NotFound(f"App does not have resources called {resource_type}")
        return definition

    def _authorize(
        self,
        context: RequestContext,
        app: App,
        resource_type: str,
        action: ResourceAction,
    ) -> tuple[ResourceDefinition, Q]:
        definition = self._definition(app, resource_type)
        filter_fragment = self._permission_check(
            context, app, resource_type, action, definition=definition
        )
        return definition, filter_fragment

    def get(
        self, app: App, resource_type: str, resource_id: int | str, context: RequestContext
    ) -> Resource:
        _, filter_fragment = self._authorize(context, app, resource_type, "get")
        return self._resources.get(app, resource_type, resource_id, filter_fragment)

    def query(
        self, app: App, resource_type: str, context: RequestContext
    ) -> list[Resource]:
        _, filter_fragment = self._authorize(context, app, resource_type, "query")
        return self._resources.query(app, resource_type, filter_fragment)

    def create(
        self, app: App, resource_type: str, context: RequestContext
    ) -> Resource:
        stage = MutationStage.VALIDATE
        try:
            definition, _ = self._authorize(context, app, resource_type, "create")
            with transaction.atomic():
                known = self._assets.known_assets(app)
                processed = self._body_processor(
                    context, definition, (), None, known, False
                )
                data = dict(processed.data)
                clonable = bool(data.pop("$clonable", False))
                expires = data.pop("$expires", None)

                stage = MutationStage.DIFF_ASSETS
                diff = diff_assets(definition, data, processed, known, context.member)

                stage = MutationStage.PERSIST
                resource = self._resources.create(
                    app,
                    resource_type,
                    data,
                    context.member,
                    # Demo apps only ever hold perishable, non-clonable copies.
                    clonable=False if app.demo_mode else clonable,
                    ephemeral=app.demo_mode,
                    expires=expires,
                )
                self._assets.bulk_create_for_resource(resource, diff.create)
                self._assets.adopt(resource, diff.adopt, context.member)

            stage = MutationStage.RELOAD
            reloaded = self._resources.get(app, resource_type, resource.pk)
        except Exception:
            logger.warning(
                "resources.mutation.failed",
                action="create",
                stage=stage.value,
                app_id=app.pk,
                resource_type=resource_type,
            )
            raise

        logger.info(
            "resources.mutation.persisted",
            action="create",
            app_id=app.pk,
            resource_type=resource_type,
            resource_id=reloaded.pk,
            created_assets=len(diff.create),
            adopted_assets=len(diff.adopt),
        )
        return reloaded

    def patch(
        self,
        app: App,
        resource_type: str,
        resource_id: int | str,
        context: RequestContext,
    ) -> Resource:
        """Merge the body into the stored data."""

        return self._mutate(app, resource_type, resource_id, context, "patch")

    def update(
        self,
        app: App,
        resource_type: str,
        resource_id: int | str,
        context: RequestContext,
    ) -> Resource:
        """Replace the stored data with the body."""

        return self._mutate(app, resource_type, resource_id, context, "update")

    def _mutate(
        self,
        app: App,
        resource_type: str,
        resource_id: int | str,
        context: RequestContext,
        action: ResourceAction,
    ) -> Resource:
        partial = action == "patch"
        stage = MutationStage.VALIDATE
        try:
            definition, filter_fragment = self._authorize(
                context, app, resource_type, action
            )
            with transaction.atomic():
                resource = self._resources.get(
                    app, resource_type, resource_id, filter_fragment, for_update=True
                )
                known = self._assets.known_assets(app)
                current_ids = [
                    str(asset.id) for asset in known if asset.resource_id == resource.pk
                ]
                processed = self._body_processor(
                    context, definition, current_ids, resource.expires, known, partial
                )
                incoming = dict(processed.data)
                clonable = incoming.pop("$clonable", None)
                expires = incoming.pop("$expires", resource.expires)

                stage = MutationStage.DIFF_ASSETS
                old_data = dict(resource.data or {})
                new_data = {**old_data, **incoming} if partial else incoming
                diff = diff_assets(
                    definition, new_data, processed, known, context.member
                )

                stage = MutationStage.PERSIST
                previous_editor = resource.editor
                resource.data = new_data
                resource.editor = context.member
                resource.expires = expires
                if clonable is not None and not app.demo_mode:
                    resource.clonable = bool(clonable)
                resource.save(
                    update_fields=["data", "editor", "expires", "clonable", "updated_at"]
                )
                self._assets.bulk_create_for_resource(resource, diff.create)
                self._assets.adopt(resource, diff.adopt, context.member)

                if definition.history_enabled:
                    # Orphaned assets stay so older versions keep resolving.
                    ResourceVersion.objects.create(
                        resource=resource,
                        previous_editor=previous_editor,
                        data=old_data if definition.history_keeps_data else None,
                    )
                else:
                    self._assets.purge(diff.orphaned)

            stage = MutationStage.RELOAD
            reloaded = self._resources.get(app, resource_type, resource.pk)
        except Exception:
            logger.warning(
                "resources.mutation.failed",
                action=action,
                stage=stage.value,
                app_id=app.pk,
                resource_type=resource_type,
                resource_id=str(resource_id),
            )
            raise

        logger.info(
            "resources.mutation.persisted",
            action=action,
            app_id=app.pk,
            resource_type=resource_type,
            resource_id=reloaded.pk,
            history=definition.history_enabled,
            created_assets=len(diff.create),
            adopted_assets=len(diff.adopt),
            orphaned_assets=len(diff.orphaned),
        )
        return reloaded

    def delete(
        self,
        app: App,
        resource_type: str,
        resource_id: int | str,
        context: RequestContext,
    ) -> None:
        _, filter_fragment = self._authorize(context, app, resource_type, "delete")
        with transaction.atomic():
            resource = self._resources.get(
                app, resource_type, resource_id, filter_fragment, for_update=True
            )
            self._resources.destroy(resource)
