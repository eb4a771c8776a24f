import pytest
from structlog.testing import capture_logs

from resources.asset_store import AssetStore
from resources.context import AssetPayload, RequestContext
from resources.errors import NotFound, ValidationError
from resources.models import Asset, Resource, ResourceVersion
from resources.mutation import ResourceMutationCoordinator
from resources.tests.factories import (
    AppFactory,
    AppMemberFactory,
    GroupFactory,
    app_definition,
)

FILE = AssetPayload(data=b"png", mime="image/png", filename="rex.png")


@pytest.fixture
def app():
    return AppFactory()


@pytest.fixture
def member(app):
    return AppMemberFactory(app=app)


@pytest.fixture
def coordinator():
    return ResourceMutationCoordinator()


def _with_photo(coordinator, app, member):
    context = RequestContext(
        member=member, body={"name": "Rex", "photo": 0}, files=(FILE,)
    )
    resource = coordinator.create(app, "pet", context)
    return resource, Asset.objects.get(resource=resource)


@pytest.mark.django_db
def test_create_stores_placeholder_files_as_assets(
    app, member, coordinator, object_store, asset_bucket,
    django_capture_on_commit_callbacks,
):
    with django_capture_on_commit_callbacks(execute=True):
        resource, asset = _with_photo(coordinator, app, member)

    assert resource.data == {"name": "Rex", "photo": str(asset.id)}
    assert resource.author == member and resource.editor == member
    assert asset.filename == "rex.png"
    assert asset.mime == "image/png"
    assert object_store.get_object(asset_bucket, asset.object_key) == b"png"


@pytest.mark.django_db
def test_create_adopts_uploaded_asset_referenced_by_name(app, member, coordinator):
    upload = AssetStore().create(
        app, AssetPayload(data=b"png", name="logo"), owner=member
    )

    resource = coordinator.create(
        app, "pet", RequestContext(member=member, body={"name": "Rex", "photo": "logo"})
    )

    upload.refresh_from_db()
    assert resource.data["photo"] == str(upload.id)
    assert upload.resource == resource
    assert upload.app_member is None


@pytest.mark.django_db
def test_create_keeps_clonable_out_of_data(app, member, coordinator):
    resource = coordinator.create(
        app,
        "pet",
        RequestContext(member=member, body={"name": "Rex", "$clonable": True}),
    )

    assert resource.clonable is True
    assert resource.data == {"name": "Rex"}


@pytest.mark.django_db
def test_create_in_demo_app_is_ephemeral_and_not_clonable(coordinator):
    app = AppFactory(demo_mode=True)

    resource = coordinator.create(
        app, "pet", RequestContext(body={"name": "Rex", "$clonable": True})
    )

    assert resource.ephemeral is True
    assert resource.clonable is False


@pytest.mark.django_db
def test_create_applies_definition_expiry(coordinator):
    app = AppFactory(definition=app_definition(expires="1h"))

    resource = coordinator.create(app, "pet", RequestContext(body={"name": "Rex"}))

    assert resource.expires is not None
    assert "$expires" not in resource.data


@pytest.mark.django_db
def test_failed_persist_rolls_back_everything(app, member, coordinator, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("object store offline")

    monkeypatch.setattr(coordinator.asset_store, "bulk_create_for_resource", boom)

    with capture_logs() as logs:
        with pytest.raises(RuntimeError):
            _with_photo(coordinator, app, member)

    assert not Resource.all_objects.exists()
    assert not Asset.all_objects.exists()
    failures = [log for log in logs if log["event"] == "resources.mutation.failed"]
    assert failures[0]["stage"] == "persist"
    assert failures[0]["action"] == "create"


@pytest.mark.django_db
def test_patch_merges_and_keeps_referenced_assets(app, member, coordinator):
    resource, asset = _with_photo(coordinator, app, member)
    editor = AppMemberFactory(app=app)

    with capture_logs() as logs:
        patched = coordinator.patch(
            app, "pet", resource.pk, RequestContext(member=editor, body={"name": "Max"})
        )

    assert patched.data == {"name": "Max", "photo": str(asset.id)}
    assert patched.author == member
    assert patched.editor == editor
    assert Asset.objects.filter(pk=asset.pk, resource=resource).exists()
    persisted = [log for log in logs if log["event"] == "resources.mutation.persisted"]
    assert persisted[0]["action"] == "patch"
    assert persisted[0]["orphaned_assets"] == 0


@pytest.mark.django_db
def test_update_without_history_purges_orphaned_assets(app, member, coordinator):
    resource, asset = _with_photo(coordinator, app, member)

    updated = coordinator.update(
        app, "pet", resource.pk, RequestContext(member=member, body={"name": "Max"})
    )

    assert updated.data == {"name": "Max"}
    assert not Asset.all_objects.filter(pk=asset.pk).exists()
    assert not ResourceVersion.objects.exists()


@pytest.mark.django_db
def test_update_replaces_photo_with_new_file(app, member, coordinator):
    resource, old = _with_photo(coordinator, app, member)
    replacement = AssetPayload(data=b"gif", mime="image/gif", filename="max.gif")

    updated = coordinator.update(
        app,
        "pet",
        resource.pk,
        RequestContext(
            member=member, body={"name": "Rex", "photo": 0}, files=(replacement,)
        ),
    )

    new = Asset.objects.get(resource=resource)
    assert new.pk != old.pk
    assert new.mime == "image/gif"
    assert updated.data["photo"] == str(new.id)
    assert not Asset.all_objects.filter(pk=old.pk).exists()


@pytest.mark.django_db
def test_update_with_history_snapshots_and_keeps_assets(member, coordinator):
    app = member.app
    app.definition = app_definition(history=True)
    app.save()
    resource, asset = _with_photo(coordinator, app, member)
    editor = AppMemberFactory(app=app)

    coordinator.update(
        app, "pet", resource.pk, RequestContext(member=editor, body={"name": "Max"})
    )

    version = ResourceVersion.objects.get(resource=resource)
    assert version.data == {"name": "Rex", "photo": str(asset.id)}
    assert version.previous_editor == member
    assert Asset.objects.filter(pk=asset.pk).exists()


@pytest.mark.django_db
def test_history_without_data_records_metadata_only(member, coordinator):
    app = member.app
    app.definition = app_definition(history={"data": False})
    app.save()
    resource, _ = _with_photo(coordinator, app, member)

    coordinator.patch(
        app, "pet", resource.pk, RequestContext(member=member, body={"name": "Max"})
    )

    version = ResourceVersion.objects.get(resource=resource)
    assert version.data is None


@pytest.mark.django_db
def test_invalid_patch_leaves_resource_untouched(app, member, coordinator):
    resource, _ = _with_photo(coordinator, app, member)
    before = dict(resource.data)

    with capture_logs() as logs:
        with pytest.raises(ValidationError):
            coordinator.patch(
                app, "pet", resource.pk, RequestContext(member=member, body={"name": 5})
            )

    resource.refresh_from_db()
    assert resource.data == before
    failures = [log for log in logs if log["event"] == "resources.mutation.failed"]
    assert failures[0]["stage"] == "validate"


@pytest.mark.django_db
def test_unknown_type_and_id_are_not_found(app, member, coordinator):
    context = RequestContext(member=member, body={"name": "Rex"})

    with pytest.raises(NotFound, match="resources called owner"):
        coordinator.create(app, "owner", context)
    with pytest.raises(NotFound):
        coordinator.patch(app, "pet", 999_999, context)
    with pytest.raises(NotFound):
        coordinator.get(app, "pet", 999_999, context)


@pytest.mark.django_db
def test_author_role_limits_access_to_own_resources(coordinator):
    app = AppFactory(
        definition=app_definition(roles=["$author"], create={"roles": []})
    )
    author = AppMemberFactory(app=app)
    stranger = AppMemberFactory(app=app)
    resource = coordinator.create(
        app, "pet", RequestContext(member=author, body={"name": "Rex"})
    )

    assert coordinator.query(app, "pet", RequestContext(member=stranger)) == []
    with pytest.raises(NotFound):
        coordinator.patch(
            app, "pet", resource.pk, RequestContext(member=stranger, body={"name": "X"})
        )
    patched = coordinator.patch(
        app, "pet", resource.pk, RequestContext(member=author, body={"name": "Max"})
    )
    assert patched.data["name"] == "Max"


@pytest.mark.django_db
def test_delete_destroys_resource_and_assets(app, member, coordinator):
    resource, asset = _with_photo(coordinator, app, member)

    coordinator.delete(app, "pet", resource.pk, RequestContext(member=member))

    assert Resource.all_objects.get(pk=resource.pk).is_soft_deleted
    assert Asset.all_objects.get(pk=asset.pk).is_soft_deleted
    with pytest.raises(NotFound):
        coordinator.get(app, "pet", resource.pk, RequestContext(member=member))


@pytest.mark.django_db
def test_referenced_seed_asset_keeps_its_owner(app, member, coordinator):
    seed = AssetStore().create_seed(app, AssetPayload(data=b"png", name="logo"), member)
    resource = coordinator.create(
        app, "pet", RequestContext(member=member, body={"name": "Rex", "photo": "logo"})
    )

    coordinator.update(
        app, "pet", resource.pk, RequestContext(member=member, body={"name": "Max"})
    )

    seed.refresh_from_db()
    assert seed.resource is None
    assert seed.app_member == member
    assert not seed.is_soft_deleted


@pytest.mark.django_db
def test_referenced_group_asset_survives_resource_changes(app, member, coordinator):
    group = GroupFactory(app=app)
    banner = AssetStore().create(
        app, AssetPayload(data=b"png", name="banner"), owner=group
    )
    resource = coordinator.create(
        app,
        "pet",
        RequestContext(member=member, body={"name": "Rex", "photo": "banner"}),
    )
    assert resource.data["photo"] == str(banner.id)

    coordinator.update(
        app, "pet", resource.pk, RequestContext(member=member, body={"name": "Max"})
    )
    coordinator.delete(app, "pet", resource.pk, RequestContext(member=member))

    banner.refresh_from_db()
    assert banner.group == group
    assert banner.resource is None
    assert not banner.is_soft_deleted


@pytest.mark.django_db
def test_failed_patch_leaves_resource_untouched(app, member, coordinator, monkeypatch):
    resource, asset = _with_photo(coordinator, app, member)
    resource.refresh_from_db()
    before_data, before_updated = dict(resource.data), resource.updated_at

    def boom(*args, **kwargs):
        raise RuntimeError("object store offline")

    monkeypatch.setattr(coordinator.asset_store, "bulk_create_for_resource", boom)
    replacement = AssetPayload(data=b"gif", mime="image/gif")

    with capture_logs() as logs:
        with pytest.raises(RuntimeError):
            coordinator.patch(
                app,
                "pet",
                resource.pk,
                RequestContext(
                    member=member, body={"name": "Max", "photo": 0}, files=(replacement,)
                ),
            )

    resource.refresh_from_db()
    assert resource.data == before_data
    assert resource.updated_at == before_updated
    assert list(Asset.all_objects.filter(app=app)) == [asset]
    failures = [log for log in logs if log["event"] == "resources.mutation.failed"]
    assert failures[0]["stage"] == "persist"
    assert failures[0]["action"] == "patch"


def _patch_photo(coordinator, app, member, resource):
    replacement = AssetPayload(data=b"gif", mime="image/gif")
    return coordinator.patch(
        app,
        "pet",
        resource.pk,
        RequestContext(member=member, body={"photo": 0}, files=(replacement,)),
    )


@pytest.mark.django_db
def test_patch_without_history_purges_replaced_asset(app, member, coordinator):
    resource, old = _with_photo(coordinator, app, member)

    patched = _patch_photo(coordinator, app, member, resource)

    new = Asset.objects.get(resource=resource)
    assert patched.data == {"name": "Rex", "photo": str(new.id)}
    assert not Asset.all_objects.filter(pk=old.pk).exists()
    assert not ResourceVersion.objects.exists()


@pytest.mark.django_db
def test_patch_with_history_records_version_and_keeps_asset(member, coordinator):
    app = member.app
    app.definition = app_definition(history=True)
    app.save()
    resource, old = _with_photo(coordinator, app, member)

    _patch_photo(coordinator, app, member, resource)

    version = ResourceVersion.objects.get(resource=resource)
    assert version.data == {"name": "Rex", "photo": str(old.id)}
    assert Asset.objects.filter(pk=old.pk, resource=resource).exists()
