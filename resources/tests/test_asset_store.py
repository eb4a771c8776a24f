import uuid

import pytest
from django.db import IntegrityError, transaction

from common.object_store import ObjectNotFound
from resources.asset_store import AssetStore
from resources.context import AssetFlags, AssetPayload, PreparedAsset
from resources.errors import Conflict, NotFound
from resources.models import Asset
from resources.tests.factories import (
    AppFactory,
    AppMemberFactory,
    AssetFactory,
    GroupFactory,
    ResourceFactory,
)

PNG = b"\x89PNG\r\n\x1a\n"


def _payload(name=None, data=PNG):
    return AssetPayload(data=data, mime="image/png", filename="logo.png", name=name)


@pytest.mark.django_db
def test_create_stores_bytes_once_committed(
    object_store, asset_bucket, django_capture_on_commit_callbacks
):
    app = AppFactory()

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        asset = AssetStore().create(app, _payload(name="logo"))
        assert object_store.keys(asset_bucket) == []

    assert len(callbacks) == 1
    callbacks[0]()
    assert object_store.get_object(asset_bucket, asset.object_key) == PNG
    assert asset.size == len(PNG)
    assert asset.mime == "image/png"
    assert asset.object_key == f"{app.pk}/{asset.id}"


@pytest.mark.django_db
def test_create_rejects_taken_name():
    app = AppFactory()
    store = AssetStore()
    store.create(app, _payload(name="logo"))

    with pytest.raises(Conflict) as excinfo:
        store.create(app, _payload(name="logo"))

    assert excinfo.value.message == "An asset named logo already exists"
    assert Asset.objects.filter(app=app).count() == 1


@pytest.mark.django_db
def test_names_are_scoped_per_app_and_free_after_destroy():
    store = AssetStore()
    first_app, second_app = AppFactory(), AppFactory()
    first = store.create(first_app, _payload(name="logo"))
    store.create(second_app, _payload(name="logo"))

    store.destroy(first)
    replacement = store.create(first_app, _payload(name="logo"))

    assert replacement.id != first.id
    assert Asset.all_objects.filter(app=first_app, name="logo").count() == 2


@pytest.mark.django_db
def test_create_records_single_owner():
    app = AppFactory()
    member = AppMemberFactory(app=app)

    asset = AssetStore().create(app, _payload(), owner=member)

    assert asset.app_member == member
    assert asset.owner == member
    assert asset.resource is None and asset.group is None


@pytest.mark.django_db
def test_database_rejects_multiple_owners():
    app = AppFactory()
    member = AppMemberFactory(app=app)
    group = GroupFactory(app=app)

    with pytest.raises(IntegrityError):
        with transaction.atomic():
            AssetFactory(app=app, app_member=member, group=group)


@pytest.mark.django_db
def test_create_seed_adds_ephemeral_copy_in_demo_apps():
    app = AppFactory(demo_mode=True)

    seed = AssetStore().create_seed(app, _payload(name="logo"))

    rows = Asset.objects.filter(app=app, name="logo")
    assert seed.seed is True
    assert sorted((row.seed, row.ephemeral) for row in rows) == [
        (False, True),
        (True, False),
    ]


@pytest.mark.django_db
def test_create_seed_without_demo_mode_creates_one_row():
    app = AppFactory()

    AssetStore().create_seed(app, _payload(name="logo"))

    assert Asset.objects.filter(app=app).count() == 1


@pytest.mark.django_db
def test_resolve_by_id_and_by_name():
    app = AppFactory()
    store = AssetStore()
    asset = store.create(app, _payload(name="logo"))

    by_id, via_name = store.resolve(app, str(asset.id))
    assert by_id == asset and via_name is False

    by_name, via_name = store.resolve(app, "logo")
    assert by_name == asset and via_name is True


@pytest.mark.django_db
def test_resolve_prefers_ephemeral_copy_in_demo_apps():
    app = AppFactory(demo_mode=True)
    store = AssetStore()
    store.create_seed(app, _payload(name="logo"))

    asset, _ = store.resolve(app, "logo")

    assert asset.ephemeral is True


@pytest.mark.django_db
def test_resolve_unknown_asset_raises_not_found():
    app = AppFactory()
    other = AssetStore().create(AppFactory(), _payload(name="logo"))

    with pytest.raises(NotFound):
        AssetStore().resolve(app, "missing")
    with pytest.raises(NotFound):
        AssetStore().resolve(app, str(other.id))


@pytest.mark.django_db
def test_destroy_soft_deletes_regular_assets():
    app = AppFactory()
    store = AssetStore()
    asset = store.create(app, _payload(name="logo"))

    store.destroy(asset)

    assert not Asset.objects.filter(pk=asset.pk).exists()
    assert Asset.all_objects.get(pk=asset.pk).is_soft_deleted


@pytest.mark.django_db
def test_destroy_purges_ephemeral_assets_and_their_bytes(
    object_store, asset_bucket, django_capture_on_commit_callbacks
):
    app = AppFactory()
    store = AssetStore()
    with django_capture_on_commit_callbacks(execute=True):
        asset = store.create(app, _payload(), AssetFlags(ephemeral=True))
    assert object_store.keys(asset_bucket) == [asset.object_key]

    with django_capture_on_commit_callbacks(execute=True):
        store.destroy(asset)

    assert not Asset.all_objects.filter(pk=asset.pk).exists()
    with pytest.raises(ObjectNotFound):
        object_store.get_object(asset_bucket, asset.object_key)


@pytest.mark.django_db
def test_destroy_many_ignores_unknown_and_foreign_ids():
    app = AppFactory()
    store = AssetStore()
    mine = store.create(app, _payload())
    foreign = store.create(AppFactory(), _payload())

    destroyed = store.destroy_many(app, [mine.id, foreign.id, uuid.uuid4(), "bogus"])

    assert destroyed == 1
    assert not Asset.objects.filter(pk=mine.pk).exists()
    assert Asset.objects.filter(pk=foreign.pk).exists()


@pytest.mark.django_db
def test_deleting_owner_cascades_to_assets(
    object_store, asset_bucket, django_capture_on_commit_callbacks
):
    app = AppFactory()
    group = GroupFactory(app=app)
    member = AppMemberFactory(app=app)
    store = AssetStore()
    with django_capture_on_commit_callbacks(execute=True):
        group_asset = store.create(app, _payload(), owner=group)
        member_asset = store.create(app, _payload(), owner=member)

    with django_capture_on_commit_callbacks(execute=True):
        group.delete()
        member.delete()

    assert not Asset.all_objects.filter(
        pk__in=[group_asset.pk, member_asset.pk]
    ).exists()
    assert object_store.keys(asset_bucket) == []


@pytest.mark.django_db
def test_adopt_moves_unowned_assets_under_resource():
    app = AppFactory()
    member = AppMemberFactory(app=app)
    resource = ResourceFactory(app=app)
    taken = ResourceFactory(app=app)
    store = AssetStore()
    loose = store.create(app, _payload(), owner=member)
    owned = store.create(app, _payload(), owner=taken)

    adopted = store.adopt(resource, [loose.id, owned.id], member)

    loose.refresh_from_db()
    owned.refresh_from_db()
    assert adopted == 1
    assert loose.resource == resource and loose.app_member is None
    assert owned.resource == taken


@pytest.mark.django_db
def test_adopt_leaves_shared_assets_with_their_owner():
    app = AppFactory()
    member = AppMemberFactory(app=app)
    other = AppMemberFactory(app=app)
    group = GroupFactory(app=app)
    resource = ResourceFactory(app=app)
    store = AssetStore()
    seed = store.create_seed(app, _payload(name="logo"), member)
    banner = store.create(app, _payload(name="banner"), owner=group)
    foreign = store.create(app, _payload(), owner=other)

    adopted = store.adopt(resource, [seed.id, banner.id, foreign.id], member)

    assert adopted == 0
    seed.refresh_from_db()
    banner.refresh_from_db()
    foreign.refresh_from_db()
    assert seed.resource is None and seed.app_member == member
    assert banner.resource is None and banner.group == group
    assert foreign.resource is None and foreign.app_member == other


@pytest.mark.django_db
def test_bulk_create_inherits_resource_flags():
    app = AppFactory()
    resource = ResourceFactory(app=app, clonable=True, ephemeral=True)

    prepared = [PreparedAsset(id=uuid.uuid4(), payload=_payload())]
    created = AssetStore().bulk_create_for_resource(resource, prepared)

    assert [asset.id for asset in created] == [prepared[0].id]
    assert created[0].resource == resource
    assert created[0].clonable is True and created[0].ephemeral is True


@pytest.mark.django_db
def test_delete_seed_removes_seed_and_ephemeral_rows_only():
    app = AppFactory(demo_mode=True)
    store = AssetStore()
    store.create_seed(app, _payload(name="logo"))
    regular = store.create(app, _payload(name="other"))

    deleted = store.delete_seed(app)

    assert deleted == 2
    assert list(Asset.all_objects.filter(app=app)) == [regular]


@pytest.mark.django_db
def test_query_hides_seed_assets_by_default():
    app = AppFactory()
    store = AssetStore()
    store.create_seed(app, _payload(name="seed"))
    regular = store.create(app, _payload(name="regular"))

    assert list(store.query(app)) == [regular]
    assert store.query(app, include_seed=True).count() == 2
    assert store.count(app) == 1
