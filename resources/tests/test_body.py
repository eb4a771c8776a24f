import uuid
from datetime import datetime, timedelta

import pytest
from django.utils import timezone

from resources.body import process_resource_body, referenced_asset_ids
from resources.context import AssetPayload, RequestContext
from resources.definitions import ResourceDefinition
from resources.errors import ValidationError
from resources.models import Asset
from resources.tests.factories import PET_SCHEMA

FILE = AssetPayload(data=b"png", mime="image/png", filename="rex.png")


def _definition(**extra):
    return ResourceDefinition.model_validate({"schema": PET_SCHEMA, **extra})


def _process(body, files=(), **kwargs):
    context = RequestContext(body=body, files=files)
    return process_resource_body(context, kwargs.pop("definition", _definition()), **kwargs)


def test_placeholder_becomes_prepared_asset():
    processed = _process({"name": "Rex", "photo": 0}, files=(FILE,))

    assert len(processed.prepared) == 1
    prepared = processed.prepared[0]
    assert prepared.payload is FILE
    assert processed.data["photo"] == str(prepared.id)
    assert processed.dropped == []


def test_repeated_placeholder_reuses_one_asset():
    processed = _process(
        {"name": "Rex", "photo": 0, "gallery": [0, "0"]}, files=(FILE,)
    )

    asset_id = str(processed.prepared[0].id)
    assert len(processed.prepared) == 1
    assert processed.data["gallery"] == [asset_id, asset_id]


def test_placeholder_out_of_range_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        _process({"name": "Rex", "gallery": [1]}, files=(FILE,))

    assert excinfo.value.details == {"gallery.0": ["references a missing file"]}


def test_known_asset_resolves_by_id_and_name():
    regular = Asset(id=uuid.uuid4(), name="logo")
    copy = Asset(id=uuid.uuid4(), name="logo", ephemeral=True)

    processed = _process(
        {"name": "Rex", "photo": "logo", "gallery": [str(copy.id)]},
        known_assets=[copy, regular],
    )

    assert processed.data["photo"] == str(regular.id)
    assert processed.data["gallery"] == [str(copy.id)]
    assert processed.prepared == []


def test_numeric_asset_name_wins_over_file_index():
    yearly = Asset(id=uuid.uuid4(), name="2024")

    processed = _process(
        {"name": "Rex", "photo": "2024", "gallery": [0]},
        files=(FILE,),
        known_assets=[yearly],
    )

    assert processed.data["photo"] == str(yearly.id)
    assert processed.data["gallery"] == [str(processed.prepared[0].id)]


def test_unknown_asset_reference_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        _process({"name": "Rex", "photo": "nope"})

    assert excinfo.value.details == {"photo": ["is not a known asset"]}


def test_read_only_keys_are_stripped():
    processed = _process(
        {"name": "Rex", "$created": "x", "$author": {"id": "1"}, "$ephemeral": True}
    )

    assert processed.data == {"name": "Rex"}


def test_schema_errors_are_reported_per_path():
    with pytest.raises(ValidationError) as excinfo:
        _process({"name": 5, "colour": "red"})

    details = excinfo.value.details
    assert excinfo.value.code == "validation_failed"
    assert details["name"] == ["5 is not of type 'string'"]
    assert any("colour" in message for message in details["$"])


def test_missing_required_field_is_reported_at_root():
    with pytest.raises(ValidationError) as excinfo:
        _process({"gallery": []})

    assert excinfo.value.details == {"$": ["'name' is a required property"]}


def test_partial_body_skips_required_fields():
    processed = _process({"$clonable": True}, partial=True)

    assert processed.data == {"$clonable": True}


def test_non_object_body_is_rejected():
    with pytest.raises(ValidationError):
        _process(["not", "an", "object"])


def test_dropped_lists_current_assets_no_longer_referenced():
    kept, dropped = uuid.uuid4(), uuid.uuid4()
    known = [Asset(id=kept), Asset(id=dropped)]

    processed = _process(
        {"name": "Rex", "photo": str(kept)},
        current_asset_ids=[kept, dropped],
        known_assets=known,
    )

    assert processed.dropped == [str(dropped)]


def test_expires_is_parsed_into_a_datetime():
    future = (timezone.now() + timedelta(days=1)).replace(microsecond=0)

    processed = _process({"name": "Rex", "$expires": future.isoformat()})

    assert processed.data["$expires"] == future


@pytest.mark.parametrize(
    ("value", "message"),
    [
        ("yesterday", "is not a valid date-time"),
        ("2000-01-01T00:00:00Z", "has already passed"),
    ],
)
def test_invalid_expires_is_rejected(value, message):
    with pytest.raises(ValidationError) as excinfo:
        _process({"name": "Rex", "$expires": value})

    assert excinfo.value.details == {"$expires": [message]}


def test_expires_falls_back_to_hint_then_definition():
    hint = timezone.now() + timedelta(hours=2)

    hinted = _process({"name": "Rex"}, expires_hint=hint)
    defaulted = _process({"name": "Rex"}, definition=_definition(expires="1d"))
    plain = _process({"name": "Rex"})

    assert hinted.data["$expires"] == hint
    assert isinstance(defaulted.data["$expires"], datetime)
    assert defaulted.data["$expires"] > timezone.now() + timedelta(hours=23)
    assert "$expires" not in plain.data


def test_referenced_asset_ids_walks_binary_properties():
    data = {"name": "logo", "photo": "a", "gallery": ["b", "c"]}

    assert referenced_asset_ids(PET_SCHEMA, data) == {"a", "b", "c"}
