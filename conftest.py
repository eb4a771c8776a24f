import pytest

from common.object_store import get_default_object_store
from common.object_store_defaults import InMemoryObjectStore, reset_default_object_store


@pytest.fixture(autouse=True)
def object_store(settings):
    """Give every test a fresh in-memory object store."""

    settings.OBJECT_STORE_BACKEND = "memory"
    reset_default_object_store()
    store = get_default_object_store()
    assert isinstance(store, InMemoryObjectStore)
    yield store
    reset_default_object_store()


@pytest.fixture
def asset_bucket(settings) -> str:
    return settings.ASSET_BUCKET
