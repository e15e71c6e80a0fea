"""
Unit tests for the SQLite resource store.
"""

import asyncio
import sqlite3

import pytest
import pytest_asyncio

from infra_common.models import Resource
from infra_persistence.sqlite_resources import SQLiteResourceStore


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteResourceStore(str(tmp_path / "resources.db"))
    await s.initialize()

    yield s

    await s.close()


@pytest.mark.asyncio
async def test_create_and_get(store):
    await store.create_resource(
        Resource(id="res-1", name="web", type="terraform", config={"a": 1})
    )

    resource = await store.get_resource("res-1")

    assert resource.name == "web"
    assert resource.status == "pending"
    assert resource.config == {"a": 1}
    assert resource.updated_at is not None


@pytest.mark.asyncio
async def test_duplicate_id_rejected(store):
    await store.create_resource(Resource(id="res-1", name="web", type="terraform"))

    with pytest.raises(sqlite3.IntegrityError):
        await store.create_resource(Resource(id="res-1", name="other", type="docker"))


@pytest.mark.asyncio
async def test_list_resources(store):
    await store.create_resource(Resource(id="b", name="b", type="docker"))
    await store.create_resource(Resource(id="a", name="a", type="docker"))

    assert [r.id for r in await store.list_resources()] == ["a", "b"]


@pytest.mark.asyncio
async def test_update_status_merges_config(store):
    await store.create_resource(
        Resource(id="res-1", name="web", type="terraform", config={"a": 1, "b": 2})
    )

    updated = await store.update_status("res-1", "running", {"b": 3, "c": 4})

    assert updated.status == "running"
    assert updated.config == {"a": 1, "b": 3, "c": 4}
    stored = await store.get_resource("res-1")
    assert stored.config == {"a": 1, "b": 3, "c": 4}


@pytest.mark.asyncio
async def test_update_missing_resource_raises(store):
    with pytest.raises(KeyError):
        await store.update_status("missing", "running", {"x": 1})

    # The store is still usable after the rolled back update
    await store.create_resource(Resource(id="res-1", name="web", type="docker"))
    assert (await store.update_status("res-1", "failed", {})).status == "failed"


@pytest.mark.asyncio
async def test_concurrent_updates_keep_every_key(store):
    await store.create_resource(Resource(id="res-1", name="web", type="terraform"))

    await asyncio.gather(
        *(store.update_status("res-1", "running", {f"key{i}": i}) for i in range(10))
    )

    config = (await store.get_resource("res-1")).config
    assert config == {f"key{i}": i for i in range(10)}


@pytest.mark.asyncio
async def test_concurrent_updates_to_different_resources(store):
    for i in range(5):
        await store.create_resource(
            Resource(id=f"res-{i}", name=f"web-{i}", type="terraform", config={"a": 1})
        )

    results = await asyncio.gather(
        *(
            store.update_status(f"res-{i}", "running", {"lastAutomation": i})
            for i in range(5)
        ),
        store.create_resource(Resource(id="res-new", name="new", type="docker")),
    )

    assert [r.id for r in results[:5]] == [f"res-{i}" for i in range(5)]
    for i in range(5):
        resource = await store.get_resource(f"res-{i}")
        assert resource.status == "running"
        assert resource.config == {"a": 1, "lastAutomation": i}
    assert await store.get_resource("res-new") is not None


@pytest.mark.asyncio
async def test_updates_from_separate_connections(tmp_path):
    db_path = str(tmp_path / "resources.db")
    stores = [SQLiteResourceStore(db_path) for _ in range(2)]
    for s in stores:
        await s.initialize()

    try:
        await stores[0].create_resource(Resource(id="res-1", name="web", type="docker"))

        await asyncio.gather(
            stores[0].update_status("res-1", "running", {"first": True}),
            stores[1].update_status("res-1", "running", {"second": True}),
        )

        config = (await stores[0].get_resource("res-1")).config
        assert config == {"first": True, "second": True}
    finally:
        for s in stores:
            await s.close()
