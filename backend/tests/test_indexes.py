"""
Tests for the index and TTL catalogue.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from services.maintenance.indexes import (
    INDEX_CATALOGUE, TTL_CATALOGUE, IndexManager, IndexSpec, IndexStatus,
)


class FakeIndexCollection:
    """Collection double keeping created index names in index_information()."""

    def __init__(self, fail_on=None):
        self.indexes = {"_id_": {"key": [("_id", 1)]}}
        self.fail_on = fail_on or {}
        self.index_information = AsyncMock(side_effect=lambda: dict(self.indexes))
        self.create_index = AsyncMock(side_effect=self._create_index)

    def _create_index(self, keys, **options):
        name = options["name"]
        if name in self.fail_on:
            raise self.fail_on[name]
        self.indexes[name] = {"key": keys, **options}
        return name


def make_db(collections, existing_collections=()):
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections.setdefault(name, FakeIndexCollection())
    db.list_collection_names = AsyncMock(
        side_effect=lambda filter=None: [n for n in existing_collections if n == filter["name"]]
    )
    return db


USER_INDEXES = {
    "users": [
        IndexSpec("users", (("email", 1),), "idx_users_email", unique=True),
        IndexSpec("users", (("createdAt", 1),), "idx_users_created"),
    ],
}


class TestIndexSpec:
    """Tests for IndexSpec options."""

    def test_options(self):
        spec = IndexSpec("profiles", (("phone", 1),), "idx_profiles_phone", sparse=True)
        assert spec.options() == {"name": "idx_profiles_phone", "sparse": True}
        assert spec.is_ttl is False

    def test_ttl_options(self):
        spec = TTL_CATALOGUE[2]
        assert spec.collection == "emailverifications"
        assert spec.options()["expireAfterSeconds"] == 86400

    def test_text_index_matches_server_form(self):
        spec = IndexSpec("menus", (("name", "text"), ("description", "text")), "idx_menus_text_search")
        info = {
            "key": [("_fts", "text"), ("_ftsx", 1)],
            "weights": {"description": 1, "name": 1},
            "v": 2,
        }
        assert spec.matches(info) is True
        assert spec.matches(dict(info, weights={"name": 1})) is False

    def test_ttl_expiry_must_match(self):
        spec = TTL_CATALOGUE[3]
        info = {"key": [("createdAt", 1)], "expireAfterSeconds": 30 * 24 * 60 * 60}
        assert spec.matches(info) is False
        assert spec.matches(dict(info, expireAfterSeconds=90 * 24 * 60 * 60)) is True

    def test_catalogue_names_unique(self):
        names = [spec.name for specs in INDEX_CATALOGUE.values() for spec in specs]
        assert len(names) == len(set(names))


class TestIndexManager:
    """Tests for ordinary index creation."""

    @pytest.mark.asyncio
    async def test_create_all(self):
        collections = {}
        manager = IndexManager(make_db(collections), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert [r.status for r in results] == [IndexStatus.CREATED, IndexStatus.CREATED]
        users = collections["users"]
        users.create_index.assert_any_await([("email", 1)], name="idx_users_email", unique=True)

    @pytest.mark.asyncio
    async def test_second_run_reports_exists(self):
        """Creating the same named index twice is never an error."""
        collections = {}
        manager = IndexManager(make_db(collections), catalogue=USER_INDEXES)

        await manager.create_all()
        results = await manager.create_all()

        assert [r.status for r in results] == [IndexStatus.EXISTS, IndexStatus.EXISTS]
        assert collections["users"].create_index.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [85, 86])
    async def test_server_conflict_is_error(self, code):
        """IndexOptionsConflict / IndexKeySpecsConflict mean the definition differs."""
        conflict = OperationFailure("Index already exists with different options", code=code)
        collections = {"users": FakeIndexCollection(fail_on={"idx_users_email": conflict})}
        manager = IndexManager(make_db(collections), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert results[0].status == IndexStatus.ERROR
        assert "Conflicting index definition" in results[0].error
        assert results[1].status == IndexStatus.CREATED

    @pytest.mark.asyncio
    async def test_same_name_different_options_is_error(self):
        """A non-unique idx_users_email is not the catalogued unique index."""
        users = FakeIndexCollection()
        users.indexes["idx_users_email"] = {"key": [("email", 1)], "v": 2}
        manager = IndexManager(make_db({"users": users}), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert results[0].status == IndexStatus.ERROR
        assert "different definition" in results[0].error
        assert results[1].status == IndexStatus.CREATED
        assert users.create_index.await_count == 1

    @pytest.mark.asyncio
    async def test_same_name_different_keys_is_error(self):
        users = FakeIndexCollection()
        users.indexes["idx_users_created"] = {"key": [("createdAt", -1)], "v": 2}
        manager = IndexManager(make_db({"users": users}), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert results[1].status == IndexStatus.ERROR

    @pytest.mark.asyncio
    async def test_identical_server_definition_exists(self):
        """index_information() reports key values as floats and includes extra fields."""
        users = FakeIndexCollection()
        users.indexes["idx_users_email"] = {"key": [("email", 1.0)], "unique": True, "v": 2}
        manager = IndexManager(make_db({"users": users}), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert results[0].status == IndexStatus.EXISTS

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        failure = OperationFailure("E11000 duplicate key error", code=11000)
        collections = {"users": FakeIndexCollection(fail_on={"idx_users_email": failure})}
        manager = IndexManager(make_db(collections), catalogue=USER_INDEXES)

        results = await manager.create_all()

        assert results[0].status == IndexStatus.ERROR
        assert "duplicate key" in results[0].error
        assert results[1].status == IndexStatus.CREATED
        assert results[0].to_dict()["error"] == results[0].error

    @pytest.mark.asyncio
    async def test_unreachable_collection_marks_its_indexes(self):
        users = FakeIndexCollection()
        users.index_information = AsyncMock(side_effect=ServerSelectionTimeoutError("timed out"))
        catalogue = dict(USER_INDEXES, menus=[IndexSpec("menus", (("restaurantId", 1),), "idx_menus_restaurant")])
        manager = IndexManager(make_db({"users": users}), catalogue=catalogue)

        results = await manager.create_all()

        assert [r.status for r in results] == [IndexStatus.ERROR, IndexStatus.ERROR, IndexStatus.CREATED]


class TestTTLIndexes:
    """Tests for TTL index creation."""

    @pytest.mark.asyncio
    async def test_missing_collections_skipped(self):
        collections = {}
        manager = IndexManager(make_db(collections, existing_collections=["sessions"]))

        results = await manager.create_ttl_indexes()

        statuses = {r.collection: r.status for r in results}
        assert statuses == {
            "sessions": IndexStatus.CREATED,
            "passwordresets": IndexStatus.SKIPPED,
            "emailverifications": IndexStatus.SKIPPED,
            "auditlogs": IndexStatus.SKIPPED,
        }
        collections["sessions"].create_index.assert_awaited_once_with(
            [("expiresAt", 1)], name="idx_sessions_ttl", expireAfterSeconds=0
        )
        assert "passwordresets" not in collections

    @pytest.mark.asyncio
    async def test_ttl_is_idempotent(self):
        collections = {}
        db = make_db(collections, existing_collections=["auditlogs"])
        manager = IndexManager(db)

        await manager.create_ttl_indexes()
        results = await manager.create_ttl_indexes()

        auditlogs = [r for r in results if r.collection == "auditlogs"][0]
        assert auditlogs.status == IndexStatus.EXISTS
