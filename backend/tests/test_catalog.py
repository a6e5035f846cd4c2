"""
Integration Tests: Metadata Catalog

Runs against a real SQLite database so foreign keys and transactions behave
as in production.
"""

import uuid
from datetime import timezone

import pytest

from fileshare.errors import CycleDetected, NotFound, ParentNotFound
from fileshare.models import FileRecord, storage_key_for


def _record(parent_id=None, name="f.txt", size=3):
    file_id = uuid.uuid4()
    return FileRecord(
        id=file_id,
        original_name=name,
        size_bytes=size,
        storage_key=storage_key_for(file_id),
        parent_directory_id=parent_id,
    )


@pytest.fixture
async def tree(catalog):
    """
    root_a
    ├── child
    │   └── grandchild
    └── sibling
    root_b
    """
    root_a = await catalog.create_directory("root_a")
    child = await catalog.create_directory("child", root_a.id)
    grandchild = await catalog.create_directory("grandchild", child.id)
    sibling = await catalog.create_directory("sibling", root_a.id)
    root_b = await catalog.create_directory("root_b")
    return {
        "root_a": root_a, "child": child, "grandchild": grandchild,
        "sibling": sibling, "root_b": root_b,
    }


class TestDirectories:

    @pytest.mark.integration
    async def test_create_and_get(self, catalog):
        created = await catalog.create_directory("docs")

        fetched = await catalog.get_directory(created.id)

        assert fetched.name == "docs"
        assert fetched.parent_id is None
        assert fetched.created_at is not None

    @pytest.mark.integration
    async def test_timestamps_read_back_as_utc(self, catalog):
        created = await catalog.create_directory("docs")
        inserted = await catalog.insert_file(_record(created.id))

        fetched = await catalog.get_directory(created.id)
        fetched_file = await catalog.get_file(inserted.id)

        assert fetched.created_at.tzinfo == timezone.utc
        assert fetched.created_at == created.created_at
        assert fetched.updated_at.tzinfo == timezone.utc
        assert fetched_file.created_at.tzinfo == timezone.utc

    @pytest.mark.integration
    async def test_create_under_missing_parent(self, catalog):
        with pytest.raises(ParentNotFound):
            await catalog.create_directory("orphan", uuid.uuid4())

    @pytest.mark.integration
    async def test_get_missing(self, catalog):
        with pytest.raises(NotFound):
            await catalog.get_directory(uuid.uuid4())

    @pytest.mark.integration
    async def test_rename_bumps_updated_at(self, catalog):
        created = await catalog.create_directory("old")
        before = (await catalog.get_directory(created.id)).updated_at

        await catalog.rename_directory(created.id, "new")
        after = await catalog.get_directory(created.id)

        assert after.name == "new"
        assert after.updated_at > before


class TestListing:

    @pytest.mark.integration
    async def test_root_listing_newest_first(self, catalog):
        first = await catalog.create_directory("first")
        second = await catalog.create_directory("second")
        f1 = await catalog.insert_file(_record())
        f2 = await catalog.insert_file(_record())

        dirs, files = await catalog.list_children(None)

        assert [d.id for d in dirs] == [second.id, first.id]
        assert [f.id for f in files] == [f2.id, f1.id]

    @pytest.mark.integration
    async def test_only_immediate_children(self, catalog, tree):
        await catalog.insert_file(_record(tree["grandchild"].id))
        direct = await catalog.insert_file(_record(tree["root_a"].id))

        dirs, files = await catalog.list_children(tree["root_a"].id)

        assert {d.id for d in dirs} == {tree["child"].id, tree["sibling"].id}
        assert [f.id for f in files] == [direct.id]

    @pytest.mark.integration
    async def test_listing_missing_directory(self, catalog):
        with pytest.raises(NotFound):
            await catalog.list_children(uuid.uuid4())

    @pytest.mark.integration
    async def test_directory_stats(self, catalog, tree):
        await catalog.insert_file(_record(tree["child"].id, size=10))
        await catalog.insert_file(_record(tree["child"].id, size=5))
        await catalog.insert_file(_record(tree["grandchild"].id, size=100))

        stats = await catalog.directory_stats([tree["child"].id, tree["sibling"].id])

        assert stats[tree["child"].id] == (2, 15)
        assert stats[tree["sibling"].id] == (0, 0)


class TestSubtree:

    @pytest.mark.integration
    async def test_subtree_ids(self, catalog, tree):
        ids = await catalog.subtree_ids(tree["root_a"].id)

        assert ids == {
            tree["root_a"].id, tree["child"].id, tree["grandchild"].id, tree["sibling"].id,
        }

    @pytest.mark.integration
    async def test_leaf_subtree_is_itself(self, catalog, tree):
        assert await catalog.subtree_ids(tree["grandchild"].id) == {tree["grandchild"].id}

    @pytest.mark.integration
    async def test_files_under(self, catalog, tree):
        inside = await catalog.insert_file(_record(tree["grandchild"].id))
        await catalog.insert_file(_record(tree["root_b"].id))

        files = await catalog.files_under({tree["child"].id, tree["grandchild"].id})

        assert [f.id for f in files] == [inside.id]


class TestCascadeDelete:

    @pytest.mark.integration
    async def test_removes_subtree_and_its_files_only(self, catalog, tree):
        doomed = [
            await catalog.insert_file(_record(tree["root_a"].id)),
            await catalog.insert_file(_record(tree["grandchild"].id)),
            await catalog.insert_file(_record(tree["sibling"].id)),
        ]
        survivor_root = await catalog.insert_file(_record(None))
        survivor_b = await catalog.insert_file(_record(tree["root_b"].id))

        removed = await catalog.delete_directory_cascade(tree["root_a"].id)

        assert {r.storage_key for r in removed} == {r.storage_key for r in doomed}
        for name in ("root_a", "child", "grandchild", "sibling"):
            with pytest.raises(NotFound):
                await catalog.get_directory(tree[name].id)
        for record in doomed:
            with pytest.raises(NotFound):
                await catalog.get_file(record.id)
        assert (await catalog.get_file(survivor_root.id)).id == survivor_root.id
        assert (await catalog.get_file(survivor_b.id)).id == survivor_b.id
        assert await catalog.live_storage_keys() == {survivor_root.storage_key, survivor_b.storage_key}

    @pytest.mark.integration
    async def test_missing_directory(self, catalog):
        with pytest.raises(NotFound):
            await catalog.delete_directory_cascade(uuid.uuid4())


class TestMoves:

    @pytest.mark.integration
    async def test_move_directory(self, catalog, tree):
        moved = await catalog.move_directory(tree["child"].id, tree["root_b"].id)

        assert moved.parent_id == tree["root_b"].id
        assert await catalog.subtree_ids(tree["root_b"].id) == {
            tree["root_b"].id, tree["child"].id, tree["grandchild"].id,
        }

    @pytest.mark.integration
    async def test_move_to_root(self, catalog, tree):
        moved = await catalog.move_directory(tree["child"].id, None)

        assert moved.parent_id is None

    @pytest.mark.integration
    @pytest.mark.parametrize("target", ["root_a", "child", "grandchild"])
    async def test_move_into_own_subtree_is_rejected(self, catalog, tree, target):
        with pytest.raises(CycleDetected):
            await catalog.move_directory(tree["root_a"].id, tree[target].id)

        unchanged = await catalog.get_directory(tree["root_a"].id)
        assert unchanged.parent_id is None
        assert (await catalog.get_directory(tree["child"].id)).parent_id == tree["root_a"].id

    @pytest.mark.integration
    async def test_move_under_missing_parent(self, catalog, tree):
        with pytest.raises(ParentNotFound):
            await catalog.move_directory(tree["child"].id, uuid.uuid4())

    @pytest.mark.integration
    async def test_move_missing_directory(self, catalog, tree):
        with pytest.raises(NotFound):
            await catalog.move_directory(uuid.uuid4(), tree["root_b"].id)

    @pytest.mark.integration
    async def test_move_to_current_parent_is_noop(self, catalog, tree):
        before = await catalog.get_directory(tree["child"].id)

        result = await catalog.move_directory(tree["child"].id, tree["root_a"].id)
        after = await catalog.get_directory(tree["child"].id)

        assert result.parent_id == tree["root_a"].id
        assert after.updated_at == before.updated_at

    @pytest.mark.integration
    async def test_move_file(self, catalog, tree):
        record = await catalog.insert_file(_record(tree["child"].id))

        moved = await catalog.move_file(record.id, tree["root_b"].id)

        assert moved.parent_directory_id == tree["root_b"].id
        assert (await catalog.get_file(record.id)).parent_directory_id == tree["root_b"].id

    @pytest.mark.integration
    async def test_move_file_errors(self, catalog, tree):
        record = await catalog.insert_file(_record(None))

        with pytest.raises(ParentNotFound):
            await catalog.move_file(record.id, uuid.uuid4())
        with pytest.raises(NotFound):
            await catalog.move_file(uuid.uuid4(), None)


class TestFiles:

    @pytest.mark.integration
    async def test_insert_under_missing_parent(self, catalog):
        with pytest.raises(ParentNotFound):
            await catalog.insert_file(_record(uuid.uuid4()))

    @pytest.mark.integration
    async def test_delete_file_returns_storage_key(self, catalog):
        record = await catalog.insert_file(_record())

        key = await catalog.delete_file(record.id)

        assert key == record.storage_key
        with pytest.raises(NotFound):
            await catalog.get_file(record.id)
        with pytest.raises(NotFound):
            await catalog.delete_file(record.id)

    @pytest.mark.integration
    async def test_persisted_column_names(self, catalog, engine):
        from sqlalchemy import inspect

        async with engine.connect() as conn:
            columns = await conn.run_sync(
                lambda sync_conn: {c["name"] for c in inspect(sync_conn).get_columns("files")}
            )

        assert {
            "id", "original_filename", "file_size", "mime_type", "storage_path",
            "uploaded_at", "description", "parent_directory_id",
        } <= columns
