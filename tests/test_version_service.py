"""Tests for page versions: snapshots, history and key-based restore."""

from uuid import uuid4

import pytest

from pagecraft.db.services import node_service, page_service, version_service
from pagecraft.lib.errors import ConflictError, InvalidError, NotFoundError
from pagecraft.lib.hooks import AFTER_VERSION_CREATE, AFTER_VERSION_RESTORE, hooks
from pagecraft.lib.tree import flatten


def structure(forest):
    """Key, parent, order and placement of every node, in pre-order."""
    return [
        (r.key, r.parent_key, r.sort_order, r.column, r.column_span, r.row, r.row_span)
        for r in flatten(forest.roots)
    ]


async def live_structure(db_session, page_id):
    return structure(await node_service.load_forest(db_session, page_id))


class TestCreateVersion:
    @pytest.mark.asyncio
    async def test_numbers_start_at_one_and_increase(self, db_session, page_id):
        v1 = await version_service.create_version(db_session, page_id, change_notes="first")
        v2 = await version_service.create_version(db_session, page_id)
        assert (v1.version_number, v2.version_number) == (1, 2)
        assert v1.change_notes == "first"
        assert v1.is_published is False

    @pytest.mark.asyncio
    async def test_snapshot_holds_full_forest(self, db_session, page_id, add_node):
        root = await add_node(name="Hero")
        child = await add_node("text", parent_key=root, properties={"text": "hi"})

        version = await version_service.create_version(db_session, page_id, user_id="author")

        snapshot = version.snapshot
        assert snapshot["format"] == 1
        assert snapshot["page"]["slug"] == "home"
        [hero] = snapshot["components"]
        assert hero["key"] == root and hero["name"] == "Hero"
        assert hero["children"][0]["key"] == child
        assert hero["children"][0]["properties"] == {"text": "hi"}
        assert version.created_by == "author"

    @pytest.mark.asyncio
    async def test_snapshot_matches_live_forest(self, db_session, page_id, add_node):
        a = await add_node()
        await add_node(parent_key=a)
        await add_node()
        version = await version_service.create_version(db_session, page_id)
        assert structure(version_service.version_forest(version)) == await live_structure(db_session, page_id)

    @pytest.mark.asyncio
    async def test_deleted_nodes_not_snapshotted(self, db_session, page_id, add_node):
        a = await add_node()
        b = await add_node()
        await node_service.delete_node(db_session, page_id, a)
        version = await version_service.create_version(db_session, page_id)
        assert [c["key"] for c in version.snapshot["components"]] == [b]

    @pytest.mark.asyncio
    async def test_publish_stamps_page(self, db_session, page_id):
        version = await version_service.create_version(db_session, page_id, publish=True, user_id="editor")
        page = await page_service.get_live_page(db_session, page_id)

        assert version.is_published
        assert version.published_at is not None
        assert page.published_by == "editor"
        assert page.published_at is not None

    @pytest.mark.asyncio
    async def test_stale_token(self, db_session, page_id, add_node):
        page = await page_service.get_live_page(db_session, page_id)
        token = page_service.concurrency_token(page)
        await add_node()
        with pytest.raises(ConflictError):
            await version_service.create_version(db_session, page_id, expected_token=token)

    @pytest.mark.asyncio
    async def test_versions_are_immutable(self, db_session, page_id):
        version = await version_service.create_version(db_session, page_id)
        version.change_notes = "rewritten"
        with pytest.raises(RuntimeError):
            await db_session.flush()
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_hook(self, db_session, page_id):
        seen = []
        hooks.add_action(AFTER_VERSION_CREATE, lambda page, version: seen.append(version.version_number))
        await version_service.create_version(db_session, page_id)
        assert seen == [1]


class TestHistory:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, db_session, page_id):
        for _ in range(3):
            await version_service.create_version(db_session, page_id)
        versions = await version_service.list_versions(db_session, page_id)
        assert [v.version_number for v in versions] == [3, 2, 1]
        limited = await version_service.list_versions(db_session, page_id, limit=2)
        assert [v.version_number for v in limited] == [3, 2]
        assert await version_service.get_version_count(db_session, page_id) == 3

    @pytest.mark.asyncio
    async def test_get_version(self, db_session, page_id):
        await version_service.create_version(db_session, page_id, change_notes="one")
        assert (await version_service.get_version(db_session, page_id, 1)).change_notes == "one"
        with pytest.raises(NotFoundError):
            await version_service.get_version(db_session, page_id, 2)

    @pytest.mark.asyncio
    async def test_versions_scoped_to_page(self, db_session, page_id):
        other = await page_service.create_page(db_session, slug="other", title="Other")
        await version_service.create_version(db_session, other.id)
        assert await version_service.list_versions(db_session, page_id) == []
        with pytest.raises(NotFoundError):
            await version_service.get_version(db_session, page_id, 1)


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_then_snapshot_equals_stored_forest(self, db_session, page_id, add_node):
        hero = await add_node()
        title = await add_node("text", parent_key=hero)
        footer = await add_node()
        v1 = await version_service.create_version(db_session, page_id)
        stored = structure(version_service.version_forest(v1))

        # Edit heavily: move, add, delete, restyle
        await node_service.move_node(db_session, page_id, title, index=0)
        added = await add_node(parent_key=footer)
        await node_service.delete_node(db_session, page_id, hero)
        await node_service.update_node(db_session, page_id, footer, {"column": 5, "row_span": 3})
        assert await live_structure(db_session, page_id) != stored

        result = await version_service.restore_version(db_session, page_id, 1)

        assert structure(result.forest) == stored
        after = await version_service.create_version(db_session, page_id)
        assert structure(version_service.version_forest(after)) == stored
        assert added in result.changes.deleted
        assert hero in result.changes.revived

    @pytest.mark.asyncio
    async def test_numbering_never_rewinds(self, db_session, page_id, add_node):
        await add_node()
        await version_service.create_version(db_session, page_id)
        result = await version_service.restore_version(db_session, page_id, 1)
        await version_service.create_version(db_session, page_id)

        assert result.version.version_number == 2
        assert result.version.change_notes == "Restored from version 1"
        numbers = [v.version_number for v in await version_service.list_versions(db_session, page_id)]
        assert numbers == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_matched_nodes_keep_storage_identity(self, db_session, page_id, add_node):
        a = await add_node()
        b = await add_node(parent_key=a)
        ids = {r.key: r.id for r in await node_service.load_components(db_session, page_id)}
        await version_service.create_version(db_session, page_id)

        await node_service.move_node(db_session, page_id, b)
        await node_service.update_node(db_session, page_id, a, {"styles": {"color": "red"}})
        await version_service.restore_version(db_session, page_id, 1)

        rows = {r.key: r for r in await node_service.load_components(db_session, page_id)}
        assert {k: r.id for k, r in rows.items()} == ids
        assert rows[b].parent_key == a
        assert rows[a].styles == {}

    @pytest.mark.asyncio
    async def test_nodes_added_since_are_soft_deleted(self, db_session, page_id, add_node):
        a = await add_node()
        await version_service.create_version(db_session, page_id)
        newer = await add_node(parent_key=a)
        newest = await add_node(parent_key=newer)

        result = await version_service.restore_version(db_session, page_id, 1)

        assert set(result.changes.deleted) == {newer, newest}
        rows = {r.key: r for r in await node_service.load_components(db_session, page_id, include_deleted=True)}
        assert rows[newer].is_deleted and rows[newest].is_deleted
        assert not rows[a].is_deleted

    @pytest.mark.asyncio
    async def test_soft_deleted_nodes_revived_in_place(self, db_session, page_id, add_node):
        await version_service.create_version(db_session, page_id)
        a = await add_node()
        original_id = (await node_service.get_node(db_session, page_id, a)).id
        v2 = await version_service.create_version(db_session, page_id)
        await node_service.delete_node(db_session, page_id, a)

        result = await version_service.restore_version(db_session, page_id, v2.version_number)

        assert [n.key for n in result.forest.roots] == [a]
        assert result.changes.revived == [a]
        assert (await node_service.get_node(db_session, page_id, a)).id == original_id

    @pytest.mark.asyncio
    async def test_missing_keys_are_created(self, db_session, page_id, add_node):
        a = await add_node()
        v1 = await version_service.create_version(db_session, page_id)
        await node_service.delete_node(db_session, page_id, a)

        other = await page_service.create_page(db_session, slug="copy", title="Copy")
        records = version_service.snapshot_records(v1.snapshot)
        changes = await version_service.reconcile_nodes(db_session, other.id, records)
        await db_session.commit()

        assert changes.created == [a]
        assert [n.key for n in await node_service.list_nodes(db_session, other.id)] == [a]

    @pytest.mark.asyncio
    async def test_restore_ignores_locks(self, db_session, page_id, add_node):
        a = await add_node()
        await version_service.create_version(db_session, page_id)
        b = await add_node()
        await node_service.update_node(db_session, page_id, b, {"is_locked": True})

        result = await version_service.restore_version(db_session, page_id, 1)
        assert [n.key for n in result.forest.roots] == [a]

    @pytest.mark.asyncio
    async def test_restore_brings_back_page_title(self, db_session, page_id):
        await version_service.create_version(db_session, page_id)
        await page_service.update_page(db_session, page_id, title="Renamed")
        await version_service.restore_version(db_session, page_id, 1)
        page = await page_service.get_live_page(db_session, page_id)
        assert page.title == "Home"

    @pytest.mark.asyncio
    async def test_unknown_version(self, db_session, page_id):
        with pytest.raises(NotFoundError):
            await version_service.restore_version(db_session, page_id, 7)

    @pytest.mark.asyncio
    async def test_unknown_page(self, db_session):
        with pytest.raises(NotFoundError):
            await version_service.restore_version(db_session, uuid4(), 1)

    @pytest.mark.asyncio
    async def test_restore_is_all_or_nothing(self, db_session, page_id, add_node):
        a = await add_node()
        await version_service.create_version(db_session, page_id)
        b = await add_node()
        before = await live_structure(db_session, page_id)

        def explode(page, target, version):
            raise RuntimeError("restore listener failed")

        hooks.add_action(AFTER_VERSION_RESTORE, explode)
        with pytest.raises(RuntimeError):
            await version_service.restore_version(db_session, page_id, 1)

        assert await live_structure(db_session, page_id) == before
        assert await version_service.get_version_count(db_session, page_id) == 1
        assert {n.key for n in await node_service.list_nodes(db_session, page_id)} == {a, b}

    @pytest.mark.asyncio
    async def test_stale_token(self, db_session, page_id, add_node):
        await version_service.create_version(db_session, page_id)
        with pytest.raises(ConflictError):
            await version_service.restore_version(db_session, page_id, 1, expected_token="2001-01-01T00:00:00+00:00")


class TestReconcileValidation:
    @pytest.mark.asyncio
    async def test_duplicate_keys(self, db_session, page_id):
        from pagecraft.lib.tree import NodeRecord

        records = [NodeRecord(key="a", type="text"), NodeRecord(key="a", type="text")]
        with pytest.raises(InvalidError):
            await version_service.reconcile_nodes(db_session, page_id, records)

    @pytest.mark.asyncio
    async def test_child_before_parent(self, db_session, page_id):
        from pagecraft.lib.tree import NodeRecord

        records = [NodeRecord(key="b", type="text", parent_key="a"), NodeRecord(key="a", type="section")]
        with pytest.raises(InvalidError):
            await version_service.reconcile_nodes(db_session, page_id, records)

    def test_unknown_snapshot_format(self):
        with pytest.raises(InvalidError):
            version_service.snapshot_records({"format": 99, "components": []})
