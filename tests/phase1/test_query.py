"""Contract and integration tests for fetching trees and lazy navigation."""

import pytest

from nestedset.builder import build_tree
from nestedset.errors import (
    IntegrityViolationError,
    InvalidOperationError,
    NodeNotFoundError,
    TreeNotFoundError,
)
from nestedset.manager import NestedSetManager
from tests.fixtures import Category, create_sample_tree, names


async def _shape(root) -> dict[str, list[str]]:
    """name -> child names, for every node under root."""
    shape = {}
    for node in [root, *await root.descendants()]:
        shape[node.info.name] = names(await node.children())
    return shape


class TestFetchTree:
    async def test_fetch_tree_links_sample(self, manager, storage):
        """Fetching from a fresh manager rebuilds the sample structure."""
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)

        root = await fresh.fetch_tree(Category, nodes["root"].root_id)

        assert root.info.name == "root"
        assert (root.left, root.right) == (1, 10)
        assert names(await root.children()) == ["A", "B", "C"]
        b = (await root.children())[1]
        d = (await b.children())[0]
        assert names(await d.ancestors()) == ["root", "B"]
        assert all(node.is_linked for node in fresh.get_nodes())

    async def test_fetch_tree_without_root_id_single_tree(self, manager):
        await create_sample_tree(manager)
        root = await manager.fetch_tree(Category)
        assert root.info.name == "root"

    async def test_fetch_tree_without_root_id_on_forest(self, manager):
        await create_sample_tree(manager)
        await create_sample_tree(manager)
        with pytest.raises(InvalidOperationError):
            await manager.fetch_tree(Category)

    async def test_fetch_tree_picks_requested_root(self, manager):
        await create_sample_tree(manager)
        second = await manager.create_root(Category(name="other"))
        root = await manager.fetch_tree(Category, second.root_id)
        assert root is second
        assert await root.children() == []

    async def test_missing_tree_not_found(self, manager):
        await create_sample_tree(manager)
        with pytest.raises(TreeNotFoundError) as exc_info:
            await manager.fetch_tree(Category, 99)
        assert exc_info.value.root_id == 99

    async def test_empty_table_not_found(self, manager):
        with pytest.raises(TreeNotFoundError):
            await manager.fetch_tree(Category)

    async def test_reads_leave_fresh_database_untouched(self, manager, db):
        with pytest.raises(TreeNotFoundError):
            await manager.fetch_tree(Category, 1)
        assert await manager.fetch_tree_as_list(Category) == []
        with pytest.raises(NodeNotFoundError):
            await manager.fetch_node(Category, "x")
        assert not await db.has_table(Category.table_name)

    async def test_broken_row_is_integrity_violation(self, manager, db):
        nodes = await create_sample_tree(manager)
        await db.execute("UPDATE categories SET rgt = lft WHERE id = ?", (nodes["B"].id,))
        with pytest.raises(IntegrityViolationError):
            await NestedSetManager(manager.storage).fetch_tree(Category, 1)

    async def test_fetch_node(self, manager, storage):
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        node = await fresh.fetch_node(Category, nodes["D"].id)
        assert node.info.name == "D"
        assert not node.is_linked
        with pytest.raises(NodeNotFoundError):
            await fresh.fetch_node(Category, "missing")


class TestFetchTreeAsList:
    async def test_list_ordered_and_unlinked(self, manager, storage):
        await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        nodes = await fresh.fetch_tree_as_list(Category, 1)
        assert names(nodes) == ["root", "A", "B", "D", "C"]
        assert not any(node.is_linked for node in nodes)

    async def test_max_level_filters(self, manager):
        await create_sample_tree(manager)
        nodes = await manager.fetch_tree_as_list(Category, 1, max_level=1)
        assert names(nodes) == ["root", "A", "B", "C"]

    async def test_build_of_truncated_list_resolves_lower_levels(self, manager, storage):
        """Building a max_level list leaves cut-off children to range queries."""
        await create_sample_tree(manager)
        fresh = NestedSetManager(storage)

        [root] = build_tree(await fresh.fetch_tree_as_list(Category, 1, max_level=1))
        b = (await root.children())[1]

        assert names(await b.children()) == ["D"]
        assert names(await b.descendants()) == ["D"]
        assert names(await root.descendants()) == ["A", "B", "D", "C"]

    async def test_build_of_list_matches_fetch_tree(self, manager, storage):
        """build_tree(fetch_tree_as_list(...)) has the same shape as fetch_tree."""
        await create_sample_tree(manager)
        listed = NestedSetManager(storage)
        fetched = NestedSetManager(storage)

        [built_root] = build_tree(await listed.fetch_tree_as_list(Category, 1))
        fetched_root = await fetched.fetch_tree(Category, 1)

        assert await _shape(built_root) == await _shape(fetched_root)


class TestTreeProperties:
    async def test_ranges_nest_and_siblings_are_ordered(self, manager):
        await create_sample_tree(manager)
        root = await manager.fetch_tree(Category, 1)
        for node in [root, *await root.descendants()]:
            assert node.left < node.right
            children = await node.children()
            for child in children:
                assert node.left < child.left and child.right < node.right
                assert child.level == node.level + 1
            for before, after in zip(children, children[1:]):
                assert before.right < after.left

    async def test_root_width_is_twice_node_count(self, manager):
        await create_sample_tree(manager)
        root = await manager.fetch_tree(Category, 1)
        count = 1 + len(await root.descendants())
        assert root.right - root.left + 1 == 2 * count

    async def test_verify_tree_accepts_consistent_tree(self, manager):
        await create_sample_tree(manager)
        root = await manager.verify_tree(Category, 1)
        assert root.info.name == "root"

    async def test_verify_tree_rejects_gap(self, manager, db):
        nodes = await create_sample_tree(manager)
        await db.execute("UPDATE categories SET rgt = 12 WHERE id = ?", (nodes["root"].id,))
        with pytest.raises(IntegrityViolationError):
            await NestedSetManager(manager.storage).verify_tree(Category, 1)


class TestLazyNavigation:
    """Unlinked nodes fall back to range queries through the manager."""

    async def test_parent_and_ancestors(self, manager, storage):
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        d = await fresh.fetch_node(Category, nodes["D"].id)

        parent = await d.parent()
        ancestors = await d.ancestors()

        assert parent.info.name == "B"
        assert names(ancestors) == ["root", "B"]
        assert ancestors[1] is parent

    async def test_children_and_descendants(self, manager, storage):
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        root = await fresh.fetch_node(Category, nodes["root"].id)

        assert names(await root.children()) == ["A", "B", "C"]
        assert names(await root.descendants()) == ["A", "B", "D", "C"]

        other = await NestedSetManager(storage).fetch_node(Category, nodes["root"].id)
        assert names(await other.descendants(depth=1)) == ["A", "B", "C"]

    async def test_siblings(self, manager, storage):
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        b = await fresh.fetch_node(Category, nodes["B"].id)

        assert names(await b.siblings()) == ["A", "C"]
        assert names(await b.siblings(include_self=True)) == ["A", "B", "C"]

    async def test_next_and_prev_sibling(self, manager, storage):
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        a = await fresh.fetch_node(Category, nodes["A"].id)
        c = await fresh.fetch_node(Category, nodes["C"].id)

        assert (await a.next_sibling()).info.name == "B"
        assert await a.prev_sibling() is None
        assert (await c.prev_sibling()).info.name == "B"
        assert await c.next_sibling() is None

    async def test_lazy_results_are_canonical(self, manager, storage):
        """The same entity reached by two paths is one Node."""
        nodes = await create_sample_tree(manager)
        fresh = NestedSetManager(storage)
        d = await fresh.fetch_node(Category, nodes["D"].id)
        root = await fresh.fetch_node(Category, nodes["root"].id)

        via_parent = await d.parent()
        via_children = (await root.children())[1]

        assert via_parent is via_children
        assert len(fresh.get_nodes()) == 5

    async def test_linked_tree_does_no_io(self, manager, storage, monkeypatch):
        """After fetch_tree, navigation is answered from memory."""
        await create_sample_tree(manager)
        root = await manager.fetch_tree(Category, 1)

        async def forbidden(*args, **kwargs):
            raise AssertionError("storage was queried")

        for name in ("query_ordered", "find_by_left", "find_by_right", "get_row"):
            monkeypatch.setattr(storage, name, forbidden)

        b = (await root.children())[1]
        d = (await b.children())[0]
        assert names(await d.ancestors()) == ["root", "B"]
        assert names(await root.descendants()) == ["A", "B", "D", "C"]
        assert names(await b.siblings()) == ["A", "C"]
        assert (await b.next_sibling()).info.name == "C"

    async def test_sibling_of_node_missing_from_cached_children(self, manager, storage):
        """A parent whose cached children predate the node falls back to a query."""
        nodes = await create_sample_tree(manager)
        reader = NestedSetManager(storage)
        await reader.fetch_tree(Category, 1)

        e = await nodes["B"].insert(Category(name="E"), "first_child")
        stale_e = await reader.fetch_node(Category, e.id)
        parent = await stale_e.parent()

        assert parent.info.name == "B"
        assert (await stale_e.next_sibling()).info.name == "D"
        assert await stale_e.prev_sibling() is None
