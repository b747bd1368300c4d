"""Query engine: range-based reads of trees and subtrees.

Every read goes through the storage's ordered range query, is checked for
well-formed rows, and is wrapped through the registry so each entity maps to
one Node. Nothing here writes.
"""

import logging

from nestedset.builder import build_tree
from nestedset.errors import (
    IntegrityViolationError,
    InvalidOperationError,
    NodeNotFoundError,
    TreeNotFoundError,
)
from nestedset.models import NodeRecord
from nestedset.node import Node
from nestedset.registry import NodeRegistry
from nestedset.storage.base import T, TreeStorage

logger = logging.getLogger(__name__)


class TreeQuery:
    """Reads trees from storage and wraps rows into registered Nodes."""

    def __init__(self, storage: TreeStorage, registry: NodeRegistry) -> None:
        self._storage = storage
        self._registry = registry

    async def fetch_tree(self, model: type[T], root_id: int | None = None) -> Node[T]:
        """Fetch a whole tree, linked in memory, and return its root.

        Raises TreeNotFoundError if the tree has no rows, and
        InvalidOperationError if root_id is omitted but the table holds
        several trees.
        """
        nodes = await self.fetch_tree_as_list(model, root_id)
        if not nodes:
            raise TreeNotFoundError(model.table_name, root_id)
        roots = build_tree(nodes)
        if len(roots) > 1 and root_id is not None:
            raise IntegrityViolationError(
                f"Tree {root_id} has {len(roots)} top-level nodes", roots[1].id
            )
        if len(roots) > 1:
            raise InvalidOperationError(
                f"{model.table_name} holds {len(roots)} trees; pass a root_id"
            )
        root = roots[0]
        if not root.is_root():
            raise IntegrityViolationError(
                f"Tree {root.root_id} has no level-0 root (first node {root.id})",
                root.id,
            )
        return root

    async def fetch_tree_as_list(
        self,
        model: type[T],
        root_id: int | None = None,
        max_level: int | None = None,
    ) -> list[Node[T]]:
        """Fetch a tree as a flat list ordered by left value, without linking."""
        rows = await self._storage.query_ordered(model, root_id, max_level=max_level)
        return self._wrap(rows)

    async def fetch_node(self, model: type[T], node_id: str) -> Node[T]:
        """A single node by id, unlinked. Raises NodeNotFoundError."""
        row = await self._storage.get_row(model, node_id)
        if row is None:
            raise NodeNotFoundError(node_id)
        return self._wrap([row])[0]

    async def fetch_parent(self, node: Node[T]) -> Node[T] | None:
        if node.is_root():
            return None
        rows = await self._storage.query_ordered(
            type(node.info),
            node.root_id,
            max_left=node.left - 1,
            min_right=node.right + 1,
            min_level=node.level - 1,
            max_level=node.level - 1,
        )
        return self._wrap(rows)[0] if rows else None

    async def fetch_children(self, node: Node[T]) -> list[Node[T]]:
        rows = await self._storage.query_ordered(
            type(node.info),
            node.root_id,
            min_left=node.left + 1,
            max_right=node.right - 1,
            min_level=node.level + 1,
            max_level=node.level + 1,
        )
        return self._wrap(rows)

    async def fetch_ancestors(self, node: Node[T]) -> list[Node[T]]:
        """Ancestors root first. Links the chain while it is at hand."""
        rows = await self._storage.query_ordered(
            type(node.info),
            node.root_id,
            max_left=node.left - 1,
            min_right=node.right + 1,
        )
        chain = self._wrap(rows)
        parent = None
        for ancestor in chain:
            ancestor._set_parent(parent)
            parent = ancestor
        node._set_parent(parent)
        return chain

    async def fetch_descendants(
        self, node: Node[T], depth: int | None = None
    ) -> list[Node[T]]:
        rows = await self._storage.query_ordered(
            type(node.info),
            node.root_id,
            min_left=node.left + 1,
            max_right=node.right - 1,
            max_level=None if depth is None else node.level + depth,
        )
        return self._wrap(rows)

    async def fetch_next_sibling(self, node: Node[T]) -> Node[T] | None:
        row = await self._storage.find_by_left(type(node.info), node.root_id, node.right + 1)
        return self._wrap([row])[0] if row is not None else None

    async def fetch_prev_sibling(self, node: Node[T]) -> Node[T] | None:
        row = await self._storage.find_by_right(type(node.info), node.root_id, node.left - 1)
        return self._wrap([row])[0] if row is not None else None

    async def verify_tree(self, model: type[T], root_id: int) -> Node[T]:
        """Check every nested-set invariant of one tree. Returns its root."""
        root = await self.fetch_tree(model, root_id)
        expected = root.number_of_descendants() + 1
        nodes = [root, *await root.descendants()]
        if len(nodes) != expected:
            raise IntegrityViolationError(
                f"Root range of tree {root_id} implies {expected} nodes, found {len(nodes)}",
                root.id,
            )
        for node in nodes:
            if not node.is_valid():
                raise IntegrityViolationError(f"Malformed range on {node.id}", node.id)
            # Children must tile the parent's interior: no gaps, no overlaps.
            cursor = node.left + 1
            for child in await node.children():
                if child.left != cursor:
                    raise IntegrityViolationError(
                        f"Child {child.id} starts at {child.left}, expected {cursor}",
                        child.id,
                    )
                cursor = child.right + 1
            if cursor != node.right:
                raise IntegrityViolationError(
                    f"Children of {node.id} end at {cursor - 1}, expected {node.right - 1}",
                    node.id,
                )
        return root

    def _wrap(self, rows: list[NodeRecord]) -> list[Node]:
        for row in rows:
            if row.id is None or row.left is None or row.right is None:
                raise IntegrityViolationError(f"Incomplete row read: {row!r}")
            if row.left >= row.right:
                raise IntegrityViolationError(
                    f"Row {row.id} has left {row.left} >= right {row.right}", row.id
                )
        return [self._registry.get_node(row) for row in rows]
