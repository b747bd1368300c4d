"""NestedSetManager: coordinates registry, queries and mutations over one storage."""

import logging
from collections.abc import Sequence

from nestedset.builder import build_tree
from nestedset.config import Settings
from nestedset.db.connection import Database
from nestedset.models import RANGE_FIELDS, NodeRecord, Position
from nestedset.mutation import TreeMutator
from nestedset.node import Node
from nestedset.query import TreeQuery
from nestedset.registry import NodeRegistry
from nestedset.storage.base import T, TreeStorage
from nestedset.storage.sqlite import SQLiteTreeStorage

logger = logging.getLogger(__name__)


class NestedSetManager:
    """Reads and manipulates nested-set trees of NodeRecord types.

    Use one manager per unit of work: it owns the registry that maps entities
    to their Node wrappers, and those wrappers are only as fresh as the last
    fetch or mutation made through this manager.
    """

    def __init__(self, storage: TreeStorage) -> None:
        self._storage = storage
        self._registry = NodeRegistry(self)
        self._query = TreeQuery(storage, self._registry)
        self._mutator = TreeMutator(storage)

    @classmethod
    async def from_settings(cls, settings: Settings | None = None) -> "NestedSetManager":
        """Open the configured SQLite database and wrap it in a manager."""
        settings = settings or Settings.from_env()
        db = await Database.from_settings(settings)
        return cls(SQLiteTreeStorage(db))

    async def __aenter__(self) -> "NestedSetManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.clear()

    @property
    def storage(self) -> TreeStorage:
        return self._storage

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    @property
    def query(self) -> TreeQuery:
        return self._query

    # -- Registry --

    def clear(self) -> None:
        """Forget every managed node. Persisted rows are not affected."""
        self._registry.clear()

    def get_node(self, info: T) -> Node[T]:
        return self._registry.get_node(info)

    def get_nodes(self) -> list[Node]:
        return self._registry.get_nodes()

    # -- Reads --

    async def fetch_tree(self, model: type[T], root_id: int | None = None) -> Node[T]:
        return await self._query.fetch_tree(model, root_id)

    async def fetch_tree_as_list(
        self, model: type[T], root_id: int | None = None, max_level: int | None = None
    ) -> list[Node[T]]:
        return await self._query.fetch_tree_as_list(model, root_id, max_level)

    async def fetch_node(self, model: type[T], node_id: str) -> Node[T]:
        return await self._query.fetch_node(model, node_id)

    def build_tree(self, nodes: Sequence[Node[T]], max_level: int | None = None) -> list[Node[T]]:
        """Link a left-ordered node list in memory. See ``nestedset.builder``."""
        return build_tree(nodes, max_level)

    async def verify_tree(self, model: type[T], root_id: int) -> Node[T]:
        return await self._query.verify_tree(model, root_id)

    # -- Mutations --

    async def create_root(self, info: T) -> Node[T]:
        """Persist info as the root of a new tree and return its node."""
        await self._mutator.create_root(info)
        node = self._registry.get_node(info)
        node._link(None, [])
        return node

    async def insert_node(self, info: T, reference: Node[T], position: Position) -> Node[T]:
        """Persist info at position relative to reference and return its node."""
        await self._mutator.insert_node(info, reference.info, position)
        await self._refresh(type(reference.info), info.root_id)
        return self._registry.get_node(info)

    async def move_node(self, node: Node[T], reference: Node[T], position: Position) -> None:
        root_id = await self._mutator.move_node(node.info, reference.info, position)
        await self._refresh(type(node.info), root_id)

    async def delete_node(self, node: Node[T]) -> int:
        """Delete node with its subtree. Returns the number of rows removed."""
        root_id = node.root_id
        deleted = await self._mutator.delete_node(node.info)
        await self._refresh(type(node.info), root_id)
        return deleted

    async def _refresh(self, model: type[NodeRecord], root_id: int) -> None:
        """Bring registered nodes of one tree in line with storage after a write.

        Range values are re-read, deleted entities are unregistered, and every
        node of the tree is unlinked so navigation re-resolves the new shape.
        """
        rows = {row.id: row for row in await self._storage.query_ordered(model, root_id)}
        dropped = 0
        for node in self._registry.nodes_in_tree(model, root_id):
            node._unlink()
            row = rows.get(node.id)
            if row is None:
                self._registry.discard(node)
                for name in RANGE_FIELDS:
                    setattr(node.info, name, None)
                dropped += 1
                continue
            for name in RANGE_FIELDS:
                setattr(node.info, name, getattr(row, name))
        if dropped:
            logger.debug(
                "Dropped %d deleted nodes of tree %s from the registry", dropped, root_id
            )
