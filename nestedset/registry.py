"""Node registry: one canonical Node wrapper per entity identity."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nestedset.node import Node, T

if TYPE_CHECKING:
    from nestedset.manager import NestedSetManager

_Key = tuple[str, str]


def _key(info) -> _Key:
    table = getattr(type(info), "table_name", type(info).__name__)
    return (table, info.id)


class NodeRegistry:
    """Maps (table, id) to the Node wrapping that entity.

    Scoped to one manager, which is scoped to one unit of work. ``clear()``
    only drops wrappers; persisted rows are untouched. Not safe for
    ``clear()`` racing ``get_node()``.
    """

    def __init__(self, manager: NestedSetManager | None = None) -> None:
        self._manager = manager
        self._nodes: dict[_Key, Node] = {}

    def get_node(self, info: T) -> Node[T]:
        """The canonical Node for this entity, created on first sight.

        A re-read row for an entity already wrapped refreshes the existing
        wrapper's entity in place rather than replacing the wrapper.
        """
        key = _key(info)
        node = self._nodes.get(key)
        if node is None:
            node = Node(info, self._manager)
            self._nodes[key] = node
        else:
            node._sync(info)
        return node

    def get_nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def find(self, model: type, node_id: str) -> Node | None:
        return self._nodes.get((getattr(model, "table_name", model.__name__), node_id))

    def nodes_in_tree(self, model: type, root_id: int) -> list[Node]:
        table = getattr(model, "table_name", model.__name__)
        return [
            node
            for (node_table, _), node in self._nodes.items()
            if node_table == table and node.root_id == root_id
        ]

    def discard(self, node: Node) -> None:
        self._nodes.pop(_key(node.info), None)

    def clear(self) -> None:
        for node in self._nodes.values():
            node._unlink()
        self._nodes.clear()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, info: object) -> bool:
        if isinstance(info, Node):
            info = info.info
        return _key(info) in self._nodes
