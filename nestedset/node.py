"""Node wrapper: navigation over a NodeInfo instance.

Links (parent, children) are set by the tree builder or cached from lazy
range queries. Ancestors and descendants are derived by walking those links;
nothing stores back-edges beyond the child -> parent reference.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from nestedset.models import NodeInfo, Position

if TYPE_CHECKING:
    from nestedset.manager import NestedSetManager

T = TypeVar("T", bound=NodeInfo)


class Node(Generic[T]):
    """A node of a nested-set tree, wrapping one entity."""

    __slots__ = ("_info", "_manager", "_parent", "_parent_known", "_children")

    def __init__(self, info: T, manager: NestedSetManager | None = None) -> None:
        self._info = info
        self._manager = manager
        self._parent: Node[T] | None = None
        self._parent_known = False
        self._children: list[Node[T]] | None = None

    # -- Entity accessors --

    @property
    def info(self) -> T:
        return self._info

    @property
    def id(self) -> str:
        return self._info.id

    @property
    def left(self) -> int:
        return self._info.left

    @property
    def right(self) -> int:
        return self._info.right

    @property
    def level(self) -> int:
        return self._info.level

    @property
    def root_id(self) -> int:
        return self._info.root_id

    @property
    def manager(self) -> NestedSetManager:
        if self._manager is None:
            raise RuntimeError(f"Node {self.id} is not attached to a manager")
        return self._manager

    @property
    def is_linked(self) -> bool:
        """True when parent and children are both resolved in memory."""
        return self._parent_known and self._children is not None

    # -- Range predicates (no I/O) --

    def is_root(self) -> bool:
        return self.level == 0

    def is_leaf(self) -> bool:
        return self.right - self.left == 1

    def is_valid(self) -> bool:
        """Persisted, with a well-formed range of even width."""
        info = self._info
        if None in (info.left, info.right, info.level, info.root_id):
            return False
        return info.left < info.right and (info.right - info.left) % 2 == 1

    def is_descendant_of(self, other: Node) -> bool:
        return (
            self.root_id == other.root_id
            and other.left < self.left
            and self.right < other.right
        )

    def is_ancestor_of(self, other: Node) -> bool:
        return other.is_descendant_of(self)

    def has_parent(self) -> bool:
        return not self.is_root()

    def has_children(self) -> bool:
        return not self.is_leaf()

    def number_of_descendants(self) -> int:
        return (self.right - self.left - 1) // 2

    # -- Navigation --

    async def parent(self) -> Node[T] | None:
        if not self._parent_known:
            if self.is_root():
                self._set_parent(None)
            else:
                self._set_parent(await self.manager.query.fetch_parent(self))
        return self._parent

    async def children(self) -> list[Node[T]]:
        if self._children is None:
            if self.is_leaf():
                self._children = []
            else:
                children = await self.manager.query.fetch_children(self)
                for child in children:
                    child._set_parent(self)
                self._children = children
        return list(self._children)

    async def ancestors(self) -> list[Node[T]]:
        """All ancestors, root first, parent last."""
        chain: list[Node[T]] = []
        node: Node[T] = self
        while node._parent_known:
            if node._parent is None:
                chain.reverse()
                return chain
            node = node._parent
            chain.append(node)
        return await self.manager.query.fetch_ancestors(self)

    async def descendants(self, depth: int | None = None) -> list[Node[T]]:
        """Descendants in left order, optionally limited to ``depth`` levels below."""
        collected = self._linked_descendants(depth)
        if collected is not None:
            return collected
        return await self.manager.query.fetch_descendants(self, depth)

    async def siblings(self, include_self: bool = False) -> list[Node[T]]:
        parent = await self.parent()
        if parent is None:
            return [self] if include_self else []
        return [
            child
            for child in await parent.children()
            if include_self or child is not self
        ]

    async def number_of_children(self) -> int:
        return len(await self.children())

    async def first_child(self) -> Node[T] | None:
        children = await self.children()
        return children[0] if children else None

    async def last_child(self) -> Node[T] | None:
        children = await self.children()
        return children[-1] if children else None

    async def next_sibling(self) -> Node[T] | None:
        if self.is_root():
            return None
        index = self._sibling_index()
        if index is not None:
            return self._sibling_at(index + 1)
        return await self.manager.query.fetch_next_sibling(self)

    async def prev_sibling(self) -> Node[T] | None:
        if self.is_root():
            return None
        index = self._sibling_index()
        if index is not None:
            return self._sibling_at(index - 1)
        return await self.manager.query.fetch_prev_sibling(self)

    # -- Mutation shortcuts --

    async def add_child(self, info: T) -> Node[T]:
        """Insert a new entity as the last child of this node."""
        return await self.manager.insert_node(info, self, "last_child")

    async def insert(self, info: T, position: Position) -> Node[T]:
        return await self.manager.insert_node(info, self, position)

    async def move_to(self, reference: Node[T], position: Position) -> None:
        await self.manager.move_node(self, reference, position)

    async def delete(self) -> None:
        await self.manager.delete_node(self)

    # -- Link bookkeeping (builder / manager) --

    def _set_parent(self, parent: Node[T] | None) -> None:
        self._parent = parent
        self._parent_known = True

    def _link(self, parent: Node[T] | None, children: list[Node[T]] | None) -> None:
        self._set_parent(parent)
        self._children = children

    def _unlink(self) -> None:
        self._parent = None
        self._parent_known = False
        self._children = None

    def _sync(self, info: Any) -> None:
        """Copy every field of a freshly read row onto the wrapped entity."""
        if info is self._info:
            return
        fields = getattr(type(info), "model_fields", None)
        names = fields.keys() if fields is not None else ("left", "right", "level", "root_id")
        for name in names:
            setattr(self._info, name, getattr(info, name))

    def _linked_descendants(self, depth: int | None) -> list[Node[T]] | None:
        """Pre-order walk over cached links; None if any needed link is missing."""
        if self._children is None:
            return [] if self.is_leaf() else None
        result: list[Node[T]] = []
        stack = [(child, 1) for child in reversed(self._children)]
        while stack:
            node, distance = stack.pop()
            if depth is not None and distance > depth:
                continue
            result.append(node)
            if depth is not None and distance == depth:
                continue
            if node._children is None:
                if node.is_leaf():
                    continue
                return None
            stack.extend((child, distance + 1) for child in reversed(node._children))
        return result

    def _sibling_index(self) -> int | None:
        """Position among the cached children of the cached parent, if both are known."""
        if self._parent is None or self._parent._children is None:
            return None
        for index, child in enumerate(self._parent._children):
            if child is self:
                return index
        return None

    def _sibling_at(self, index: int) -> Node[T] | None:
        siblings = self._parent._children
        if 0 <= index < len(siblings):
            return siblings[index]
        return None

    def __repr__(self) -> str:
        return (
            f"Node(id={self.id!r}, root_id={self.root_id}, "
            f"range=[{self.left}, {self.right}], level={self.level})"
        )
