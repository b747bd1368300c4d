"""Shared test helpers: node types and the sample category tree.

The sample tree used throughout:

    root [1,10]
    ├── A [2,3]
    ├── B [4,7]
    │   └── D [5,6]
    └── C [8,9]
"""

from types import SimpleNamespace
from typing import Any, ClassVar

from nestedset.manager import NestedSetManager
from nestedset.models import NodeRecord
from nestedset.node import Node
from nestedset.storage.base import TreeStorage


class Category(NodeRecord):
    table_name: ClassVar[str] = "categories"
    name: str


class Tag(NodeRecord):
    table_name: ClassVar[str] = "tags"
    label: str
    weight: float = 1.0
    meta: dict[str, Any] = {}


SAMPLE_RANGES = {
    "root": (1, 10),
    "A": (2, 3),
    "B": (4, 7),
    "D": (5, 6),
    "C": (8, 9),
}


async def create_sample_tree(manager: NestedSetManager) -> dict[str, Node[Category]]:
    """Build the sample tree through the public API. Returns nodes by name."""
    root = await manager.create_root(Category(name="root"))
    a = await root.add_child(Category(name="A"))
    b = await root.add_child(Category(name="B"))
    d = await b.add_child(Category(name="D"))
    c = await root.add_child(Category(name="C"))
    return {"root": root, "A": a, "B": b, "D": d, "C": c}


async def tree_ranges(storage: TreeStorage, root_id: int) -> dict[str, tuple[int, int]]:
    """Persisted (left, right) per category name, read straight from storage."""
    rows = await storage.query_ordered(Category, root_id)
    return {row.name: (row.left, row.right) for row in rows}


async def tree_levels(storage: TreeStorage, root_id: int) -> dict[str, int]:
    rows = await storage.query_ordered(Category, root_id)
    return {row.name: row.level for row in rows}


def make_category(
    name: str, left: int, right: int, level: int, root_id: int = 1
) -> Category:
    return Category(id=name, name=name, left=left, right=right, level=level, root_id=root_id)


def sample_nodes(root_id: int = 1) -> dict[str, Node[Category]]:
    """Unattached nodes for the sample tree, for builder tests without storage."""
    levels = {"root": 0, "A": 1, "B": 1, "D": 2, "C": 1}
    return {
        name: Node(make_category(name, left, right, levels[name], root_id))
        for name, (left, right) in SAMPLE_RANGES.items()
    }


def plain_info(**fields: Any) -> SimpleNamespace:
    """A NodeInfo that is not a pydantic model."""
    defaults = {"id": "plain", "left": 1, "right": 2, "level": 0, "root_id": 1}
    return SimpleNamespace(**{**defaults, **fields})


def names(nodes: list[Node]) -> list[str]:
    return [node.info.name for node in nodes]
