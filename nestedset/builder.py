"""Single-pass tree builder for left-ordered node lists.

The input order is load-bearing: each node's parent is the innermost still-open
range on a stack, which only works when nodes arrive by ascending left value.
The pass first computes every parent assignment and only then writes links, so
a precondition failure leaves all nodes exactly as they were.
"""

import logging
from collections.abc import Sequence

from nestedset.errors import IntegrityViolationError
from nestedset.node import Node, T

logger = logging.getLogger(__name__)


def build_tree(nodes: Sequence[Node[T]], max_level: int | None = None) -> list[Node[T]]:
    """Link parent/child relationships for a left-ordered list of nodes.

    Nodes of several trees may be mixed as long as each tree's nodes are
    contiguous. The whole list is validated; nodes deeper than ``max_level``
    are then left out of the linked structure. A node whose children are not
    all in the list keeps its children unresolved, so ``children()`` falls
    back to a range query. Returns the top-level nodes (those without a
    parent in the list).

    Raises IntegrityViolationError if the list is not ordered by left value,
    contains a node without id or range, or contains overlapping ranges.
    """
    parents = _assign_parents(nodes)
    included = [
        (node, parent)
        for node, parent in zip(nodes, parents)
        if max_level is None or node.level <= max_level
    ]

    children: dict[int, list[Node[T]]] = {id(node): [] for node, _ in included}
    top_level: list[Node[T]] = []
    for node, parent in included:
        if parent is None:
            top_level.append(node)
        else:
            children[id(parent)].append(node)

    for node, parent in included:
        kids = children[id(node)]
        if sum(kid.right - kid.left + 1 for kid in kids) != node.right - node.left - 1:
            # Some children are missing from the list; leave them to the lazy path.
            kids = None
        if parent is None and not node.is_root():
            # Top of a partial list (e.g. a fetched subtree): parent unknown.
            node._children = kids
        else:
            node._link(parent, kids)

    logger.debug(
        "Built %d of %d nodes into %d top-level trees (max_level=%s)",
        len(included), len(nodes), len(top_level), max_level,
    )
    return top_level


def _assign_parents(nodes: Sequence[Node[T]]) -> list[Node[T] | None]:
    """The stack pass. Pure: reads ranges, never touches links."""
    parents: list[Node[T] | None] = []
    stack: list[Node[T]] = []
    seen_roots: set = set()
    previous: Node[T] | None = None

    for node in nodes:
        _check_node(node)
        if previous is None or node.root_id != previous.root_id:
            if node.root_id in seen_roots:
                raise IntegrityViolationError(
                    f"Nodes of tree {node.root_id} are not contiguous", node.id
                )
            seen_roots.add(node.root_id)
            stack.clear()
        elif node.left <= previous.left:
            raise IntegrityViolationError(
                f"Nodes not ordered by left value: {previous.id} at {previous.left} "
                f"precedes {node.id} at {node.left}",
                node.id,
            )

        while stack and stack[-1].right < node.left:
            stack.pop()

        parent = stack[-1] if stack else None
        if parent is not None:
            if node.right >= parent.right:
                raise IntegrityViolationError(
                    f"Range of {node.id} [{node.left}, {node.right}] overlaps "
                    f"{parent.id} [{parent.left}, {parent.right}]",
                    node.id,
                )
            if node.level != parent.level + 1:
                raise IntegrityViolationError(
                    f"Level of {node.id} is {node.level}, expected {parent.level + 1}",
                    node.id,
                )
        parents.append(parent)
        stack.append(node)
        previous = node

    return parents


def _check_node(node: Node) -> None:
    info = node.info
    if info.id is None:
        raise IntegrityViolationError("Node without id in tree list")
    if info.left is None or info.right is None or info.level is None:
        raise IntegrityViolationError(f"Node {info.id} has no range", info.id)
    if info.left >= info.right:
        raise IntegrityViolationError(
            f"Node {info.id} has left {info.left} >= right {info.right}", info.id
        )
