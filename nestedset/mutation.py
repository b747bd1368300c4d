"""Mutation engine: structural changes by renumbering ranges.

Every operation re-reads the rows it depends on inside the storage
transaction, validates, then issues its range shifts. Validation failures
raise before the first write; any failure after it rolls the whole
transaction back. Callers' entity objects are only updated after commit.
"""

import logging

from nestedset.errors import InvalidOperationError
from nestedset.models import (
    CHILD_POSITIONS,
    POSITIONS,
    ROOT_LEFT,
    ROOT_RIGHT,
    NodeRecord,
    Position,
)
from nestedset.storage.base import TreeStorage

logger = logging.getLogger(__name__)


def insertion_bound(reference: NodeRecord, position: Position) -> int:
    """Left value a new block takes when placed at position relative to reference."""
    if position == "first_child":
        return reference.left + 1
    if position == "last_child":
        return reference.right
    if position == "next_sibling":
        return reference.right + 1
    return reference.left


class TreeMutator:
    """Create, insert, move and delete nodes through a TreeStorage."""

    def __init__(self, storage: TreeStorage) -> None:
        self._storage = storage

    async def create_root(self, info: NodeRecord) -> NodeRecord:
        """Persist info as the root of a new tree. Returns info, updated."""
        model = type(info)
        await self._storage.ensure_table(model)
        async with self._storage.transaction():
            if await self._storage.get_row(model, info.id) is not None:
                raise InvalidOperationError(f"Node {info.id} is already persisted", info.id)
            root_id = await self._storage.next_root_id(model)
            row = info.model_copy(
                update={"root_id": root_id, "left": ROOT_LEFT, "right": ROOT_RIGHT, "level": 0}
            )
            await self._storage.insert_row(row)

        logger.debug("Created root %s of tree %s in %s", info.id, root_id, model.table_name)
        _apply_range(info, row)
        return info

    async def insert_node(
        self, info: NodeRecord, reference: NodeRecord, position: Position
    ) -> NodeRecord:
        """Persist info at position relative to reference. Returns info, updated."""
        _check_position(position)
        model = _common_model(info, reference)
        if info.root_id is not None and info.root_id != reference.root_id:
            raise _cross_tree(info, reference)

        async with self._storage.transaction(reference.root_id):
            ref = await self._load(model, reference)
            if await self._storage.get_row(model, info.id) is not None:
                raise InvalidOperationError(
                    f"Node {info.id} is already persisted; move it instead", info.id
                )
            if position not in CHILD_POSITIONS and ref.level == 0:
                raise InvalidOperationError(
                    f"Cannot insert a sibling of root {ref.id}", ref.id
                )

            root_id = ref.root_id
            bound = insertion_bound(ref, position)
            level = ref.level + 1 if position in CHILD_POSITIONS else ref.level
            shifted_left = await self._storage.shift_range(model, root_id, "left", 2, bound)
            shifted_right = await self._storage.shift_range(model, root_id, "right", 2, bound)
            row = info.model_copy(
                update={"root_id": root_id, "left": bound, "right": bound + 1, "level": level}
            )
            await self._storage.insert_row(row)

        logger.debug(
            "Inserted %s as %s of %s at [%d, %d] (shifted %d left, %d right)",
            info.id, position, ref.id, bound, bound + 1, shifted_left, shifted_right,
        )
        _apply_range(info, row)
        return info

    async def move_node(
        self, node: NodeRecord, reference: NodeRecord, position: Position
    ) -> int:
        """Move node's subtree to position relative to reference. Returns its root_id."""
        _check_position(position)
        model = _common_model(node, reference)
        if node.root_id != reference.root_id:
            raise _cross_tree(node, reference)

        async with self._storage.transaction(node.root_id):
            row = await self._load(model, node)
            ref = await self._load(model, reference)
            if row.root_id != ref.root_id:
                raise _cross_tree(row, ref)
            if ref.id == row.id or (row.left < ref.left and ref.right < row.right):
                raise InvalidOperationError(
                    f"Cannot move {row.id} relative to itself or its descendant {ref.id}",
                    row.id,
                )
            if position not in CHILD_POSITIONS and ref.level == 0:
                raise InvalidOperationError(
                    f"Cannot move {row.id} next to root {ref.id}", row.id
                )

            root_id = row.root_id
            left, right = row.left, row.right
            width = right - left + 1
            bound = insertion_bound(ref, position)
            level = ref.level + 1 if position in CHILD_POSITIONS else ref.level

            # 1. take the subtree out of the numbering
            moved = await self._storage.detach_subtree(model, root_id, left, right)
            # 2. close the gap it leaves
            await self._storage.shift_range(model, root_id, "left", -width, right + 1)
            await self._storage.shift_range(model, root_id, "right", -width, right + 1)
            # 3. open a gap at the target, in the contracted numbering
            if bound > right:
                bound -= width
            await self._storage.shift_range(model, root_id, "left", width, bound)
            await self._storage.shift_range(model, root_id, "right", width, bound)
            # 4. put the subtree back at the target, re-levelled
            await self._storage.attach_subtree(model, root_id, bound - left, level - row.level)

        logger.debug(
            "Moved %s (%d nodes) as %s of %s: [%d, %d] -> [%d, %d]",
            row.id, moved, position, ref.id, left, right, bound, bound + width - 1,
        )
        return root_id

    async def delete_node(self, node: NodeRecord) -> int:
        """Delete node and its whole subtree. Returns the number of rows removed."""
        model = type(node)
        async with self._storage.transaction(node.root_id):
            row = await self._load(model, node)
            root_id = row.root_id
            width = row.right - row.left + 1
            deleted = await self._storage.delete_range(model, root_id, row.left, row.right)
            await self._storage.shift_range(model, root_id, "left", -width, row.right + 1)
            await self._storage.shift_range(model, root_id, "right", -width, row.right + 1)

        logger.debug(
            "Deleted %s and %d descendants from tree %s", row.id, deleted - 1, root_id
        )
        return deleted

    async def _load(self, model: type[NodeRecord], info: NodeRecord) -> NodeRecord:
        """The committed row for info; InvalidOperationError if there is none."""
        if info.root_id is None:
            raise InvalidOperationError(f"Node {info.id} is not persisted", info.id)
        row = await self._storage.get_row(model, info.id)
        if row is None:
            raise InvalidOperationError(f"Node {info.id} is not present in storage", info.id)
        return row


def _check_position(position: str) -> None:
    if position not in POSITIONS:
        raise InvalidOperationError(
            f"Unknown position {position!r}; expected one of {', '.join(POSITIONS)}"
        )


def _common_model(info: NodeRecord, reference: NodeRecord) -> type[NodeRecord]:
    if type(info).table_name != type(reference).table_name:
        raise InvalidOperationError(
            f"{info.id} ({type(info).table_name}) and {reference.id} "
            f"({type(reference).table_name}) live in different tables",
            info.id,
        )
    return type(reference)


def _cross_tree(info: NodeRecord, reference: NodeRecord) -> InvalidOperationError:
    return InvalidOperationError(
        f"{info.id} (tree {info.root_id}) and {reference.id} (tree {reference.root_id}) "
        "belong to different trees",
        info.id,
    )


def _apply_range(info: NodeRecord, row: NodeRecord) -> None:
    info.root_id, info.left, info.right, info.level = (
        row.root_id, row.left, row.right, row.level,
    )
