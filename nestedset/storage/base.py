"""Abstract storage collaborator for nested-set tables."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Literal, TypeVar

from nestedset.models import NodeRecord

T = TypeVar("T", bound=NodeRecord)

RangeColumn = Literal["left", "right"]


class TreeStorage(ABC):
    """What the core needs from persistence.

    Reads return rows ordered by ``(root_id, left)`` and treat a table that
    does not exist yet as empty; they never create it. Writes are only valid
    inside ``transaction()``, which must make every write issued in the block
    all-or-nothing and must exclude concurrent writers on the same tree.
    """

    @abstractmethod
    async def ensure_table(self, model: type[NodeRecord]) -> None:
        """Create the backing table for a node type if needed."""
        ...

    @abstractmethod
    async def query_ordered(
        self,
        model: type[T],
        root_id: int | None = None,
        *,
        min_left: int | None = None,
        max_left: int | None = None,
        min_right: int | None = None,
        max_right: int | None = None,
        min_level: int | None = None,
        max_level: int | None = None,
    ) -> list[T]:
        """Rows matching every given bound (inclusive), ordered by left."""
        ...

    @abstractmethod
    async def get_row(self, model: type[T], node_id: str) -> T | None:
        ...

    @abstractmethod
    async def find_by_left(self, model: type[T], root_id: int, left: int) -> T | None:
        ...

    @abstractmethod
    async def find_by_right(self, model: type[T], root_id: int, right: int) -> T | None:
        ...

    @abstractmethod
    async def shift_range(
        self,
        model: type[NodeRecord],
        root_id: int,
        column: RangeColumn,
        delta: int,
        lower: int,
        upper: int | None = None,
    ) -> int:
        """Add delta to column where lower <= column (<= upper). Returns row count."""
        ...

    @abstractmethod
    async def detach_subtree(
        self, model: type[NodeRecord], root_id: int, left: int, right: int
    ) -> int:
        """Negate the ranges inside [left, right] so later shifts skip them."""
        ...

    @abstractmethod
    async def attach_subtree(
        self, model: type[NodeRecord], root_id: int, offset: int, level_delta: int
    ) -> int:
        """Restore detached (negated) ranges at ``-value + offset``, re-levelled."""
        ...

    @abstractmethod
    async def insert_row(self, row: NodeRecord) -> None:
        ...

    @abstractmethod
    async def delete_range(
        self, model: type[NodeRecord], root_id: int, left: int, right: int
    ) -> int:
        """Delete every row whose range lies inside [left, right]."""
        ...

    @abstractmethod
    async def next_root_id(self, model: type[NodeRecord]) -> int:
        """Allocate a root identifier never used by any tree of this type.

        Ids of deleted trees are not handed out again. Must run inside
        ``transaction()`` so a rolled-back root creation releases the id.
        """
        ...

    @abstractmethod
    def transaction(self, root_id: int | None = None) -> AbstractAsyncContextManager[None]:
        """Exclusive, atomic write scope for one tree (or a new tree if None)."""
        ...
