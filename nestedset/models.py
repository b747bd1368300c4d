"""Canonical data structures for nested-set trees.

NodeInfo is the capability every tree participant satisfies. NodeRecord is
the pydantic base that entity types subclass: the range fields live in their
own columns, every extra field is the entity payload.
"""

from typing import Any, ClassVar, Literal, Protocol, get_args, runtime_checkable
from uuid import uuid4

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROOT_LEFT = 1
ROOT_RIGHT = 2

Position = Literal["first_child", "last_child", "next_sibling", "prev_sibling"]
POSITIONS: tuple[str, ...] = get_args(Position)
CHILD_POSITIONS = frozenset({"first_child", "last_child"})

RANGE_FIELDS = ("left", "right", "level", "root_id")


# ---------------------------------------------------------------------------
# NodeInfo capability
# ---------------------------------------------------------------------------


@runtime_checkable
class NodeInfo(Protocol):
    """Read/write contract for anything that sits in a nested-set tree."""

    id: str
    left: int | None
    right: int | None
    level: int | None
    root_id: int | None


# ---------------------------------------------------------------------------
# Persisted entity base
# ---------------------------------------------------------------------------


class NodeRecord(BaseModel):
    """A row of a nested-set table.

    Subclasses set ``table_name`` and add payload fields:

        class Category(NodeRecord):
            table_name: ClassVar[str] = "categories"
            name: str
    """

    table_name: ClassVar[str] = "nodes"

    id: str = Field(default_factory=lambda: str(uuid4()))
    left: int | None = None
    right: int | None = None
    level: int | None = None
    root_id: int | None = None

    @property
    def is_persisted(self) -> bool:
        return self.root_id is not None and self.left is not None

    def payload(self) -> dict[str, Any]:
        """Entity fields, excluding identity and range bookkeeping."""
        return self.model_dump(mode="json", exclude={"id", *RANGE_FIELDS})

    def range_values(self) -> tuple[int | None, int | None, int | None, int | None]:
        return (self.left, self.right, self.level, self.root_id)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.id!r}, root_id={self.root_id}, "
            f"range=[{self.left}, {self.right}], level={self.level})"
        )
