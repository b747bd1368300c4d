"""Nested-set (modified preorder tree traversal) trees over relational tables."""

from nestedset.builder import build_tree
from nestedset.config import Settings
from nestedset.db.connection import Database
from nestedset.errors import (
    ContentionError,
    IntegrityViolationError,
    InvalidOperationError,
    NestedSetError,
    NodeNotFoundError,
    TreeNotFoundError,
)
from nestedset.manager import NestedSetManager
from nestedset.models import NodeInfo, NodeRecord, Position
from nestedset.node import Node
from nestedset.registry import NodeRegistry
from nestedset.storage import SQLiteTreeStorage, TreeStorage

__all__ = [
    "ContentionError",
    "Database",
    "IntegrityViolationError",
    "InvalidOperationError",
    "NestedSetError",
    "NestedSetManager",
    "Node",
    "NodeInfo",
    "NodeNotFoundError",
    "NodeRecord",
    "NodeRegistry",
    "Position",
    "SQLiteTreeStorage",
    "Settings",
    "TreeNotFoundError",
    "TreeStorage",
    "build_tree",
]
