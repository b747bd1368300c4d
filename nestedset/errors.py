"""Typed errors raised by the nested-set core.

Callers distinguish four kinds: integrity violations, missing trees/nodes,
invalid structural operations, and lock contention. Only contention is
worth retrying.
"""


class NestedSetError(Exception):
    retryable = False


class IntegrityViolationError(NestedSetError):
    def __init__(self, message: str, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)


class TreeNotFoundError(NestedSetError):
    def __init__(self, table: str, root_id: int | None) -> None:
        self.table = table
        self.root_id = root_id
        if root_id is None:
            super().__init__(f"Tree not found in {table}")
        else:
            super().__init__(f"Tree not found in {table}: root {root_id}")


class NodeNotFoundError(NestedSetError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class InvalidOperationError(NestedSetError):
    def __init__(self, message: str, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)


class ContentionError(NestedSetError):
    """The storage could not obtain its write lock in time. Safe to retry."""

    retryable = True

    def __init__(self, message: str = "Tree is locked by another writer") -> None:
        super().__init__(message)
