"""Database schema DDL. One table per node type, created on demand."""

import re

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# lft/rgt because LEFT and RIGHT are SQL keywords. The (root_id, lft) index is
# not UNIQUE: SQLite checks constraints row by row while a bulk shift is half
# applied. {table}_roots records every root id ever handed out, so the ids
# of deleted trees are never reused.
NODE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY,
    root_id INTEGER NOT NULL,
    lft INTEGER NOT NULL,
    rgt INTEGER NOT NULL,
    level INTEGER NOT NULL,
    payload TEXT NOT NULL DEFAULT '{{}}'
);

CREATE INDEX IF NOT EXISTS idx_{table}_root_lft ON {table}(root_id, lft);
CREATE INDEX IF NOT EXISTS idx_{table}_root_rgt ON {table}(root_id, rgt);

CREATE TABLE IF NOT EXISTS {table}_roots (
    root_id INTEGER PRIMARY KEY
);
"""


def validate_table_name(name: str) -> str:
    """Table names are interpolated into SQL, so only identifiers are allowed."""
    if not _TABLE_NAME.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def node_table_sql(table: str) -> str:
    return NODE_TABLE_SQL.format(table=validate_table_name(table))
