from nestedset.storage.base import TreeStorage
from nestedset.storage.sqlite import SQLiteTreeStorage

__all__ = ["SQLiteTreeStorage", "TreeStorage"]
