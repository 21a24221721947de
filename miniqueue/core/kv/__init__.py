"""
Key-value storage capability.

The queue engine is written against ``KeyValueStore`` and ships two
implementations:
- ``FileKVStore``: durable append-only file with crash recovery
- ``MemoryKVStore``: volatile dict-backed store
"""

from miniqueue.core.kv.base import BatchOp, KeyValueStore, OpType, WriteBatch
from miniqueue.core.kv.format import BatchRecord, MagicByte
from miniqueue.core.kv.memory import MemoryKVStore
from miniqueue.core.kv.reader import RecordReader
from miniqueue.core.kv.store import FileKVStore

__all__ = [
    "BatchOp",
    "BatchRecord",
    "FileKVStore",
    "KeyValueStore",
    "MagicByte",
    "MemoryKVStore",
    "OpType",
    "RecordReader",
    "WriteBatch",
]
