"""In-memory key-value store with the same semantics as FileKVStore, minus durability."""

import threading
from typing import Dict

from miniqueue.core.errors import KeyNotFoundError, StorageError
from miniqueue.core.kv.base import KeyValueStore, OpType, WriteBatch
from miniqueue.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryKVStore(KeyValueStore):
    """Dict-backed store, useful for tests and embedding."""

    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}
        self._lock = threading.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Store is closed")

    def get(self, key: bytes) -> bytes:
        with self._lock:
            self._check_open()
            try:
                return self._data[key]
            except KeyError:
                raise KeyNotFoundError(key) from None

    def has(self, key: bytes) -> bool:
        with self._lock:
            self._check_open()
            return key in self._data

    def write(self, batch: WriteBatch) -> None:
        with self._lock:
            self._check_open()
            for op in batch:
                if op.op_type == OpType.PUT:
                    self._data[op.key] = op.value
                else:
                    self._data.pop(op.key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def destroy(self) -> None:
        with self._lock:
            self._data.clear()
            self._closed = True
        logger.info("Destroyed in-memory store")
