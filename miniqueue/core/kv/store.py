"""
Durable key-value store backed by a single append-only record file.

Writes are appended as CRC-checked records and applied to an in-memory
index. On open the file is replayed to rebuild the index, discarding any
torn record left by a crash.
"""

import os
import shutil
import threading
from pathlib import Path
from typing import Dict, Optional, Union

from miniqueue.core.errors import CorruptionError, KeyNotFoundError, StorageError
from miniqueue.core.kv.base import KeyValueStore, OpType, WriteBatch
from miniqueue.core.kv.format import BatchRecord
from miniqueue.core.kv.reader import RecordReader
from miniqueue.utils.logging import get_logger

logger = get_logger(__name__)


class FileKVStore(KeyValueStore):
    """
    Append-only file key-value store.

    Properties:
    - Every put, delete or batch is one record, applied all-or-nothing
    - Records are fsynced before a write returns (unless fsync is disabled)
    - Point lookups are served from memory

    Attributes:
        location: Directory holding the store
        path: Path of the record file
        fsync: Whether to fsync after each write
    """

    DATA_FILE = "store.kv"
    COMPACT_FILE = "store.kv.compact"

    def __init__(self, location: Union[str, Path], fsync: bool = True):
        """
        Open or create a store.

        Args:
            location: Directory for the store, created if missing
            fsync: Whether to fsync after each write

        Raises:
            StorageError: If the directory or file cannot be opened
        """
        self.location = Path(location)
        self.path = self.location / self.DATA_FILE
        self.fsync = fsync

        self._index: Dict[bytes, bytes] = {}
        self._fd: Optional[int] = None
        self._size = 0
        self._failed = False
        self._lock = threading.RLock()

        try:
            self.location.mkdir(parents=True, exist_ok=True)
            self._recover()
            self._open()
        except OSError as e:
            raise StorageError(f"Failed to open store at {self.location}: {e}") from e

        logger.info(
            "Opened key-value store",
            location=str(self.location),
            keys=len(self._index),
            size=self._size,
            fsync=self.fsync,
        )

    def _recover(self) -> None:
        """
        Replay the record file and drop a torn final record.

        Raises:
            CorruptionError: If a damaged record is followed by more data
        """
        if not self.path.exists():
            return

        with RecordReader(self.path) as reader:
            records, valid_bytes = reader.recover()
            corruption = reader.corruption

        if corruption is not None:
            logger.error(
                "Corrupt record before end of file",
                path=str(self.path),
                valid_bytes=valid_bytes,
                error=corruption,
            )
            raise CorruptionError(f"Corrupt store file {self.path}: {corruption}")

        for record in records:
            self._apply(record.ops)

        file_size = self.path.stat().st_size
        if file_size > valid_bytes:
            logger.warning(
                "Truncating invalid tail",
                path=str(self.path),
                file_size=file_size,
                valid_bytes=valid_bytes,
            )
            os.truncate(self.path, valid_bytes)

        self._size = valid_bytes

    def _open(self) -> None:
        flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND
        self._fd = os.open(self.path, flags, 0o644)

    def _apply(self, ops) -> None:
        for op in ops:
            if op.op_type == OpType.PUT:
                self._index[op.key] = op.value
            else:
                self._index.pop(op.key, None)

    def _check_open(self) -> None:
        if self._failed:
            raise StorageError(f"Store is unusable after a failed rollback: {self.location}")
        if self._fd is None:
            raise StorageError(f"Store is closed: {self.location}")

    def _rollback(self) -> None:
        """Cut the file back to the last committed record after a failed write."""
        try:
            os.ftruncate(self._fd, self._size)
        except OSError as e:
            self._failed = True
            logger.error(
                "Failed to roll back partial write",
                path=str(self.path),
                size=self._size,
                error=str(e),
            )
            return

        logger.warning("Rolled back failed write", path=str(self.path), size=self._size)

    def get(self, key: bytes) -> bytes:
        with self._lock:
            self._check_open()
            try:
                return self._index[key]
            except KeyError:
                raise KeyNotFoundError(key) from None

    def has(self, key: bytes) -> bool:
        with self._lock:
            self._check_open()
            return key in self._index

    def write(self, batch: WriteBatch) -> None:
        """
        Append the batch as a single record, then apply it to the index.

        Raises:
            StorageError: If the record cannot be encoded or written
        """
        if len(batch) == 0:
            return

        try:
            data = BatchRecord(ops=list(batch)).serialize()
        except ValueError as e:
            raise StorageError(f"Failed to encode batch: {e}") from e

        with self._lock:
            self._check_open()
            try:
                bytes_written = os.write(self._fd, data)
                if bytes_written != len(data):
                    raise OSError(
                        f"Partial write: expected {len(data)} bytes, wrote {bytes_written} bytes"
                    )
                if self.fsync:
                    os.fsync(self._fd)
            except OSError as e:
                self._rollback()
                raise StorageError(f"Failed to write to {self.path}: {e}") from e

            self._size += len(data)
            self._apply(batch)

        logger.debug("Wrote batch", ops=len(batch), size=len(data))

    def size(self) -> int:
        """Size of the record file in bytes."""
        return self._size

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def compact(self) -> None:
        """
        Rewrite the file so that it holds only live keys.

        The compacted file is written beside the current one, fsynced and then
        atomically renamed over it.
        """
        with self._lock:
            self._check_open()
            old_size = self._size
            compact_path = self.location / self.COMPACT_FILE

            batch = WriteBatch()
            for key, value in self._index.items():
                batch.put(key, value)

            try:
                data = BatchRecord(ops=list(batch)).serialize() if len(batch) else b""
                with open(compact_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())

                os.close(self._fd)
                self._fd = None
                os.replace(compact_path, self.path)
                self._open()
            except (OSError, ValueError) as e:
                if self._fd is None and self.path.exists():
                    self._open()
                raise StorageError(f"Compaction failed for {self.path}: {e}") from e

            self._size = len(data)

        logger.info(
            "Compacted key-value store",
            location=str(self.location),
            keys=len(batch),
            old_size=old_size,
            new_size=self._size,
        )

    def close(self) -> None:
        with self._lock:
            if self._fd is None:
                return
            try:
                os.fsync(self._fd)
            except OSError as e:
                raise StorageError(f"Failed to flush {self.path}: {e}") from e
            finally:
                os.close(self._fd)
                self._fd = None

        logger.info("Closed key-value store", location=str(self.location))

    def destroy(self) -> None:
        """Close the store and delete its directory."""
        with self._lock:
            if self._fd is not None:
                os.close(self._fd)
                self._fd = None
            self._index.clear()
            self._size = 0
            try:
                shutil.rmtree(self.location)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Failed to destroy store at {self.location}: {e}") from e

        logger.info("Destroyed key-value store", location=str(self.location))

    def __repr__(self) -> str:
        return (
            f"FileKVStore(location={str(self.location)!r}, "
            f"keys={len(self._index)}, size={self._size})"
        )
