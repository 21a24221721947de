"""
Key-value storage capability used by the queue engine.

The engine only needs point lookups by exact key plus an atomic batch of
puts and deletes. No range scans are required.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator, List, Optional


class OpType(IntEnum):
    """Kind of mutation inside a write batch."""

    PUT = 1
    DELETE = 2


@dataclass(frozen=True)
class BatchOp:
    """
    A single mutation.

    Attributes:
        op_type: PUT or DELETE
        key: Target key
        value: New value for PUT, None for DELETE
    """
    op_type: OpType
    key: bytes
    value: Optional[bytes] = None

    def __post_init__(self) -> None:
        if not isinstance(self.key, bytes):
            raise TypeError(f"Key must be bytes, got {type(self.key)}")
        if self.op_type == OpType.PUT and not isinstance(self.value, bytes):
            raise TypeError(f"Value must be bytes, got {type(self.value)}")
        if self.op_type == OpType.DELETE and self.value is not None:
            raise ValueError("Delete operations carry no value")


@dataclass
class WriteBatch:
    """
    Ordered list of mutations applied atomically by ``KeyValueStore.write``.

    Later operations on the same key win.
    """
    ops: List[BatchOp] = field(default_factory=list)

    def put(self, key: bytes, value: bytes) -> "WriteBatch":
        self.ops.append(BatchOp(OpType.PUT, key, value))
        return self

    def delete(self, key: bytes) -> "WriteBatch":
        self.ops.append(BatchOp(OpType.DELETE, key))
        return self

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self) -> Iterator[BatchOp]:
        return iter(self.ops)


class KeyValueStore(ABC):
    """
    Ordered byte-key storage with atomic single-key and batch operations.

    Implementations raise ``StorageError`` (or a subclass) for every failure.
    """

    @abstractmethod
    def get(self, key: bytes) -> bytes:
        """
        Read a value.

        Raises:
            KeyNotFoundError: If the key is absent
        """

    @abstractmethod
    def has(self, key: bytes) -> bool:
        """Check whether a key is present."""

    @abstractmethod
    def write(self, batch: WriteBatch) -> None:
        """Apply every operation in the batch, all or none."""

    @abstractmethod
    def close(self) -> None:
        """Release resources. Further calls raise StorageError."""

    @abstractmethod
    def destroy(self) -> None:
        """Close the store and irreversibly remove all persisted state."""

    def put(self, key: bytes, value: bytes) -> None:
        """Durably write a single key."""
        self.write(WriteBatch().put(key, value))

    def delete(self, key: bytes) -> None:
        """Delete a single key. Deleting a missing key is not an error."""
        self.write(WriteBatch().delete(key))

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
