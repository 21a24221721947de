"""
Per-topic offset metadata.

A topic has two counters: the write offset (next offset Insert assigns) and
the read cursor (next offset GetNext delivers). Metadata is created lazily by
the first Insert; a topic without metadata is uninitialized.
"""

import json
from dataclasses import asdict, dataclass
from typing import Optional

from miniqueue.core.errors import CorruptionError
from miniqueue.core.kv.base import KeyValueStore, WriteBatch
from miniqueue.core.queue.keys import TopicName, meta_key
from miniqueue.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TopicMetadata:
    """
    Offsets of a topic.

    Attributes:
        write_offset: Next offset to assign on insert
        read_cursor: Next offset to deliver on get_next
    """
    write_offset: int = 0
    read_cursor: int = 0

    def __post_init__(self) -> None:
        if self.write_offset < 0:
            raise ValueError(f"Write offset must be non-negative, got {self.write_offset}")
        if self.read_cursor < 0:
            raise ValueError(f"Read cursor must be non-negative, got {self.read_cursor}")

    def has_pending(self) -> bool:
        """True if a message is waiting at the read cursor."""
        return self.read_cursor < self.write_offset

    def pending(self) -> int:
        return max(self.write_offset - self.read_cursor, 0)

    def to_bytes(self) -> bytes:
        return json.dumps(asdict(self), sort_keys=True).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> "TopicMetadata":
        """
        Decode stored metadata.

        Raises:
            ValueError: If the data is not valid metadata
        """
        try:
            fields = json.loads(data.decode())
            return cls(
                write_offset=int(fields["write_offset"]),
                read_cursor=int(fields["read_cursor"]),
            )
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise ValueError(f"Invalid topic metadata: {e}") from e


class TopicMetadataStore:
    """Reads and stages topic metadata in the key-value store."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def load(self, topic: TopicName) -> Optional[TopicMetadata]:
        """
        Load a topic's metadata.

        Args:
            topic: Topic name

        Returns:
            Metadata, or None if the topic is uninitialized

        Raises:
            CorruptionError: If stored metadata cannot be decoded
        """
        key = meta_key(topic)
        if not self._kv.has(key):
            return None

        data = self._kv.get(key)
        try:
            return TopicMetadata.from_bytes(data)
        except ValueError as e:
            logger.error("Corrupt topic metadata", key=key, error=str(e))
            raise CorruptionError(f"Corrupt metadata for topic {topic!r}: {e}") from e

    def stage(self, batch: WriteBatch, topic: TopicName, metadata: TopicMetadata) -> None:
        """Add a metadata write to the batch."""
        batch.put(meta_key(topic), metadata.to_bytes())
