"""Durable mapping of (topic, offset) to payload. Records are never deleted."""

from miniqueue.core.errors import CorruptionError, KeyNotFoundError
from miniqueue.core.kv.base import KeyValueStore, WriteBatch
from miniqueue.core.queue.keys import TopicName, log_key


class MessageLog:
    """Append-only message records, addressed by exact offset."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def read(self, topic: TopicName, offset: int) -> bytes:
        """
        Read the payload stored at an offset.

        Args:
            topic: Topic name
            offset: Message offset

        Returns:
            Payload bytes

        Raises:
            KeyNotFoundError: If no record exists at the offset
        """
        return self._kv.get(log_key(topic, offset))

    def read_assigned(self, topic: TopicName, offset: int) -> bytes:
        """
        Read a record whose offset has already been assigned.

        Raises:
            CorruptionError: If the record is missing
        """
        try:
            return self.read(topic, offset)
        except KeyNotFoundError as e:
            raise CorruptionError(
                f"Missing message record for topic {topic!r} at offset {offset}"
            ) from e

    def exists(self, topic: TopicName, offset: int) -> bool:
        return self._kv.has(log_key(topic, offset))

    def stage_append(self, batch: WriteBatch, topic: TopicName, offset: int, payload: bytes) -> None:
        batch.put(log_key(topic, offset), payload)
