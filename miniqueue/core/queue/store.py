"""
Topic queue with explicit delivery settlement.

Producers insert payloads into named topics. Consumers pull one message at a
time with ``get_next`` and settle every delivery with one of:
- ``ack``: done, never delivered again
- ``nack``: retry immediately, the next ``get_next`` returns the same offset
- ``back``: retry later, the payload is re-inserted at the tail

Each topic has a single read cursor. Nacking an offset rewinds that cursor,
so nacking an older offset makes every offset after it pending again, even
ones that were already acked or are still in flight. Consumers are expected
to process a topic sequentially.

There is no delivery timeout: a message fetched by a consumer that never
settles it stays in flight until ack, nack or back is called.
"""

from pathlib import Path
from typing import NamedTuple, Optional, Union

from miniqueue.core.errors import (
    CorruptionError,
    NackMsgNotExistError,
    NoMessageAvailableError,
    TopicNotExistError,
)
from miniqueue.core.kv.base import KeyValueStore, WriteBatch
from miniqueue.core.kv.store import FileKVStore
from miniqueue.core.queue.inflight import DeleteOutcome, InFlightTable
from miniqueue.core.queue.keys import TopicName, normalize_topic, validate_offset
from miniqueue.core.queue.locks import TopicLockManager
from miniqueue.core.queue.message_log import MessageLog
from miniqueue.core.queue.metadata import TopicMetadata, TopicMetadataStore
from miniqueue.utils.config import Config, get_config
from miniqueue.utils.logging import get_logger

logger = get_logger(__name__)

Payload = Union[bytes, bytearray, memoryview]


class Delivery(NamedTuple):
    """A message handed out by get_next."""

    payload: bytes
    offset: int


def _to_bytes(payload: Payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    raise TypeError(f"Payload must be bytes, got {type(payload)}")


class QueueStore:
    """
    Topic log engine over a key-value store.

    Every state change of a topic happens while holding that topic's lock and
    is committed as one write batch, so it is linearizable with other
    operations on the topic and atomic across a crash.
    """

    def __init__(self, kv: KeyValueStore):
        """
        Initialize the engine.

        Args:
            kv: Underlying key-value store, owned by this instance from now on
        """
        self._kv = kv
        self._metadata = TopicMetadataStore(kv)
        self._log = MessageLog(kv)
        self._inflight = InFlightTable(kv)
        self._locks = TopicLockManager()

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    def _append_locked(
        self,
        batch: WriteBatch,
        topic: bytes,
        payload: bytes,
    ) -> int:
        """Stage a record at the tail and advance the write offset. Caller holds the topic lock."""
        metadata = self._metadata.load(topic) or TopicMetadata()
        offset = metadata.write_offset

        self._log.stage_append(batch, topic, offset, payload)
        metadata.write_offset = offset + 1
        self._metadata.stage(batch, topic, metadata)

        return offset

    def insert(self, topic: TopicName, payload: Payload) -> int:
        """
        Append a payload to a topic.

        The topic is created on its first insert.

        Args:
            topic: Topic name
            payload: Message bytes

        Returns:
            Offset assigned to the message

        Raises:
            StorageError: If the write fails
        """
        topic = normalize_topic(topic)
        payload = _to_bytes(payload)

        with self._locks.hold(topic):
            batch = WriteBatch()
            offset = self._append_locked(batch, topic, payload)
            self._kv.write(batch)

        logger.debug("Inserted message", topic=topic, offset=offset, size=len(payload))
        return offset

    def get_next(self, topic: TopicName) -> Delivery:
        """
        Deliver the message at the read cursor and mark it in flight.

        Args:
            topic: Topic name

        Returns:
            Delivery with the payload and its offset

        Raises:
            TopicNotExistError: If nothing was ever inserted into the topic
            NoMessageAvailableError: If the cursor has reached the write offset
            CorruptionError: If the record under the cursor is missing
            StorageError: If the storage fails
        """
        topic = normalize_topic(topic)

        with self._locks.hold(topic):
            metadata = self._metadata.load(topic)
            if metadata is None:
                raise TopicNotExistError(topic)

            if not metadata.has_pending():
                raise NoMessageAvailableError(topic)

            offset = metadata.read_cursor
            payload = self._log.read_assigned(topic, offset)

            batch = WriteBatch()
            self._inflight.stage_put(batch, topic, offset, payload)
            metadata.read_cursor = offset + 1
            self._metadata.stage(batch, topic, metadata)
            self._kv.write(batch)

        logger.debug("Delivered message", topic=topic, offset=offset)
        return Delivery(payload=payload, offset=offset)

    def ack(self, topic: TopicName, offset: int) -> None:
        """
        Settle a delivery permanently.

        Acking an offset that is not in flight succeeds without effect.

        Args:
            topic: Topic name
            offset: Delivered offset

        Raises:
            StorageError: If the storage fails
        """
        topic = normalize_topic(topic)
        validate_offset(offset)

        with self._locks.hold(topic):
            outcome = self._inflight.delete(topic, offset)

        logger.debug("Acked message", topic=topic, offset=offset, outcome=outcome.value)

    def nack(self, topic: TopicName, offset: int) -> None:
        """
        Settle a delivery for immediate retry.

        Rewinds the read cursor to ``offset``. Every offset between it and the
        previous cursor position becomes pending again.

        Args:
            topic: Topic name
            offset: Delivered offset

        Raises:
            NackMsgNotExistError: If the offset is not in flight
            CorruptionError: If the in-flight offset was never assigned
            StorageError: If the storage fails
        """
        topic = normalize_topic(topic)
        validate_offset(offset)

        with self._locks.hold(topic):
            batch = WriteBatch()
            removal = self._inflight.stage_remove(batch, topic, offset)
            if removal.outcome is DeleteOutcome.NOT_PRESENT:
                raise NackMsgNotExistError(topic, offset)

            metadata = self._metadata.load(topic)
            if metadata is None or offset >= metadata.write_offset:
                raise CorruptionError(
                    f"In-flight entry for unassigned offset {offset} on topic {topic!r}"
                )
            previous_cursor = metadata.read_cursor

            metadata.read_cursor = offset
            self._metadata.stage(batch, topic, metadata)
            self._kv.write(batch)

        if previous_cursor - offset > 1:
            logger.info(
                "Nack rewound cursor past later deliveries",
                topic=topic,
                offset=offset,
                previous_cursor=previous_cursor,
            )
        else:
            logger.debug("Nacked message", topic=topic, offset=offset)

    def back(self, topic: TopicName, offset: int) -> Optional[int]:
        """
        Settle a delivery for deferred retry.

        The payload is re-inserted at the tail of the topic under a new
        offset. The read cursor is untouched. Backing an offset that is not in
        flight succeeds without effect.

        Args:
            topic: Topic name
            offset: Delivered offset

        Returns:
            The new offset, or None if nothing was in flight

        Raises:
            StorageError: If the storage fails
        """
        topic = normalize_topic(topic)
        validate_offset(offset)

        with self._locks.hold(topic):
            batch = WriteBatch()
            removal = self._inflight.stage_remove(batch, topic, offset)
            if removal.outcome is DeleteOutcome.NOT_PRESENT:
                logger.debug("Back on offset not in flight", topic=topic, offset=offset)
                return None

            new_offset = self._append_locked(batch, topic, removal.payload)
            self._kv.write(batch)

        logger.debug("Sent message to back", topic=topic, offset=offset, new_offset=new_offset)
        return new_offset

    def topic_info(self, topic: TopicName) -> Optional[TopicMetadata]:
        """
        Current offsets of a topic.

        Returns:
            Metadata copy, or None if the topic is uninitialized
        """
        topic = normalize_topic(topic)
        with self._locks.hold(topic):
            return self._metadata.load(topic)

    def pending_count(self, topic: TopicName) -> int:
        """Number of messages between the read cursor and the write offset."""
        metadata = self.topic_info(topic)
        return metadata.pending() if metadata else 0

    def is_in_flight(self, topic: TopicName, offset: int) -> bool:
        topic = normalize_topic(topic)
        validate_offset(offset)
        return self._inflight.contains(topic, offset)

    def close(self) -> None:
        self._kv.close()

    def destroy(self) -> None:
        """Irreversibly remove all persisted state of this store."""
        self._kv.destroy()
        logger.info("Destroyed queue store")

    def __enter__(self) -> "QueueStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_store(
    location: Optional[Union[str, Path]] = None,
    config: Optional[Config] = None,
) -> QueueStore:
    """
    Open or create a durable queue store.

    Reopening the same location restores all topics, messages and in-flight
    entries.

    Args:
        location: Store directory; defaults to ``store.data_dir`` from config
        config: Configuration; the global one is used if None

    Returns:
        Queue store backed by a FileKVStore

    Raises:
        StorageError: If the store cannot be opened
    """
    config = config or get_config()
    location = Path(location or config.get("store.data_dir", "./data"))
    fsync = bool(config.get("store.fsync", True))

    kv = FileKVStore(location, fsync=fsync)

    logger.info("Opened queue store", location=str(location), fsync=fsync)
    return QueueStore(kv)
