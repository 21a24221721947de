"""
In-flight table: messages delivered by get_next but not yet settled.

An entry exists for (topic, offset) exactly between the delivery of that
offset and its settlement by ack, nack or back.
"""

from enum import Enum
from typing import NamedTuple, Optional

from miniqueue.core.errors import KeyNotFoundError
from miniqueue.core.kv.base import KeyValueStore, WriteBatch
from miniqueue.core.queue.keys import TopicName, inflight_key


class DeleteOutcome(Enum):
    """Result of removing an in-flight entry."""

    DELETED = "deleted"
    NOT_PRESENT = "not_present"


class Removal(NamedTuple):
    """Outcome of staging the removal of an entry, with the payload it held."""

    outcome: DeleteOutcome
    payload: Optional[bytes] = None


class InFlightTable:
    """Durable (topic, offset) -> payload markers for unsettled deliveries."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def get(self, topic: TopicName, offset: int) -> Optional[bytes]:
        """
        Look up an in-flight entry.

        Returns:
            The delivered payload, or None if the offset is not in flight
        """
        try:
            return self._kv.get(inflight_key(topic, offset))
        except KeyNotFoundError:
            return None

    def contains(self, topic: TopicName, offset: int) -> bool:
        return self._kv.has(inflight_key(topic, offset))

    def stage_put(self, batch: WriteBatch, topic: TopicName, offset: int, payload: bytes) -> None:
        batch.put(inflight_key(topic, offset), payload)

    def stage_remove(self, batch: WriteBatch, topic: TopicName, offset: int) -> Removal:
        """
        Stage the removal of an entry if it exists.

        Nothing is added to the batch when the entry is absent.

        Returns:
            DELETED with the entry's payload, or NOT_PRESENT
        """
        payload = self.get(topic, offset)
        if payload is None:
            return Removal(DeleteOutcome.NOT_PRESENT)

        batch.delete(inflight_key(topic, offset))
        return Removal(DeleteOutcome.DELETED, payload)

    def delete(self, topic: TopicName, offset: int) -> DeleteOutcome:
        """
        Remove an entry.

        Returns:
            DELETED if an entry was removed, NOT_PRESENT otherwise
        """
        batch = WriteBatch()
        removal = self.stage_remove(batch, topic, offset)
        if removal.outcome is DeleteOutcome.DELETED:
            self._kv.write(batch)
        return removal.outcome
