"""Topic log engine: offsets, message log, in-flight table and delivery state machine."""

from miniqueue.core.queue.inflight import DeleteOutcome, InFlightTable
from miniqueue.core.queue.keys import (
    Namespace,
    OffsetKey,
    decode_offset_key,
    inflight_key,
    log_key,
    meta_key,
    normalize_topic,
)
from miniqueue.core.queue.locks import TopicLockManager
from miniqueue.core.queue.message_log import MessageLog
from miniqueue.core.queue.metadata import TopicMetadata, TopicMetadataStore
from miniqueue.core.queue.store import Delivery, QueueStore, open_store

__all__ = [
    "DeleteOutcome",
    "Delivery",
    "InFlightTable",
    "MessageLog",
    "Namespace",
    "OffsetKey",
    "QueueStore",
    "TopicLockManager",
    "TopicMetadata",
    "TopicMetadataStore",
    "decode_offset_key",
    "inflight_key",
    "log_key",
    "meta_key",
    "normalize_topic",
    "open_store",
]
