"""
miniqueue - a durable, single-node, topic-based message queue.

Messages are appended to named topics and pulled one at a time. Every
delivery must be settled explicitly:
- ack: done
- nack: redeliver immediately
- back: requeue at the tail of the topic

State lives in an embedded append-only key-value file and survives restarts.
"""

__version__ = "0.1.0"

from miniqueue.core.errors import (
    CorruptionError,
    KeyNotFoundError,
    NackMsgNotExistError,
    NoMessageAvailableError,
    QueueError,
    StorageError,
    TopicNotExistError,
)
from miniqueue.core.queue.store import Delivery, QueueStore, open_store

__all__ = [
    "CorruptionError",
    "Delivery",
    "KeyNotFoundError",
    "NackMsgNotExistError",
    "NoMessageAvailableError",
    "QueueError",
    "QueueStore",
    "StorageError",
    "TopicNotExistError",
    "open_store",
]
