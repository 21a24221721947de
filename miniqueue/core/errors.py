"""
Error taxonomy for the queue.

Delivery outcomes a caller is expected to handle derive from ``QueueError``.
Failures of the underlying key-value storage derive from ``StorageError``
and are always surfaced, never retried internally.
"""


class QueueError(Exception):
    """Base class for delivery-level errors."""
    pass


class TopicNotExistError(QueueError):
    """Raised by get_next on a topic that has never been inserted into."""

    def __init__(self, topic: bytes):
        self.topic = topic
        super().__init__(f"Topic does not exist: {topic!r}")


class NoMessageAvailableError(QueueError):
    """Raised by get_next when the read cursor has caught up with the write offset."""

    def __init__(self, topic: bytes):
        self.topic = topic
        super().__init__(f"No message available on topic: {topic!r}")


class NackMsgNotExistError(QueueError):
    """Raised by nack when the offset has no in-flight entry."""

    def __init__(self, topic: bytes, offset: int):
        self.topic = topic
        self.offset = offset
        super().__init__(f"No in-flight message to nack: topic={topic!r} offset={offset}")


class StorageError(Exception):
    """Raised for any failure of the underlying key-value storage."""
    pass


class KeyNotFoundError(StorageError):
    """Raised when a key is absent from the key-value store."""

    def __init__(self, key: bytes):
        self.key = key
        super().__init__(f"Key not found: {key!r}")


class CorruptionError(StorageError):
    """Raised when stored data is missing or cannot be decoded."""
    pass
