"""
Key layout for queue state in the key-value store.

Three disjoint namespaces:
- ``log:{topic}:{offset}``       message records
- ``inflight:{topic}:{offset}``  delivered but unsettled messages
- ``meta:{topic}``               write offset and read cursor

All lookups are by exact key, so key ordering is never relied upon.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

TopicName = Union[str, bytes]

SEPARATOR = b":"


class Namespace(Enum):
    """Key prefixes."""

    LOG = b"log"
    INFLIGHT = b"inflight"
    META = b"meta"


def normalize_topic(topic: TopicName) -> bytes:
    """
    Convert a topic name to bytes.

    Args:
        topic: Topic as str (UTF-8 encoded) or bytes

    Returns:
        Topic bytes

    Raises:
        TypeError: If topic is neither str nor bytes
        ValueError: If topic is empty
    """
    if isinstance(topic, str):
        topic = topic.encode("utf-8")
    elif isinstance(topic, (bytearray, memoryview)):
        topic = bytes(topic)
    elif not isinstance(topic, bytes):
        raise TypeError(f"Topic must be str or bytes, got {type(topic)}")

    if not topic:
        raise ValueError("Topic must not be empty")

    return topic


def validate_offset(offset: int) -> int:
    if isinstance(offset, bool) or not isinstance(offset, int):
        raise TypeError(f"Offset must be an int, got {type(offset)}")
    if offset < 0:
        raise ValueError(f"Offset must be non-negative, got {offset}")
    return offset


def _offset_key(namespace: Namespace, topic: TopicName, offset: int) -> bytes:
    return SEPARATOR.join(
        [namespace.value, normalize_topic(topic), str(validate_offset(offset)).encode("ascii")]
    )


def log_key(topic: TopicName, offset: int) -> bytes:
    """Key of the message record at (topic, offset)."""
    return _offset_key(Namespace.LOG, topic, offset)


def inflight_key(topic: TopicName, offset: int) -> bytes:
    """Key of the in-flight entry at (topic, offset)."""
    return _offset_key(Namespace.INFLIGHT, topic, offset)


def meta_key(topic: TopicName) -> bytes:
    """Key of the topic's metadata."""
    return SEPARATOR.join([Namespace.META.value, normalize_topic(topic)])


@dataclass(frozen=True)
class OffsetKey:
    """Decoded form of a log or in-flight key."""

    namespace: Namespace
    topic: bytes
    offset: int

    def encode(self) -> bytes:
        return _offset_key(self.namespace, self.topic, self.offset)


def decode_offset_key(key: bytes) -> OffsetKey:
    """
    Parse a log or in-flight key.

    The offset follows the last separator, so topic names may contain ``:``.

    Args:
        key: Encoded key

    Returns:
        Decoded key

    Raises:
        ValueError: If the key is not a valid log or in-flight key
    """
    prefix, sep, rest = key.partition(SEPARATOR)
    if not sep:
        raise ValueError(f"Invalid key: {key!r}")

    try:
        namespace = Namespace(prefix)
    except ValueError:
        raise ValueError(f"Unknown key namespace: {prefix!r}") from None

    if namespace == Namespace.META:
        raise ValueError(f"Metadata keys carry no offset: {key!r}")

    topic, sep, raw_offset = rest.rpartition(SEPARATOR)
    if not sep or not topic or not raw_offset.isdigit():
        raise ValueError(f"Invalid offset key: {key!r}")

    return OffsetKey(namespace=namespace, topic=topic, offset=int(raw_offset))
