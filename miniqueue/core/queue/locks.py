"""Per-topic mutual exclusion."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator

from miniqueue.core.queue.keys import TopicName, normalize_topic


@dataclass
class _TopicLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


class TopicLockManager:
    """
    Hands out one lock per topic.

    Operations on the same topic are serialized; operations on different
    topics never contend beyond the brief lookup of their lock. A topic's
    lock only exists while some thread holds or waits for it, so the map is
    bounded by the number of topics in use at once.
    """

    def __init__(self) -> None:
        self._locks: Dict[bytes, _TopicLock] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, topic: bytes) -> _TopicLock:
        with self._guard:
            entry = self._locks.get(topic)
            if entry is None:
                entry = _TopicLock()
                self._locks[topic] = entry
            entry.holders += 1
            return entry

    def _release_entry(self, topic: bytes, entry: _TopicLock) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[topic]

    @contextmanager
    def hold(self, topic: TopicName) -> Iterator[None]:
        """Hold the topic's lock for the duration of the block."""
        topic = normalize_topic(topic)
        entry = self._acquire_entry(topic)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(topic, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
