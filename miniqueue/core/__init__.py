"""Core components: key-value storage and the topic queue engine."""

from miniqueue.core import errors, kv, queue

__all__ = ["errors", "kv", "queue"]
