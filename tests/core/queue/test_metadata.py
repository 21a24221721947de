"""Tests for topic metadata, the message log and the in-flight table."""

import pytest

from miniqueue.core.errors import CorruptionError, KeyNotFoundError
from miniqueue.core.kv import MemoryKVStore, WriteBatch
from miniqueue.core.queue.inflight import DeleteOutcome, InFlightTable
from miniqueue.core.queue.keys import inflight_key, meta_key
from miniqueue.core.queue.message_log import MessageLog
from miniqueue.core.queue.metadata import TopicMetadata, TopicMetadataStore


@pytest.fixture
def kv():
    store = MemoryKVStore()
    yield store
    store.close()


class TestTopicMetadata:
    """Test TopicMetadata."""

    def test_defaults(self):
        metadata = TopicMetadata()

        assert metadata.write_offset == 0
        assert metadata.read_cursor == 0
        assert not metadata.has_pending()

    def test_pending(self):
        metadata = TopicMetadata(write_offset=5, read_cursor=2)

        assert metadata.has_pending()
        assert metadata.pending() == 3

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            TopicMetadata(write_offset=-1)

    def test_bytes_roundtrip(self):
        metadata = TopicMetadata(write_offset=7, read_cursor=3)

        assert TopicMetadata.from_bytes(metadata.to_bytes()) == metadata

    def test_from_invalid_bytes(self):
        with pytest.raises(ValueError):
            TopicMetadata.from_bytes(b"not json")


class TestTopicMetadataStore:
    """Test TopicMetadataStore."""

    def test_uninitialized_topic(self, kv):
        assert TopicMetadataStore(kv).load("topic") is None

    def test_stage_and_load(self, kv):
        store = TopicMetadataStore(kv)
        batch = WriteBatch()

        store.stage(batch, "topic", TopicMetadata(write_offset=2, read_cursor=1))
        kv.write(batch)

        assert store.load("topic") == TopicMetadata(write_offset=2, read_cursor=1)

    def test_corrupt_metadata(self, kv):
        kv.put(meta_key("topic"), b"\xff\xfe")

        with pytest.raises(CorruptionError):
            TopicMetadataStore(kv).load("topic")


class TestMessageLog:
    """Test MessageLog."""

    def test_append_and_read(self, kv):
        log = MessageLog(kv)
        batch = WriteBatch()

        log.stage_append(batch, "topic", 0, b"payload")
        kv.write(batch)

        assert log.read("topic", 0) == b"payload"
        assert log.exists("topic", 0)
        assert not log.exists("topic", 1)

    def test_read_missing(self, kv):
        with pytest.raises(KeyNotFoundError):
            MessageLog(kv).read("topic", 0)

    def test_read_assigned_missing_is_corruption(self, kv):
        with pytest.raises(CorruptionError):
            MessageLog(kv).read_assigned("topic", 3)


class TestInFlightTable:
    """Test InFlightTable."""

    def test_get_absent(self, kv):
        assert InFlightTable(kv).get("topic", 0) is None

    def test_put_get_contains(self, kv):
        table = InFlightTable(kv)
        batch = WriteBatch()

        table.stage_put(batch, "topic", 4, b"payload")
        kv.write(batch)

        assert table.get("topic", 4) == b"payload"
        assert table.contains("topic", 4)
        assert kv.has(inflight_key("topic", 4))

    def test_stage_remove(self, kv):
        """Test staged removal reports the outcome and the payload it removes."""
        table = InFlightTable(kv)
        kv.put(inflight_key("topic", 2), b"payload")
        batch = WriteBatch()

        removal = table.stage_remove(batch, "topic", 2)

        assert removal.outcome is DeleteOutcome.DELETED
        assert removal.payload == b"payload"
        assert table.contains("topic", 2)

        kv.write(batch)
        assert not table.contains("topic", 2)

    def test_stage_remove_absent(self, kv):
        table = InFlightTable(kv)
        batch = WriteBatch()

        removal = table.stage_remove(batch, "topic", 2)

        assert removal.outcome is DeleteOutcome.NOT_PRESENT
        assert removal.payload is None
        assert len(batch) == 0

    def test_delete_outcomes(self, kv):
        """Test delete reports whether an entry was removed."""
        table = InFlightTable(kv)
        kv.put(inflight_key("topic", 1), b"payload")

        assert table.delete("topic", 1) == DeleteOutcome.DELETED
        assert table.delete("topic", 1) == DeleteOutcome.NOT_PRESENT
        assert not table.contains("topic", 1)
