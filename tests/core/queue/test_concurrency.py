"""Tests for concurrent access to the queue."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from miniqueue.core.errors import (
    NackMsgNotExistError,
    NoMessageAvailableError,
    TopicNotExistError,
)
from miniqueue.core.kv import MemoryKVStore
from miniqueue.core.queue.locks import TopicLockManager
from miniqueue.core.queue.metadata import TopicMetadata
from miniqueue.core.queue.store import QueueStore


@pytest.fixture
def store():
    s = QueueStore(MemoryKVStore())
    yield s
    s.destroy()


class TestTopicLockManager:
    """Test per-topic locks."""

    def test_same_topic_blocks(self):
        """Test a second holder of the same topic waits for the first."""
        locks = TopicLockManager()
        acquired = threading.Event()

        def other():
            with locks.hold(b"a"):
                acquired.set()

        with locks.hold("a"):
            t = threading.Thread(target=other)
            t.start()
            assert not acquired.wait(timeout=0.1)

        assert acquired.wait(timeout=5)
        t.join()

    def test_locks_released_after_use(self):
        """Test the lock map only holds topics currently in use."""
        locks = TopicLockManager()

        with locks.hold("a"):
            with locks.hold("a"):
                assert len(locks) == 1
            with locks.hold("b"):
                assert len(locks) == 2

        assert len(locks) == 0

    def test_unknown_topics_leave_no_locks(self, store):
        """Test polling topics that do not exist does not grow the lock map."""
        for i in range(100):
            with pytest.raises(TopicNotExistError):
                store.get_next(f"missing-{i}")
            assert store.pending_count(f"missing-{i}") == 0

        assert len(store._locks) == 0

    def test_distinct_topics_do_not_block(self):
        """Test holding one topic's lock leaves another topic available."""
        locks = TopicLockManager()
        acquired = threading.Event()

        def other():
            with locks.hold("b"):
                acquired.set()

        with locks.hold("a"):
            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=5)
            t.join()


class TestConcurrentAccess:
    """Test concurrent inserts and deliveries."""

    def test_concurrent_inserts_assign_dense_offsets(self, store):
        """Test racing inserts never skip or reuse an offset."""

        def writer(thread_id):
            return [store.insert("topic", f"{thread_id}-{i}".encode()) for i in range(50)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(writer, range(8)))

        offsets = sorted(o for batch in results for o in batch)
        assert offsets == list(range(400))
        assert store.topic_info("topic").write_offset == 400

    def test_concurrent_consumers_each_offset_once(self, store):
        """Test every offset is delivered to exactly one consumer."""
        for i in range(200):
            store.insert("topic", f"msg-{i}".encode())

        delivered = []
        delivered_lock = threading.Lock()

        def consumer():
            while True:
                try:
                    delivery = store.get_next("topic")
                except NoMessageAvailableError:
                    return
                store.ack("topic", delivery.offset)
                with delivered_lock:
                    delivered.append(delivery)

        threads = [threading.Thread(target=consumer) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(d.offset for d in delivered) == list(range(200))
        for d in delivered:
            assert d.payload == f"msg-{d.offset}".encode()

    def test_producers_and_back_on_same_topic(self, store):
        """Test back interleaved with inserts keeps offsets dense."""
        for i in range(20):
            store.insert("topic", f"msg-{i}".encode())

        def producer():
            for i in range(20):
                store.insert("topic", b"late")

        def requeuer():
            for _ in range(20):
                delivery = store.get_next("topic")
                store.back("topic", delivery.offset)

        threads = [threading.Thread(target=producer), threading.Thread(target=requeuer)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        metadata = store.topic_info("topic")
        assert metadata.write_offset == 60
        assert metadata.read_cursor == 20
        for offset in range(60):
            assert store.kv.has(f"log:topic:{offset}".encode())


def _race(first, second):
    """Run two callables at the same moment and return their results or exceptions."""
    barrier = threading.Barrier(2)
    results = [None, None]

    def run(index, fn):
        barrier.wait()
        try:
            results[index] = fn()
        except Exception as e:
            results[index] = e

    threads = [
        threading.Thread(target=run, args=(0, first)),
        threading.Thread(target=run, args=(1, second)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestSettlementRaces:
    """Test racing settlements of one in-flight offset."""

    ROUNDS = 50

    def _delivered(self):
        store = QueueStore(MemoryKVStore())
        store.insert("topic", b"a")
        store.insert("topic", b"b")
        delivery = store.get_next("topic")
        return store, delivery.offset

    def test_ack_races_nack(self):
        """Test exactly one of ack and nack takes effect."""
        for _ in range(self.ROUNDS):
            store, offset = self._delivered()

            ack_result, nack_result = _race(
                lambda: store.ack("topic", offset),
                lambda: store.nack("topic", offset),
            )

            assert ack_result is None
            assert not store.is_in_flight("topic", offset)
            metadata = store.topic_info("topic")
            assert metadata.write_offset == 2

            if isinstance(nack_result, NackMsgNotExistError):
                assert metadata.read_cursor == 1
            else:
                assert nack_result is None
                assert metadata.read_cursor == 0
                assert store.get_next("topic") == (b"a", 0)
            store.destroy()

    def test_ack_races_back(self):
        """Test back never requeues a message that ack already settled."""
        for _ in range(self.ROUNDS):
            store, offset = self._delivered()

            ack_result, back_result = _race(
                lambda: store.ack("topic", offset),
                lambda: store.back("topic", offset),
            )

            assert ack_result is None
            assert not store.is_in_flight("topic", offset)
            metadata = store.topic_info("topic")
            assert metadata.read_cursor == 1

            if back_result is None:
                assert metadata.write_offset == 2
                assert not store.kv.has(b"log:topic:2")
            else:
                assert back_result == 2
                assert metadata.write_offset == 3
                assert store.kv.get(b"log:topic:2") == b"a"
                assert not store.kv.has(b"log:topic:3")
            store.destroy()

    def test_nack_races_back(self):
        """Test nack and back on one offset never both take effect."""
        for _ in range(self.ROUNDS):
            store, offset = self._delivered()

            nack_result, back_result = _race(
                lambda: store.nack("topic", offset),
                lambda: store.back("topic", offset),
            )

            metadata = store.topic_info("topic")
            if isinstance(nack_result, NackMsgNotExistError):
                assert back_result == 2
                assert metadata == TopicMetadata(write_offset=3, read_cursor=1)
            else:
                assert nack_result is None
                assert back_result is None
                assert metadata == TopicMetadata(write_offset=2, read_cursor=0)
            assert not store.is_in_flight("topic", offset)
            store.destroy()

    def test_get_next_races_nack(self):
        """Test a delivery racing a nack sees the cursor either before or after the rewind."""
        for _ in range(self.ROUNDS):
            store, offset = self._delivered()

            delivery, nack_result = _race(
                lambda: store.get_next("topic"),
                lambda: store.nack("topic", offset),
            )

            assert nack_result is None
            assert delivery in ((b"a", 0), (b"b", 1))
            if delivery.offset == 0:
                assert store.topic_info("topic").read_cursor == 1
                assert store.is_in_flight("topic", 0)
            else:
                assert store.topic_info("topic").read_cursor == 0
                assert store.get_next("topic") == (b"a", 0)
            store.destroy()
