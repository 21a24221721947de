"""Tests for key-value record serialization."""

import struct

import pytest

from miniqueue.core.kv.base import BatchOp, OpType, WriteBatch
from miniqueue.core.kv.format import BatchRecord, MagicByte


class TestBatchOp:
    """Test BatchOp validation."""

    def test_put_requires_bytes_value(self):
        """Test that a put with a non-bytes value is rejected."""
        with pytest.raises(TypeError, match="Value must be bytes"):
            BatchOp(OpType.PUT, b"key", "value")

    def test_key_must_be_bytes(self):
        """Test that a str key is rejected."""
        with pytest.raises(TypeError, match="Key must be bytes"):
            BatchOp(OpType.DELETE, "key")

    def test_delete_carries_no_value(self):
        """Test that a delete with a value is rejected."""
        with pytest.raises(ValueError):
            BatchOp(OpType.DELETE, b"key", b"value")


class TestBatchRecord:
    """Test BatchRecord serialization and deserialization."""

    def test_serialize_layout(self):
        """Test the framed layout of a single put."""
        record = BatchRecord(ops=[BatchOp(OpType.PUT, b"k", b"v")])

        data = record.serialize()

        length, _crc = struct.unpack(">II", data[:8])
        assert length == len(data) - 4
        assert data[8] == MagicByte.CURRENT
        assert struct.unpack(">I", data[9:13])[0] == 1

    def test_roundtrip_mixed_batch(self):
        """Test a batch with puts, deletes and an empty value."""
        batch = WriteBatch().put(b"a", b"1").delete(b"b").put(b"c", b"")

        data = BatchRecord(ops=list(batch)).serialize()
        decoded = BatchRecord.deserialize(data)

        assert decoded.ops == list(batch)

    def test_crc_mismatch(self):
        """Test that a flipped payload byte is detected."""
        data = bytearray(BatchRecord(ops=[BatchOp(OpType.PUT, b"key", b"value")]).serialize())
        data[-1] ^= 0xFF

        with pytest.raises(ValueError, match="CRC mismatch"):
            BatchRecord.deserialize(bytes(data))

    def test_truncated_record(self):
        """Test that a truncated record is rejected."""
        data = BatchRecord(ops=[BatchOp(OpType.PUT, b"key", b"value")]).serialize()

        with pytest.raises(ValueError, match="Incomplete record"):
            BatchRecord.deserialize(data[:-2])

    def test_data_too_short(self):
        """Test that a header fragment is rejected."""
        with pytest.raises(ValueError, match="Data too short"):
            BatchRecord.deserialize(b"\x00\x00")

    def test_size(self):
        """Test size matches serialized length."""
        record = BatchRecord(ops=[BatchOp(OpType.PUT, b"key", b"x" * 100)])

        assert record.size() == len(record.serialize())
