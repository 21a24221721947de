"""
Binary record format for the key-value file.

Every write, whether a single put/delete or a whole batch, becomes exactly one
record so that it is applied all-or-nothing during recovery.
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

import crc32c

from miniqueue.core.kv.base import BatchOp, OpType


class MagicByte(IntEnum):
    """Record format version."""

    V0 = 0
    CURRENT = V0


MAX_RECORD_SIZE = 256 * 1024 * 1024


@dataclass
class BatchRecord:
    """
    One atomically-applied group of operations.

    Wire format:
        Length (4 bytes) - Total length excluding this field
        CRC32C (4 bytes) - Checksum of remaining data
        Magic byte (1 byte) - Format version
        Op count (4 bytes) - Number of operations
        For each operation:
            Type (1 byte) - PUT or DELETE
            Key length (4 bytes)
            Key (variable)
            Value length (4 bytes) - -1 for DELETE
            Value (variable)
    """

    ops: List[BatchOp] = field(default_factory=list)
    magic_byte: int = MagicByte.CURRENT

    LENGTH_FIELD_SIZE = 4
    CRC_FIELD_SIZE = 4

    def serialize(self) -> bytes:
        """
        Serialize the record to bytes.

        Returns:
            Framed record ready to append
        """
        parts = [struct.pack(">BI", self.magic_byte, len(self.ops))]

        for op in self.ops:
            parts.append(struct.pack(">Bi", op.op_type, len(op.key)))
            parts.append(op.key)
            if op.op_type == OpType.PUT:
                parts.append(struct.pack(">i", len(op.value)))
                parts.append(op.value)
            else:
                parts.append(struct.pack(">i", -1))

        payload = b"".join(parts)
        crc = crc32c.crc32c(payload)
        total_length = self.CRC_FIELD_SIZE + len(payload)

        if total_length > MAX_RECORD_SIZE:
            raise ValueError(f"Record too large: {total_length} bytes")

        return struct.pack(">II", total_length, crc) + payload

    @classmethod
    def deserialize(cls, data: bytes) -> "BatchRecord":
        """
        Deserialize a framed record.

        Args:
            data: Bytes starting at the length field

        Returns:
            Decoded record

        Raises:
            ValueError: If data is truncated, corrupted or invalid
        """
        header_size = cls.LENGTH_FIELD_SIZE + cls.CRC_FIELD_SIZE
        if len(data) < header_size:
            raise ValueError(f"Data too short: {len(data)} bytes")

        length, crc = struct.unpack(">II", data[:header_size])

        if len(data) < cls.LENGTH_FIELD_SIZE + length:
            raise ValueError(
                f"Incomplete record: expected {cls.LENGTH_FIELD_SIZE + length} bytes, "
                f"got {len(data)} bytes"
            )

        payload = data[header_size : cls.LENGTH_FIELD_SIZE + length]

        computed_crc = crc32c.crc32c(payload)
        if computed_crc != crc:
            raise ValueError(f"CRC mismatch: expected {crc}, computed {computed_crc}")

        if len(payload) < 5:
            raise ValueError("Record payload too short")

        magic_byte, op_count = struct.unpack(">BI", payload[:5])
        if magic_byte != MagicByte.V0:
            raise ValueError(f"Unsupported magic byte: {magic_byte}")

        ops: List[BatchOp] = []
        pos = 5
        for _ in range(op_count):
            if pos + 5 > len(payload):
                raise ValueError("Truncated operation header")
            op_type, key_length = struct.unpack(">Bi", payload[pos : pos + 5])
            pos += 5

            if op_type not in (OpType.PUT, OpType.DELETE):
                raise ValueError(f"Unknown operation type: {op_type}")
            if key_length < 0 or pos + key_length + 4 > len(payload):
                raise ValueError(f"Invalid key length: {key_length}")

            key = payload[pos : pos + key_length]
            pos += key_length

            value_length = struct.unpack(">i", payload[pos : pos + 4])[0]
            pos += 4

            if op_type == OpType.DELETE:
                if value_length != -1:
                    raise ValueError("Delete operation carries a value")
                ops.append(BatchOp(OpType.DELETE, key))
                continue

            if value_length < 0 or pos + value_length > len(payload):
                raise ValueError(f"Invalid value length: {value_length}")
            ops.append(BatchOp(OpType.PUT, key, payload[pos : pos + value_length]))
            pos += value_length

        if pos != len(payload):
            raise ValueError(f"Trailing bytes in record: {len(payload) - pos}")

        return cls(ops=ops, magic_byte=magic_byte)

    def size(self) -> int:
        """Serialized size in bytes."""
        return len(self.serialize())
