"""
Sequential reader for key-value record files.

Detects torn writes and checksum failures at the tail of the file so the
store can recover every record written before a crash. Damage anywhere
before the last record is reported as corruption instead.
"""

import os
from pathlib import Path
from typing import Iterator, Optional, Tuple

from miniqueue.core.kv.format import MAX_RECORD_SIZE, BatchRecord
from miniqueue.utils.logging import get_logger

logger = get_logger(__name__)


class RecordReader:
    """
    Reads framed records from a key-value file.

    Attributes:
        path: File being read
        valid_bytes: Bytes covered by records read successfully so far
        corruption: Description of damage found before the tail, or None
    """

    def __init__(self, path: Path):
        """
        Initialize a record reader.

        Args:
            path: Path to the record file

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        if not path.exists():
            raise FileNotFoundError(f"Record file not found: {path}")

        self.path = path
        self.valid_bytes = 0
        self.corruption: Optional[str] = None
        self._fd: Optional[int] = None

    def open(self) -> None:
        if self._fd is None:
            self._fd = os.open(self.path, os.O_RDONLY)

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = os.read(self._fd, remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def read_all(self) -> Iterator[BatchRecord]:
        """
        Read records from the start of the file.

        Stops at end of file or at the first record that is incomplete or
        fails validation. ``valid_bytes`` then marks the end of the last good
        record. If the bad record is not the last thing in the file,
        ``corruption`` describes it.

        Yields:
            Records in write order
        """
        self.open()
        file_size = os.fstat(self._fd).st_size
        os.lseek(self._fd, 0, os.SEEK_SET)
        self.valid_bytes = 0
        self.corruption = None

        while True:
            length_bytes = self._read_exact(BatchRecord.LENGTH_FIELD_SIZE)

            if len(length_bytes) == 0:
                break

            if len(length_bytes) < BatchRecord.LENGTH_FIELD_SIZE:
                logger.warning(
                    "Partial write detected at end of file",
                    path=str(self.path),
                    position=self.valid_bytes,
                    bytes_read=len(length_bytes),
                )
                break

            length = int.from_bytes(length_bytes, byteorder="big")

            if length <= BatchRecord.CRC_FIELD_SIZE or length > MAX_RECORD_SIZE:
                self.corruption = f"invalid record length {length} at position {self.valid_bytes}"
                logger.error(
                    "Invalid record length",
                    path=str(self.path),
                    position=self.valid_bytes,
                    length=length,
                )
                break

            remaining = self._read_exact(length)

            if len(remaining) < length:
                logger.warning(
                    "Incomplete record at end of file",
                    path=str(self.path),
                    position=self.valid_bytes,
                    expected=length,
                    got=len(remaining),
                )
                break

            record_end = self.valid_bytes + BatchRecord.LENGTH_FIELD_SIZE + length

            try:
                record = BatchRecord.deserialize(length_bytes + remaining)
            except ValueError as e:
                if record_end < file_size:
                    self.corruption = f"{e} in record at position {self.valid_bytes}"
                logger.error(
                    "Failed to deserialize record",
                    path=str(self.path),
                    position=self.valid_bytes,
                    at_tail=record_end >= file_size,
                    error=str(e),
                )
                break

            self.valid_bytes = record_end
            yield record

    def recover(self) -> Tuple[list, int]:
        """
        Read every valid record.

        Returns:
            Tuple of (valid records, bytes covered by them)
        """
        records = list(self.read_all())

        logger.info(
            "Recovery complete",
            path=str(self.path),
            records=len(records),
            bytes=self.valid_bytes,
            corrupt=self.corruption is not None,
        )

        return records, self.valid_bytes

    def __enter__(self) -> "RecordReader":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
