"""league_etl.paradox_records

Walks the data blocks of a Paradox .DB table and yields decoded records.

Data starts at block 1.  Every block begins with a 6-byte block header
followed by as many fixed-width records as fit in the remaining space.
A file that ends early simply produces fewer records.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from league_etl.paradox_decode import ScalarValue, decode_field
from league_etl.paradox_header import (
    BLOCK_HEADER_SIZE,
    BLOCK_SIZE,
    DATA_START,
    TableHeader,
    read_header,
)

log = logging.getLogger(__name__)

RawRecord = dict[str, ScalarValue]


def records_per_block(header: TableHeader) -> int:
    if header.record_size <= 0:
        return 1
    return max(1, (BLOCK_SIZE - BLOCK_HEADER_SIZE) // header.record_size)


def record_offset(index: int, header: TableHeader) -> int:
    """Byte offset of logical record `index` within the file."""
    per_block = records_per_block(header)
    block, slot = divmod(index, per_block)
    return DATA_START + block * BLOCK_SIZE + BLOCK_HEADER_SIZE + slot * header.record_size


def decode_record(record: bytes, header: TableHeader) -> RawRecord:
    """Decode the fields of one record slice, stopping at the slice end."""
    out: RawRecord = {}
    pos = 0
    for i in range(header.usable_field_count):
        size = header.field_sizes[i]
        if pos + size > len(record):
            break
        value = decode_field(record[pos:pos + size], header.field_types[i])
        if value is not None:
            out[header.field_name(i)] = value
        pos += size
    return out


class TableRecords:
    """Restartable iterable over the decoded records of one table.

    Each call to iter() walks the blocks from the start again, so the same
    instance can be consumed more than once.
    """

    def __init__(self, data: bytes, header: TableHeader) -> None:
        self._data = data
        self.header = header

    def __iter__(self) -> Iterator[RawRecord]:
        header = self.header
        if header.record_size <= 0 or header.record_count <= 0:
            return
        size = header.record_size
        for index in range(header.record_count):
            start = record_offset(index, header)
            end = start + size
            if end > len(self._data):
                log.info(
                    "table truncated: %d of %d records present",
                    index, header.record_count,
                )
                return
            yield decode_record(self._data[start:end], header)

    def __repr__(self) -> str:
        return (
            f"TableRecords(record_count={self.header.record_count}, "
            f"record_size={self.header.record_size})"
        )


def read_table(path: Path) -> tuple[TableHeader, TableRecords]:
    """Read a .DB file once and return its header and record iterable."""
    data = Path(path).read_bytes()
    header = read_header(data)
    return header, TableRecords(data, header)
