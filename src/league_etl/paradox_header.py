"""league_etl.paradox_header

Header block (block 0) of a legacy Paradox .DB table.

Key offsets:
  0-1    record size, little-endian int16
  6-9    record count, little-endian int32
  33     field count
  78     field type tags (one byte per field), followed directly by the
         field sizes (one byte per field)
  200+   field names, embedded among other header bytes

Field names carry no length table we know how to read, so they are
recovered by scanning for printable runs.  The result is best-effort and
may come up short; `TableHeader.field_name()` supplies `FieldN` labels for
any gaps.
"""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass

log = logging.getLogger(__name__)

BLOCK_SIZE = 2048
DATA_START = 2048
BLOCK_HEADER_SIZE = 6

FIELD_TYPES_OFFSET = 78
NAMES_SCAN_START = 200
MIN_HEADER_SIZE = 34

_PRINTABLE_RUN_RE = re.compile(rb"[\x20-\x7e]+")


class CorruptHeaderError(ValueError):
    """Raised when a table file is too short to hold the fixed header fields."""


# ---------------------------------------------------------------------------
# TableHeader
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TableHeader:
    record_size: int
    record_count: int
    field_count: int
    field_types: tuple[int, ...]
    field_sizes: tuple[int, ...]
    field_names: tuple[str, ...]
    table_name: str | None = None

    def field_name(self, index: int) -> str:
        if index < len(self.field_names):
            return self.field_names[index]
        return f"Field{index + 1}"

    @property
    def usable_field_count(self) -> int:
        """Fields with both a type tag and a size recovered."""
        return min(len(self.field_types), len(self.field_sizes))

    @property
    def names_complete(self) -> bool:
        return len(self.field_names) >= self.field_count


# ---------------------------------------------------------------------------
# Field name recovery
# ---------------------------------------------------------------------------

def _is_name_candidate(text: str) -> bool:
    if not 2 <= len(text) <= 30:
        return False
    if text.isdigit():
        return False
    return "ascii" not in text.lower()


def recover_field_names(
    data: bytes,
    field_count: int,
) -> tuple[list[str], str | None]:
    """Scan the header for printable runs and pick plausible field names.

    Returns (field_names, table_name).  A leading candidate ending in ".DB"
    is taken to be the table's own file name and is returned separately.
    """
    region = data[NAMES_SCAN_START:min(len(data), DATA_START)]
    candidates = [
        m.group().decode("ascii")
        for m in _PRINTABLE_RUN_RE.finditer(region)
    ]
    candidates = [c for c in candidates if _is_name_candidate(c)]

    table_name = None
    if candidates and candidates[0].upper().endswith(".DB"):
        table_name = candidates.pop(0)

    return candidates[:field_count], table_name


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------

def read_header(data: bytes) -> TableHeader:
    """Parse the fixed header fields and recover field names.

    Raises CorruptHeaderError if `data` is too short for the record size,
    record count and field count.  Type and size arrays are truncated
    rather than rejected when the buffer ends early.
    """
    if len(data) < MIN_HEADER_SIZE:
        raise CorruptHeaderError(
            f"table header needs {MIN_HEADER_SIZE} bytes, got {len(data)}"
        )

    (record_size,) = struct.unpack_from("<h", data, 0)
    (record_count,) = struct.unpack_from("<i", data, 6)
    field_count = data[33]

    types_end = FIELD_TYPES_OFFSET + field_count
    field_types = tuple(data[FIELD_TYPES_OFFSET:types_end])
    field_sizes = tuple(data[types_end:types_end + field_count])

    field_names, table_name = recover_field_names(data, field_count)

    header = TableHeader(
        record_size=record_size,
        record_count=record_count,
        field_count=field_count,
        field_types=field_types,
        field_sizes=field_sizes,
        field_names=tuple(field_names),
        table_name=table_name,
    )
    if header.usable_field_count < field_count:
        log.warning(
            "header declares %d fields but only %d type/size entries are present",
            field_count, header.usable_field_count,
        )
    if not header.names_complete:
        log.debug(
            "recovered %d of %d field names (table=%s)",
            len(field_names), field_count, table_name,
        )
    return header
