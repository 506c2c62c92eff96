"""league_etl.paradox_decode

Field value decoding for legacy Paradox (.DB) table records.

The on-disk conventions reproduced here:
  - An all-zero field is the universal null marker, whatever its type.
  - Signed integers, dates and times carry the sign in the top bit of the
    first byte.  Top bit set → non-negative magnitude in the remaining
    bits.  Top bit clear → negative, magnitude recovered by complementing
    every byte.
  - Floating point (Number, Currency) applies the same sign trick to an
    IEEE-754 double stored most-significant byte first.
  - Dates count days with 0001-01-01 as day 1.
"""

from __future__ import annotations

import enum
import struct
from datetime import date, datetime, time, timedelta
from typing import Union

ScalarValue = Union[str, int, float, bool, date, time, datetime]

MAX_DATE_DAYS = 3_000_000
MS_PER_DAY = 86_400_000

_TOP_BIT = 0x80
LOGICAL_TRUE = 0x81


# ---------------------------------------------------------------------------
# Type tags
# ---------------------------------------------------------------------------

class FieldType(enum.IntEnum):
    ALPHA = 0x01
    DATE = 0x02
    SHORT = 0x03
    LONG = 0x04
    CURRENCY = 0x05
    NUMBER = 0x06
    LOGICAL = 0x09
    MEMO = 0x0C
    BLOB = 0x0D
    TIME = 0x14
    TIMESTAMP = 0x15
    AUTOINC = 0x16


_TYPE_NAMES: dict[int, str] = {
    FieldType.ALPHA: "Alpha",
    FieldType.DATE: "Date",
    FieldType.SHORT: "Short",
    FieldType.LONG: "Long",
    FieldType.CURRENCY: "Currency",
    FieldType.NUMBER: "Number",
    FieldType.LOGICAL: "Logical",
    FieldType.MEMO: "Memo",
    FieldType.BLOB: "BLOB",
    FieldType.TIME: "Time",
    FieldType.TIMESTAMP: "Timestamp",
    FieldType.AUTOINC: "AutoInc",
}


def type_name(type_tag: int) -> str:
    """Human-readable label for a type tag, e.g. 'Long' or 'Unknown(0x1F)'."""
    name = _TYPE_NAMES.get(type_tag)
    return name if name else f"Unknown(0x{type_tag:02X})"


# ---------------------------------------------------------------------------
# Bias-encoded integers
# ---------------------------------------------------------------------------

def _decode_biased_int(raw: bytes, width: int) -> int | None:
    """Decode a top-bit-signed integer spanning the first `width` bytes."""
    if len(raw) < width:
        return None
    span = raw[:width]
    if span[0] & _TOP_BIT:
        return int.from_bytes(bytes([span[0] & 0x7F]) + span[1:], "big")
    if not any(span):
        return 0
    inverted = bytes(b ^ 0xFF for b in span)
    return -int.from_bytes(bytes([inverted[0] & 0x7F]) + inverted[1:], "big")


def _decode_day_count(raw: bytes) -> date | None:
    """Positive day count (top bit set) → date; anything else → None."""
    if len(raw) < 4 or not raw[0] & _TOP_BIT:
        return None
    days = _decode_biased_int(raw, 4)
    if days is None or days <= 0 or days >= MAX_DATE_DAYS:
        return None
    return date.fromordinal(days)


def _decode_millis(raw: bytes) -> int | None:
    if len(raw) < 4:
        return None
    ms = _decode_biased_int(raw, 4)
    if ms is None or ms < 0:
        return None
    return ms


# ---------------------------------------------------------------------------
# Per-type decoders
# ---------------------------------------------------------------------------

def decode_text(raw: bytes) -> str:
    """Bytes up to the first NUL, as single-byte characters, trimmed."""
    end = raw.find(b"\x00")
    if end < 0:
        end = len(raw)
    return raw[:end].decode("latin-1").strip()


def decode_short(raw: bytes) -> int | None:
    return _decode_biased_int(raw, 2)


def decode_long(raw: bytes) -> int | None:
    return _decode_biased_int(raw, 4)


def decode_date(raw: bytes) -> date | None:
    return _decode_day_count(raw)


def decode_number(raw: bytes) -> float | None:
    """Decode a sign-flipped, byte-reversed IEEE-754 double."""
    if len(raw) < 8:
        return None
    span = bytearray(raw[:8])
    if span[0] & _TOP_BIT:
        span[0] ^= _TOP_BIT
    else:
        span = bytearray(b ^ 0xFF for b in span)
    span.reverse()
    return struct.unpack("<d", bytes(span))[0]


def decode_logical(raw: bytes) -> bool:
    return bool(raw) and raw[0] == LOGICAL_TRUE


def decode_time(raw: bytes) -> time | None:
    """Milliseconds since midnight → time; out-of-day values → None."""
    ms = _decode_millis(raw)
    if ms is None or ms >= MS_PER_DAY:
        return None
    return (datetime.min + timedelta(milliseconds=ms)).time()


def decode_timestamp(raw: bytes) -> datetime | None:
    """Date in bytes 0–3, time-of-day in bytes 4–7.

    The time part only contributes when its top bit is set; an unset time
    means midnight.  Without a decodable date there is no value.
    """
    if len(raw) < 8:
        return None
    day = _decode_day_count(raw[:4])
    if day is None:
        return None
    stamp = datetime.combine(day, time.min)
    if raw[4] & _TOP_BIT:
        ms = _decode_millis(raw[4:8])
        if ms:
            stamp += timedelta(milliseconds=ms)
    return stamp


def _decode_fallback(raw: bytes) -> str | None:
    text = decode_text(raw)
    return text if text else None


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def decode_field(raw: bytes, type_tag: int) -> ScalarValue | None:
    """Decode one field's bytes according to its type tag.

    Returns None for the all-zero null marker and for values the legacy
    encoding cannot represent (non-positive dates, short slices).
    Unrecognised tags fall back to text decoding.
    """
    if not any(raw):
        return None

    try:
        kind = FieldType(type_tag)
    except ValueError:
        return _decode_fallback(raw)

    if kind is FieldType.ALPHA:
        return decode_text(raw)
    if kind is FieldType.DATE:
        return decode_date(raw)
    if kind is FieldType.SHORT:
        return decode_short(raw)
    if kind in (FieldType.LONG, FieldType.AUTOINC):
        return decode_long(raw)
    if kind in (FieldType.CURRENCY, FieldType.NUMBER):
        return decode_number(raw)
    if kind is FieldType.LOGICAL:
        return decode_logical(raw)
    if kind is FieldType.TIME:
        return decode_time(raw)
    if kind is FieldType.TIMESTAMP:
        return decode_timestamp(raw)
    # MEMO / BLOB: the .DB file only holds a stub pointing into the .MB file.
    return _decode_fallback(raw)
