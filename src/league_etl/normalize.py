"""Normalization functions for legacy league table ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: canonical_case  (stored display form for team/player names)
# ---------------------------------------------------------------------------

def canonical_case(value: str | None) -> str | None:
    """Upper-case with collapsed whitespace.

    The legacy tool stored team and player names in capitals; the target
    store keeps that convention so re-imports compare equal.
    """
    v = normalize_space(value)
    if v is None:
        return None
    return v.upper()


# ---------------------------------------------------------------------------
# Rule 4: normalize_key  (natural-key comparisons in the target store)
# ---------------------------------------------------------------------------

def normalize_key(value: str | None) -> str | None:
    """Case-fold and collapse whitespace for natural-key lookups.

    Accents are stripped so that "Café" and "Cafe" resolve to one venue.
    """
    v = normalize_space(value)
    if v is None:
        return None
    v = unicodedata.normalize("NFKD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    return v.casefold()


# ---------------------------------------------------------------------------
# Helper: split_player_name
# ---------------------------------------------------------------------------

def split_player_name(full_name: str | None) -> tuple[str | None, str | None]:
    """Split a full name into (first_name, last_name), both canonical case.

    The first whitespace-separated token is the first name; every remaining
    token forms the last name.

    - "John Smith"       → ("JOHN", "SMITH")
    - "Mary Ann O'Neill" → ("MARY", "ANN O'NEILL")
    - Single token       → (token, None)
    """
    v = canonical_case(full_name)
    if not v:
        return (None, None)
    tokens = v.split(" ")
    if len(tokens) == 1:
        return (tokens[0], None)
    return (tokens[0], " ".join(tokens[1:]))


# ---------------------------------------------------------------------------
# Helper: join_address
# ---------------------------------------------------------------------------

def join_address(*lines: str | None) -> str | None:
    """Join non-blank address lines with ', '."""
    parts = [v for v in (normalize_space(line) for line in lines) if v]
    return ", ".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Helper: parse_iso_date
# ---------------------------------------------------------------------------

def parse_iso_date(value: str | None) -> date | None:
    """Parse 'YYYY-MM-DD' (optionally with a time part), or None."""
    v = trim(value)
    if v is None:
        return None
    try:
        return datetime.fromisoformat(v).date()
    except ValueError:
        return None
