"""league_etl.parse_tables

Per-table parsers: decoded Paradox records → typed staging records.

Column names recovered from the table header are approximate, so every
logical field is looked up through a list of historical aliases (see
`settings.DEFAULT_FIELD_ALIASES`), compared case-insensitively and tried
in order.  The first alias holding a usable value wins.

Filtering rules:
  division  empty or placeholder name ("test") → skipped
  venue     empty name → skipped
  team      empty name → skipped
  player    empty or placeholder name ("Void Frame") → skipped
  match     home or away team unset (0 / missing) → skipped
  singles   match unset or winner empty → skipped
  doubles   match unset or winner empty → skipped

A missing legacy id falls back to the row's position among accepted rows.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterator

from league_etl.normalize import (
    canonical_case,
    join_address,
    normalize_space,
    parse_iso_date,
    split_player_name,
)
from league_etl.paradox_header import read_header
from league_etl.paradox_records import RawRecord, TableRecords
from league_etl.settings import ImportSettings
from league_etl.staging import (
    FrameWinner,
    StagedDivision,
    StagedDoublesFrame,
    StagedMatch,
    StagedPlayer,
    StagedSinglesFrame,
    StagedTeam,
    StagedVenue,
)

log = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"1", "true", "yes"})


# ---------------------------------------------------------------------------
# Alias lookups
# ---------------------------------------------------------------------------

def _candidates(record: RawRecord, names: tuple[str, ...] | list[str]) -> Iterator[Any]:
    """Yield non-None values for each alias present in the record, in alias order."""
    by_lower = {k.lower(): k for k in record}
    for name in names:
        key = by_lower.get(name.lower())
        if key is not None and record[key] is not None:
            yield record[key]


def get_int(record: RawRecord, *names: str) -> int | None:
    for value in _candidates(record, names):
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                continue
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                continue
    return None


def get_str(record: RawRecord, *names: str) -> str | None:
    for value in _candidates(record, names):
        text = str(value).strip()
        if text:
            return text
    return None


def get_bool(record: RawRecord, *names: str) -> bool:
    for value in _candidates(record, names):
        if isinstance(value, bool):
            return value
        if str(value).strip().lower() in _TRUE_STRINGS:
            return True
    return False


def get_date(record: RawRecord, *names: str) -> date | None:
    for value in _candidates(record, names):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        parsed = parse_iso_date(str(value))
        if parsed is not None:
            return parsed
    return None


class _Fields:
    """Alias-aware accessors for one record of one table kind."""

    def __init__(self, record: RawRecord, settings: ImportSettings, kind: str) -> None:
        self._record = record
        self._settings = settings
        self._kind = kind

    def _names(self, logical_field: str) -> list[str]:
        return self._settings.aliases_for(self._kind, logical_field)

    def as_int(self, logical_field: str) -> int | None:
        return get_int(self._record, *self._names(logical_field))

    def as_str(self, logical_field: str) -> str | None:
        return get_str(self._record, *self._names(logical_field))

    def as_bool(self, logical_field: str) -> bool:
        return get_bool(self._record, *self._names(logical_field))

    def as_date(self, logical_field: str) -> date | None:
        return get_date(self._record, *self._names(logical_field))


# ---------------------------------------------------------------------------
# Parse result
# ---------------------------------------------------------------------------

@dataclass
class TableParseResult:
    kind: str
    source_name: str
    entities: list = field(default_factory=list)
    records_read: int = 0
    skipped_placeholder: int = 0
    skipped_invalid: int = 0
    warnings: list[str] = field(default_factory=list)


def _records(
    data: bytes,
    result: TableParseResult,
    settings: ImportSettings,
) -> Iterator[_Fields]:
    header = read_header(data)
    if header.record_count <= 0:
        result.warnings.append(f"{result.source_name} contains no records")
        return
    for record in TableRecords(data, header):
        result.records_read += 1
        yield _Fields(record, settings, result.kind)


def _finish(result: TableParseResult, noun: str) -> TableParseResult:
    log.info(
        "Parsed %d %s from %s (%d records read)",
        len(result.entities), noun, result.source_name, result.records_read,
    )
    if result.skipped_placeholder:
        log.info(
            "Skipped %d placeholder rows in %s",
            result.skipped_placeholder, result.source_name,
        )
    return result


# ---------------------------------------------------------------------------
# Reference tables
# ---------------------------------------------------------------------------

def parse_division_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Division.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("division", source_name)
    for f in _records(data, result, settings):
        abbreviated = f.as_str("abbreviated")
        full_name = normalize_space(f.as_str("full_name")) or normalize_space(abbreviated)
        if not full_name:
            result.skipped_invalid += 1
            continue
        if settings.is_placeholder("division", full_name):
            result.skipped_placeholder += 1
            continue
        result.entities.append(StagedDivision(
            legacy_id=_fallback_id(f.as_int("legacy_id"), result),
            full_name=full_name,
            abbreviated=abbreviated,
        ))
    return _finish(result, "divisions")


def parse_venue_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Venue.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("venue", source_name)
    for f in _records(data, result, settings):
        name = normalize_space(f.as_str("name"))
        if not name:
            result.skipped_invalid += 1
            continue
        result.entities.append(StagedVenue(
            legacy_id=_fallback_id(f.as_int("legacy_id"), result),
            name=name,
            address=join_address(*(f.as_str(f"address_line{n}") for n in range(1, 5))),
        ))
    return _finish(result, "venues")


def parse_team_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Team.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("team", source_name)
    for f in _records(data, result, settings):
        name = canonical_case(f.as_str("name"))
        if not name:
            result.skipped_invalid += 1
            continue
        result.entities.append(StagedTeam(
            legacy_id=_fallback_id(f.as_int("legacy_id"), result),
            name=name,
            venue_legacy_id=f.as_int("venue"),
            division_legacy_id=f.as_int("division"),
            captain=normalize_space(f.as_str("captain")),
            contact_address=join_address(
                *(f.as_str(f"contact_address{n}") for n in range(1, 5))
            ),
            withdrawn=f.as_bool("withdrawn"),
            remove_results=f.as_bool("remove_results"),
            wins=f.as_int("wins") or 0,
            losses=f.as_int("losses") or 0,
            draws=f.as_int("draws") or 0,
            singles_wins=f.as_int("singles_wins") or 0,
            singles_losses=f.as_int("singles_losses") or 0,
            doubles_wins=f.as_int("doubles_wins") or 0,
            doubles_losses=f.as_int("doubles_losses") or 0,
            points=f.as_int("points") or 0,
            played=f.as_int("played") or 0,
            points_deduction=f.as_int("deduction") or 0,
        ))
    return _finish(result, "teams")


def parse_player_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Player.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("player", source_name)
    for f in _records(data, result, settings):
        raw_name = f.as_str("full_name")
        if not raw_name:
            result.skipped_invalid += 1
            continue
        if settings.is_placeholder("player", raw_name):
            result.skipped_placeholder += 1
            continue
        first, last = split_player_name(raw_name)
        result.entities.append(StagedPlayer(
            legacy_id=_fallback_id(f.as_int("legacy_id"), result),
            full_name=canonical_case(raw_name),
            first_name=first,
            last_name=last,
            team_legacy_id=f.as_int("team"),
            played=f.as_int("played") or 0,
            wins=f.as_int("wins") or 0,
            losses=f.as_int("losses") or 0,
            current_rating=f.as_int("current_rating"),
            best_rating=f.as_int("best_rating"),
            best_rating_date=f.as_date("best_rating_date"),
            eight_balls=f.as_int("eight_balls") or 0,
        ))
    return _finish(result, "players")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def parse_match_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Match.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("match", source_name)
    for f in _records(data, result, settings):
        home = f.as_int("home_team") or 0
        away = f.as_int("away_team") or 0
        if home == 0 or away == 0:
            result.skipped_invalid += 1
            continue
        result.entities.append(StagedMatch(
            legacy_id=_fallback_id(f.as_int("legacy_id"), result),
            home_team_legacy_id=home,
            away_team_legacy_id=away,
            match_date=f.as_date("match_date"),
            division_name=normalize_space(f.as_str("division_name")),
            home_singles_wins=f.as_int("home_singles_wins") or 0,
            away_singles_wins=f.as_int("away_singles_wins") or 0,
            home_doubles_wins=f.as_int("home_doubles_wins") or 0,
            away_doubles_wins=f.as_int("away_doubles_wins") or 0,
        ))
    if result.entities:
        dates = [m.match_date for m in result.entities if m.match_date]
        if dates:
            log.info("%s date range: %s to %s", source_name, min(dates), max(dates))
    return _finish(result, "matches")


def parse_singles_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Single.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("singles", source_name)
    for f in _records(data, result, settings):
        match_no = f.as_int("match_no") or 0
        winner = f.as_str("winner")
        if match_no == 0 or not winner:
            result.skipped_invalid += 1
            continue
        result.entities.append(StagedSinglesFrame(
            match_no=match_no,
            frame_number=_fallback_id(f.as_int("frame_number"), result),
            winner=FrameWinner.from_text(winner),
            home_player_legacy_id=f.as_int("home_player"),
            away_player_legacy_id=f.as_int("away_player"),
            eight_ball=f.as_bool("eight_ball"),
        ))
    return _finish(result, "singles frames")


def parse_doubles_table(
    data: bytes,
    settings: ImportSettings | None = None,
    source_name: str = "Dbls.DB",
) -> TableParseResult:
    settings = settings or ImportSettings()
    result = TableParseResult("doubles", source_name)
    for f in _records(data, result, settings):
        match_no = f.as_int("match_no") or 0
        winner = f.as_str("winner")
        if match_no == 0 or not winner:
            result.skipped_invalid += 1
            continue
        result.entities.append(StagedDoublesFrame(
            match_no=match_no,
            frame_number=_fallback_id(f.as_int("frame_number"), result),
            winner=FrameWinner.from_text(winner),
            home_player1_legacy_id=f.as_int("home_player1"),
            home_player2_legacy_id=f.as_int("home_player2"),
            away_player1_legacy_id=f.as_int("away_player1"),
            away_player2_legacy_id=f.as_int("away_player2"),
            eight_ball1=f.as_bool("eight_ball1"),
            eight_ball2=f.as_bool("eight_ball2"),
        ))
    return _finish(result, "doubles frames")


def _fallback_id(value: int | None, result: TableParseResult) -> int:
    return value if value is not None else len(result.entities) + 1


# ---------------------------------------------------------------------------
# Parser dispatch table
# ---------------------------------------------------------------------------

TABLE_PARSERS: dict[str, Callable[..., TableParseResult]] = {
    "division": parse_division_table,
    "venue":    parse_venue_table,
    "team":     parse_team_table,
    "player":   parse_player_table,
    "match":    parse_match_table,
    "singles":  parse_singles_table,
    "doubles":  parse_doubles_table,
}
