"""league_etl.settings

Import settings: table file names, field-name aliases, placeholder rows,
and the doubles frame offset.

Defaults describe the league tool's usual table layout.  A YAML file can
override any of them per key:

    file_names:
      doubles: [Dbls.DB, Double.DB]
    placeholders:
      player: [Void Frame, VoidFrame]
    doubles_frame_offset: 8
    aliases:
      team:
        name: [TeamName, Name]

Usage:
    from pathlib import Path
    from league_etl.settings import load_settings

    settings = load_settings(Path("config/paradox_import.yml"))
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KINDS = ("division", "venue", "team", "player", "match", "singles", "doubles")

DSN_ENV_VAR = "LEAGUE_DB_DSN"

DEFAULT_DOUBLES_FRAME_OFFSET = 8

DEFAULT_FILE_NAMES: dict[str, list[str]] = {
    "division": ["Division.DB"],
    "venue":    ["Venue.DB"],
    "team":     ["Team.DB"],
    "player":   ["Player.DB"],
    "match":    ["Match.DB"],
    "singles":  ["Single.DB"],
    "doubles":  ["Dbls.DB", "Double.DB"],
}

DEFAULT_PLACEHOLDERS: dict[str, list[str]] = {
    "division": ["test"],
    "player":   ["Void Frame", "VoidFrame"],
}

# Logical field → legacy column names, tried in order, case-insensitively.
DEFAULT_FIELD_ALIASES: dict[str, dict[str, list[str]]] = {
    "division": {
        "legacy_id":   ["Item_id"],
        "abbreviated": ["Abbreviated", "Abbrev"],
        "full_name":   ["FullDivisionName", "DivisionName", "Name"],
    },
    "venue": {
        "legacy_id":     ["Item_id"],
        "name":          ["Venue", "VenueName", "Name"],
        "address_line1": ["AddressLine1", "Address1"],
        "address_line2": ["AddressLine2", "Address2"],
        "address_line3": ["AddressLine3", "Address3"],
        "address_line4": ["AddressLine4", "Address4"],
    },
    "team": {
        "legacy_id":        ["Item_id", "ItemId"],
        "name":             ["TeamName", "Name"],
        "venue":            ["Venue", "VenueId"],
        "division":         ["Division", "DivisionId"],
        "captain":          ["Contact", "Captain"],
        "contact_address1": ["ContactAddress1"],
        "contact_address2": ["ContactAddress2"],
        "contact_address3": ["ContactAddress3"],
        "contact_address4": ["ContactAddress4"],
        "wins":             ["Wins"],
        "losses":           ["Loses", "Losses"],
        "draws":            ["Draws"],
        "singles_wins":     ["SWins", "SinglesWins"],
        "singles_losses":   ["SLosses", "SinglesLosses"],
        "doubles_wins":     ["DWins", "DoublesWins"],
        "doubles_losses":   ["DLosses", "DoublesLosses"],
        "points":           ["Points"],
        "played":           ["Played"],
        "deduction":        ["Deduction"],
        "withdrawn":        ["Withdrawn"],
        "remove_results":   ["RemoveResults"],
    },
    "player": {
        "full_name":        ["PlayerName", "Name"],
        "legacy_id":        ["PlayerNo", "Id"],
        "team":             ["PlayerTeam", "Team", "TeamId"],
        "played":           ["Played"],
        "wins":             ["Wins"],
        "losses":           ["Losses"],
        "current_rating":   ["CurrentRating", "Rating"],
        "best_rating":      ["BestRating"],
        "best_rating_date": ["BestRatingDate"],
        "eight_balls":      ["EightBalls", "8Balls"],
    },
    "match": {
        "legacy_id":         ["MatchNo", "Id"],
        "home_team":         ["HomeTeam", "Home"],
        "away_team":         ["AwayTeam", "Away"],
        "match_date":        ["MatchDate", "Date"],
        "division_name":     ["DivName", "Division"],
        "home_singles_wins": ["HSWins", "HomeSinglesWins"],
        "away_singles_wins": ["ASWins", "AwaySinglesWins"],
        "home_doubles_wins": ["HDWins", "HomeDoublesWins"],
        "away_doubles_wins": ["ADWins", "AwayDoublesWins"],
    },
    "singles": {
        "match_no":     ["MatchNo", "Match"],
        "frame_number": ["SingleNo", "FrameNo", "Frame"],
        "home_player":  ["HomePlayerNo", "HomePlayer"],
        "away_player":  ["AwayPlayerNo", "AwayPlayer"],
        "winner":       ["Winner"],
        "eight_ball":   ["EightBall", "8Ball"],
    },
    "doubles": {
        "match_no":     ["MatchNo", "Match"],
        "frame_number": ["DblNo", "DoubleNo", "FrameNo"],
        "home_player1": ["HomePlayerNo1", "HP1", "HomePlayer1"],
        "home_player2": ["HomePlayerNo2", "HP2", "HomePlayer2"],
        "away_player1": ["AwayPlayerNo1", "AP1", "AwayPlayer1"],
        "away_player2": ["AwayPlayerNo2", "AP2", "AwayPlayer2"],
        "winner":       ["Winner"],
        "eight_ball1":  ["EightBall1", "8Ball1"],
        "eight_ball2":  ["EightBall2", "8Ball2"],
    },
}

VALID_TOP_LEVEL_KEYS = frozenset({
    "file_names", "placeholders", "doubles_frame_offset", "aliases",
})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SettingsValidationError(ValueError):
    """Raised when a settings YAML file fails schema validation."""


# ---------------------------------------------------------------------------
# ImportSettings
# ---------------------------------------------------------------------------

@dataclass
class ImportSettings:
    file_names: dict[str, list[str]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_FILE_NAMES)
    )
    placeholders: dict[str, list[str]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_PLACEHOLDERS)
    )
    doubles_frame_offset: int = DEFAULT_DOUBLES_FRAME_OFFSET
    aliases: dict[str, dict[str, list[str]]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_FIELD_ALIASES)
    )
    source_path: Path | None = None

    def file_candidates(self, kind: str) -> list[str]:
        return list(self.file_names.get(kind) or [])

    def aliases_for(self, kind: str, logical_field: str) -> list[str]:
        return list(self.aliases.get(kind, {}).get(logical_field) or [])

    def is_placeholder(self, kind: str, value: str | None) -> bool:
        if not value:
            return False
        v = value.strip().casefold()
        return any(v == p.strip().casefold() for p in self.placeholders.get(kind, []))


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_settings(yaml_path: Path | None) -> ImportSettings:
    """Load settings from YAML, layered over the defaults.

    A None path returns the defaults unchanged.

    Raises:
        SettingsValidationError: If the file does not match the schema.
        FileNotFoundError: If the YAML file does not exist.
    """
    if yaml_path is None:
        return ImportSettings()

    raw = Path(yaml_path).read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        data = {}
    validate_settings(data)

    settings = ImportSettings(source_path=Path(yaml_path))
    for kind, names in (data.get("file_names") or {}).items():
        settings.file_names[kind] = _as_str_list(names)
    for kind, values in (data.get("placeholders") or {}).items():
        settings.placeholders[kind] = _as_str_list(values)
    if data.get("doubles_frame_offset") is not None:
        settings.doubles_frame_offset = int(data["doubles_frame_offset"])
    for kind, fields in (data.get("aliases") or {}).items():
        for logical_field, names in (fields or {}).items():
            settings.aliases[kind][logical_field] = _as_str_list(names)
    return settings


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    return list(value or [])


def _check_str_list(value: Any, where: str) -> None:
    if isinstance(value, str):
        return
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise SettingsValidationError(f"'{where}' must be a string or a list of strings.")


def _check_kind_mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise SettingsValidationError(f"'{key}' must be a mapping of kind → values.")
    unknown = set(section) - set(KINDS)
    if unknown:
        raise SettingsValidationError(
            f"Unknown kind(s) under '{key}': {sorted(unknown)}. "
            f"Must be one of {list(KINDS)}."
        )
    return section


def validate_settings(data: Any) -> None:
    """Raise SettingsValidationError if data does not match the schema.

    Validates:
      - root is a mapping with only known top-level keys
      - file_names / placeholders / aliases are keyed by known kinds
      - alias fields are known for their kind
      - every list holds strings only
      - doubles_frame_offset is a non-negative integer
    """
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")

    unknown_keys = set(data) - VALID_TOP_LEVEL_KEYS
    if unknown_keys:
        raise SettingsValidationError(f"Unknown top-level keys: {sorted(unknown_keys)}")

    for kind, names in _check_kind_mapping(data, "file_names").items():
        _check_str_list(names, f"file_names.{kind}")
        if not _as_str_list(names):
            raise SettingsValidationError(f"'file_names.{kind}' must not be empty.")

    for kind, values in _check_kind_mapping(data, "placeholders").items():
        _check_str_list(values, f"placeholders.{kind}")

    for kind, fields in _check_kind_mapping(data, "aliases").items():
        if not isinstance(fields, dict):
            raise SettingsValidationError(f"'aliases.{kind}' must be a mapping.")
        unknown_fields = set(fields) - set(DEFAULT_FIELD_ALIASES[kind])
        if unknown_fields:
            raise SettingsValidationError(
                f"Unknown alias field(s) for {kind}: {sorted(unknown_fields)}"
            )
        for logical_field, names in fields.items():
            _check_str_list(names, f"aliases.{kind}.{logical_field}")

    offset = data.get("doubles_frame_offset")
    if offset is not None:
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise SettingsValidationError(
                f"'doubles_frame_offset' value '{offset}' is not an integer."
            )
        if offset < 0:
            raise SettingsValidationError(
                f"'doubles_frame_offset' value {offset} must be >= 0."
            )
