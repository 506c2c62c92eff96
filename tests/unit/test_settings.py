"""Unit tests for league_etl.settings."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
import yaml

from league_etl.settings import (
    DEFAULT_DOUBLES_FRAME_OFFSET,
    DEFAULT_FIELD_ALIASES,
    KINDS,
    ImportSettings,
    SettingsValidationError,
    load_settings,
    validate_settings,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent

OVERRIDE_YAML = textwrap.dedent("""\
    file_names:
      doubles: [Doubles.DB]
      match: Fixtures.DB
    placeholders:
      player: [Bye, Void Frame]
    doubles_frame_offset: 10
    aliases:
      team:
        name: [Name, TeamName]
""")


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.yml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_every_kind_has_file_names(self):
        settings = ImportSettings()
        for kind in KINDS:
            assert settings.file_candidates(kind)

    def test_doubles_file_names(self):
        assert ImportSettings().file_candidates("doubles") == ["Dbls.DB", "Double.DB"]

    def test_offset(self):
        assert ImportSettings().doubles_frame_offset == DEFAULT_DOUBLES_FRAME_OFFSET == 8

    def test_instances_do_not_share_state(self):
        a = ImportSettings()
        a.aliases["team"]["name"].append("Extra")
        assert "Extra" not in ImportSettings().aliases_for("team", "name")
        assert "Extra" not in DEFAULT_FIELD_ALIASES["team"]["name"]

    def test_unknown_field_has_no_aliases(self):
        assert ImportSettings().aliases_for("team", "nope") == []


class TestIsPlaceholder:
    def test_case_insensitive(self):
        settings = ImportSettings()
        assert settings.is_placeholder("division", "TEST")
        assert settings.is_placeholder("player", " voidframe ")

    def test_not_placeholder(self):
        assert not ImportSettings().is_placeholder("player", "John Smith")

    def test_kind_without_placeholders(self):
        assert not ImportSettings().is_placeholder("venue", "test")

    def test_empty(self):
        assert not ImportSettings().is_placeholder("division", None)


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------

class TestLoadSettings:
    def test_none_path_returns_defaults(self):
        settings = load_settings(None)
        assert settings.source_path is None
        assert settings.doubles_frame_offset == 8

    def test_overrides_layered_on_defaults(self, tmp_path):
        path = _write(tmp_path, OVERRIDE_YAML)
        settings = load_settings(path)
        assert settings.source_path == path
        assert settings.file_candidates("doubles") == ["Doubles.DB"]
        assert settings.file_candidates("match") == ["Fixtures.DB"]
        assert settings.file_candidates("team") == ["Team.DB"]
        assert settings.placeholders["player"] == ["Bye", "Void Frame"]
        assert settings.placeholders["division"] == ["test"]
        assert settings.doubles_frame_offset == 10
        assert settings.aliases_for("team", "name") == ["Name", "TeamName"]
        assert settings.aliases_for("team", "venue") == ["Venue", "VenueId"]

    def test_empty_file_returns_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""))
        assert settings.file_candidates("team") == ["Team.DB"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yml")

    def test_invalid_file(self, tmp_path):
        with pytest.raises(SettingsValidationError):
            load_settings(_write(tmp_path, "colour: red\n"))

    def test_shipped_config_is_valid(self):
        settings = load_settings(PROJECT_ROOT / "config" / "paradox_import.yml")
        assert settings.file_candidates("division")


# ---------------------------------------------------------------------------
# validate_settings
# ---------------------------------------------------------------------------

class TestValidateSettings:
    def test_valid(self):
        validate_settings(yaml.safe_load(OVERRIDE_YAML))

    def test_empty_mapping_valid(self):
        validate_settings({})

    def test_root_not_mapping(self):
        with pytest.raises(SettingsValidationError, match="mapping"):
            validate_settings(["file_names"])

    def test_unknown_top_level_key(self):
        with pytest.raises(SettingsValidationError, match="Unknown top-level"):
            validate_settings({"tables": {}})

    def test_unknown_kind(self):
        with pytest.raises(SettingsValidationError, match="Unknown kind"):
            validate_settings({"file_names": {"league": ["League.DB"]}})

    def test_file_names_must_not_be_empty(self):
        with pytest.raises(SettingsValidationError, match="must not be empty"):
            validate_settings({"file_names": {"team": []}})

    def test_non_string_list(self):
        with pytest.raises(SettingsValidationError, match="list of strings"):
            validate_settings({"placeholders": {"player": [1, 2]}})

    def test_section_not_mapping(self):
        with pytest.raises(SettingsValidationError):
            validate_settings({"placeholders": ["Bye"]})

    def test_unknown_alias_field(self):
        with pytest.raises(SettingsValidationError, match="Unknown alias field"):
            validate_settings({"aliases": {"team": {"colour": ["Colour"]}}})

    def test_alias_kind_not_mapping(self):
        with pytest.raises(SettingsValidationError):
            validate_settings({"aliases": {"team": ["TeamName"]}})

    def test_offset_not_int(self):
        with pytest.raises(SettingsValidationError, match="not an integer"):
            validate_settings({"doubles_frame_offset": "eight"})

    def test_offset_bool_rejected(self):
        with pytest.raises(SettingsValidationError, match="not an integer"):
            validate_settings({"doubles_frame_offset": True})

    def test_offset_negative(self):
        with pytest.raises(SettingsValidationError, match=">= 0"):
            validate_settings({"doubles_frame_offset": -1})

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            validate_settings("nope")
