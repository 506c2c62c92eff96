"""Unit tests for league_etl.orchestrator, run against InMemoryLeagueStore."""

from __future__ import annotations

import csv
from datetime import date
from pathlib import Path

import pytest

from league_etl.orchestrator import IMPORT_STEPS, IdMap, NameMap, run_import
from league_etl.settings import KINDS, ImportSettings
from league_etl.shared import RejectWriter
from league_etl.staging import FrameWinner
from league_etl.store import InMemoryLeagueStore
from paradox_fixtures import MATCH_DATE, basic_league_tables, write_league_dir


def _league() -> dict[str, list[dict]]:
    """Two teams, four players, two fixtures with singles and doubles frames."""
    tables = basic_league_tables()
    tables["team"].append({"Item_id": 2, "TeamName": "Club B Blues", "Venue": 1, "Division": 1})
    tables["player"] += [
        {"PlayerNo": 2, "PlayerName": "Alan Jones", "PlayerTeam": 2},
        {"PlayerNo": 3, "PlayerName": "Sam Brown", "PlayerTeam": 1},
        {"PlayerNo": 4, "PlayerName": "Lee Green", "PlayerTeam": 2},
    ]
    tables["match"] = [
        {"MatchNo": 1, "HomeTeam": 1, "AwayTeam": 2, "MatchDate": date(2024, 1, 15),
         "DivName": "Premier", "HSWins": 1, "ASWins": 1},
        {"MatchNo": 2, "HomeTeam": 2, "AwayTeam": 1, "MatchDate": date(2024, 3, 4),
         "DivName": "PREM"},
    ]
    tables["singles"] = [
        {"MatchNo": 1, "SingleNo": 1, "HomePlayerNo": 1, "AwayPlayerNo": 2,
         "Winner": "Home", "EightBall": True},
        {"MatchNo": 1, "SingleNo": 2, "HomePlayerNo": 3, "AwayPlayerNo": 4, "Winner": "Away"},
        {"MatchNo": 2, "SingleNo": 1, "HomePlayerNo": 2, "AwayPlayerNo": 1, "Winner": "Away"},
    ]
    tables["doubles"] = [
        {"MatchNo": 1, "DblNo": 1,
         "HomePlayerNo1": 1, "HomePlayerNo2": 3, "AwayPlayerNo1": 2, "AwayPlayerNo2": 4,
         "Winner": "Home", "EightBall2": True},
    ]
    return tables


def _run(source_dir: Path, store: InMemoryLeagueStore | None = None, **kwargs):
    store = store or InMemoryLeagueStore()
    season = store.find_or_create_season("Winter 2024")
    summary = run_import(source_dir, store, season, **kwargs)
    return store, season, summary


def _team(store, name):
    return next(t for t in store.tables.teams.values() if t.name == name)


def _player(store, first, last):
    return next(
        p for p in store.tables.players.values()
        if p.first_name == first and p.last_name == last
    )


def _fixtures(store):
    return sorted(store.tables.fixtures.values(), key=lambda f: f.match_date)


# ---------------------------------------------------------------------------
# Identifier maps
# ---------------------------------------------------------------------------

class TestIdMap:
    def test_first_insert_wins(self):
        ids = IdMap("team")
        assert ids.insert(1, "a") is True
        assert ids.insert(1, "b") is False
        assert ids.get(1) == "a"
        assert len(ids) == 1

    def test_get_none(self):
        assert IdMap("team").get(None) is None

    def test_clear(self):
        ids = IdMap("team")
        ids.insert(1, "a")
        ids.clear()
        assert 1 not in ids


class TestNameMap:
    def test_case_and_space_insensitive(self):
        names = NameMap()
        names.insert("Premier  League", "d1")
        assert names.get("PREMIER LEAGUE") == "d1"

    def test_first_wins(self):
        names = NameMap()
        names.insert("Premier", "d1")
        assert names.insert("premier", "d2") is False
        assert names.get("Premier") == "d1"

    def test_blank_ignored(self):
        names = NameMap()
        assert names.insert("  ", "d1") is False
        assert names.get(None) is None
        assert len(names) == 0

    def test_accents_folded(self):
        names = NameMap()
        names.insert("Café League", "d1")
        assert names.get("CAFE  league") == "d1"


class TestImportSteps:
    def test_dependency_order(self):
        assert tuple(s.kind for s in IMPORT_STEPS) == KINDS


# ---------------------------------------------------------------------------
# Full import
# ---------------------------------------------------------------------------

class TestFullImport:
    def test_basic_league(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        store, season, summary = _run(tmp_path)

        assert summary.success
        assert not summary.cancelled
        assert summary.imported() == {
            "division": 1, "venue": 1, "team": 1, "player": 1,
            "match": 1, "singles": 1, "doubles": 0,
        }
        assert "Dbls.DB not found - skipping doubles import" in summary.warnings

        (division,) = store.tables.divisions.values()
        (venue,) = store.tables.venues.values()
        team = _team(store, "CLUB A REDS")
        assert team.division_id == division.id
        assert team.venue_id == venue.id
        assert team.captain == "Jo Bloggs"
        assert venue.address == "1 High St"

        player = _player(store, "JOHN", "SMITH")
        assert player.team_id == team.id

        (fixture,) = store.tables.fixtures.values()
        assert fixture.match_date == MATCH_DATE
        assert fixture.division_id == division.id
        assert fixture.venue_id == venue.id

        (frame,) = fixture.frames
        assert frame.number == 1
        assert frame.winner is FrameWinner.HOME
        assert frame.eight_ball is True
        assert frame.home_player_id == player.id
        assert frame.is_doubles is False

        assert store.season_dates(season) == (MATCH_DATE, MATCH_DATE)
        assert (summary.date_min, summary.date_max) == (MATCH_DATE, MATCH_DATE)
        assert store.persist_count == 1

    def test_legacy_statistics_not_written(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        store, _, _ = _run(tmp_path)
        team = _team(store, "CLUB A REDS")
        assert (team.wins, team.losses, team.points) == (0, 0, 0)
        player = _player(store, "JOHN", "SMITH")
        assert (player.played, player.wins, player.rating) == (0, 0, 0)

    def test_two_fixture_league(self, tmp_path):
        write_league_dir(tmp_path, _league())
        store, season, summary = _run(tmp_path)

        assert summary.success
        assert summary.imported() == {
            "division": 1, "venue": 1, "team": 2, "player": 4,
            "match": 2, "singles": 3, "doubles": 1,
        }
        first, second = _fixtures(store)
        (division,) = store.tables.divisions.values()
        # Second fixture names its division by abbreviation
        assert second.division_id == division.id
        assert first.home_team_id == _team(store, "CLUB A REDS").id
        assert second.home_team_id == _team(store, "CLUB B BLUES").id
        assert store.season_dates(season) == (date(2024, 1, 15), date(2024, 3, 4))

    def test_doubles_numbered_after_singles(self, tmp_path):
        write_league_dir(tmp_path, _league())
        store, _, _ = _run(tmp_path)
        first, _ = _fixtures(store)
        numbers = sorted(f.number for f in first.frames)
        assert numbers == [1, 2, 9]

        doubles = next(f for f in first.frames if f.is_doubles)
        assert doubles.winner is FrameWinner.HOME
        assert doubles.eight_ball is True
        assert doubles.home_player_id == _player(store, "JOHN", "SMITH").id
        assert doubles.home_partner_id == _player(store, "SAM", "BROWN").id
        assert doubles.away_player_id == _player(store, "ALAN", "JONES").id
        assert doubles.away_partner_id == _player(store, "LEE", "GREEN").id

    def test_custom_doubles_offset(self, tmp_path):
        write_league_dir(tmp_path, _league())
        settings = ImportSettings(doubles_frame_offset=20)
        store, _, _ = _run(tmp_path, settings=settings)
        first, _ = _fixtures(store)
        assert max(f.number for f in first.frames) == 21

    def test_persist_false(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        store, _, summary = _run(tmp_path, persist=False)
        assert summary.success
        assert store.persist_count == 0


class TestReimport:
    def test_second_run_skips_everything(self, tmp_path):
        write_league_dir(tmp_path, _league())
        store, _, _ = _run(tmp_path)
        counts = {name: len(getattr(store.tables, name)) for name in
                  ("divisions", "venues", "teams", "players", "fixtures")}
        frames = sum(len(f.frames) for f in store.tables.fixtures.values())

        _, _, summary = _run(tmp_path, store)

        assert summary.success
        assert all(n == 0 for n in summary.imported().values())
        assert summary.skipped() == {
            "division": 1, "venue": 1, "team": 2, "player": 4,
            "match": 2, "singles": 3, "doubles": 1,
        }
        assert {name: len(getattr(store.tables, name)) for name in counts} == counts
        assert sum(len(f.frames) for f in store.tables.fixtures.values()) == frames

    def test_existing_name_is_reused(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        store = InMemoryLeagueStore()
        season = store.find_or_create_season("Winter 2024")
        existing = store.create_venue(season, "CLUB A", "somewhere else")

        _run(tmp_path, store)

        assert list(store.tables.venues) == [existing]
        assert store.tables.venues[existing].address == "somewhere else"
        assert _team(store, "CLUB A REDS").venue_id == existing


# ---------------------------------------------------------------------------
# Orphans, duplicates, placeholders
# ---------------------------------------------------------------------------

class TestOrphans:
    def test_match_with_unknown_team(self, tmp_path):
        tables = basic_league_tables()
        tables["match"][0]["AwayTeam"] = 99
        write_league_dir(tmp_path, tables)
        rejects = RejectWriter(tmp_path / "rejects.csv")

        store, _, summary = _run(tmp_path, rejects=rejects)
        rejects.close()

        assert summary.success
        assert "Match 1: Away team ID 99 not found" in summary.warnings
        assert "Match 1: fixture not found, skipping 1 singles frames" in summary.warnings
        assert summary.kind("match").skipped_orphaned == 1
        assert summary.kind("singles").skipped_orphaned == 1
        assert store.tables.fixtures == {}

        with (tmp_path / "rejects.csv").open(newline="") as f:
            reasons = [(r["_kind"], r["_reject_reason"]) for r in csv.DictReader(f)]
        assert reasons == [("match", "orphaned_team"), ("singles", "orphaned_match")]

    def test_home_team_reported_first(self, tmp_path):
        tables = basic_league_tables()
        tables["match"][0].update(HomeTeam=98, AwayTeam=99)
        write_league_dir(tmp_path, tables)
        _, _, summary = _run(tmp_path)
        assert "Match 1: Home team ID 98 not found" in summary.warnings

    def test_unknown_player_leaves_slot_empty(self, tmp_path):
        tables = basic_league_tables()
        tables["singles"][0]["AwayPlayerNo"] = 77
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        (fixture,) = store.tables.fixtures.values()
        (frame,) = fixture.frames
        assert frame.away_player_id is None
        assert frame.home_player_id is not None
        assert summary.kind("singles").imported == 1

    def test_fixture_missing_from_store(self, tmp_path):
        class ForgetfulStore(InMemoryLeagueStore):
            def frame_numbers(self, fixture_id):
                return None

        write_league_dir(tmp_path, basic_league_tables())
        _, _, summary = _run(tmp_path, ForgetfulStore())
        assert any("not in store, skipping 1 singles frames" in w for w in summary.warnings)
        assert summary.kind("singles").skipped_orphaned == 1
        assert summary.success

    def test_unknown_division_name(self, tmp_path):
        tables = basic_league_tables()
        tables["match"][0]["DivName"] = "Division Nine"
        write_league_dir(tmp_path, tables)
        store, _, _ = _run(tmp_path)
        (fixture,) = store.tables.fixtures.values()
        assert fixture.division_id is None

    def test_division_name_matches_without_accents(self, tmp_path):
        tables = basic_league_tables()
        tables["division"][0]["FullDivisionName"] = "Café League"
        tables["match"][0]["DivName"] = "Cafe League"
        write_league_dir(tmp_path, tables)
        store, _, _ = _run(tmp_path)
        (fixture,) = store.tables.fixtures.values()
        assert fixture.division_id is not None

    def test_unresolved_team_and_player_refs_warn(self, tmp_path):
        tables = basic_league_tables()
        tables["team"][0].update(Venue=5, Division=0)
        tables["player"][0]["PlayerTeam"] = 9
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        assert "Team CLUB A REDS: venue ID 5 not found" in summary.warnings
        assert "Player JOHN SMITH: team ID 9 not found" in summary.warnings
        assert not any("division ID" in w for w in summary.warnings)
        assert _team(store, "CLUB A REDS").venue_id is None
        assert summary.success

    def test_non_finite_match_number_drops_one_frame(self, tmp_path):
        tables = basic_league_tables()
        tables["singles"].append(
            {"MatchNo": float("nan"), "SingleNo": 2, "HomePlayerNo": 1, "Winner": "Away"}
        )
        write_league_dir(tmp_path, tables)
        _, _, summary = _run(tmp_path)
        assert summary.success
        assert summary.kind("singles").imported == 1
        assert summary.kind("singles").skipped_invalid == 1


class TestDuplicates:
    def test_repeated_legacy_id_keeps_first(self, tmp_path):
        tables = basic_league_tables()
        tables["team"].append({"Item_id": 1, "TeamName": "Impostors"})
        write_league_dir(tmp_path, tables)
        rejects = RejectWriter(tmp_path / "rejects.csv")

        store, _, summary = _run(tmp_path, rejects=rejects)
        rejects.close()

        assert summary.kind("team").imported == 2
        assert any("team legacy id 1 appears more than once" in w for w in summary.warnings)
        (fixture,) = store.tables.fixtures.values()
        assert fixture.home_team_id == _team(store, "CLUB A REDS").id
        with (tmp_path / "rejects.csv").open(newline="") as f:
            assert [r["_reject_reason"] for r in csv.DictReader(f)] == ["duplicate_legacy_id"]

    def test_same_name_twice_in_one_file(self, tmp_path):
        tables = basic_league_tables()
        tables["venue"].append({"Item_id": 2, "Venue": "club a"})
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        assert len(store.tables.venues) == 1
        assert summary.kind("venue").imported == 1
        assert summary.kind("venue").skipped_duplicate == 1

    def test_repeated_frame_number(self, tmp_path):
        tables = basic_league_tables()
        tables["singles"].append(dict(tables["singles"][0], Winner="Away"))
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        (fixture,) = store.tables.fixtures.values()
        assert [f.winner for f in fixture.frames] == [FrameWinner.HOME]
        assert summary.kind("singles").skipped_duplicate == 1

    def test_placeholders_counted(self, tmp_path):
        tables = basic_league_tables()
        tables["division"].append({"Item_id": 2, "FullDivisionName": "Test"})
        tables["player"].append({"PlayerNo": 2, "PlayerName": "Void Frame"})
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        assert summary.kind("division").skipped_placeholder == 1
        assert summary.kind("player").skipped_placeholder == 1
        assert summary.kind("player").records_read == 2
        assert len(store.tables.divisions) == 1


# ---------------------------------------------------------------------------
# Season dates
# ---------------------------------------------------------------------------

class TestSeasonDates:
    def test_widens_existing_range(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        store = InMemoryLeagueStore()
        season = store.find_or_create_season("Winter 2024")
        store.widen_season_dates(season, date(2024, 2, 1), date(2024, 2, 28))

        _run(tmp_path, store)

        assert store.season_dates(season) == (MATCH_DATE, date(2024, 2, 28))

    def test_undated_matches_leave_range(self, tmp_path):
        tables = basic_league_tables()
        tables["match"][0]["MatchDate"] = None
        write_league_dir(tmp_path, tables)
        store, season, summary = _run(tmp_path)
        assert store.season_dates(season) == (None, None)
        assert summary.date_min is None


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestMissingAndCorruptFiles:
    def test_empty_directory(self, tmp_path):
        store, _, summary = _run(tmp_path)
        assert summary.success
        assert len(summary.warnings) == 7
        assert all(n == 0 for n in summary.imported().values())
        assert store.persist_count == 1

    def test_corrupt_header_recorded_and_run_continues(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        (tmp_path / "Team.DB").write_bytes(b"\x00" * 10)

        store, _, summary = _run(tmp_path)

        assert not summary.success
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("Team.DB: corrupt header:")
        assert summary.kind("team").imported == 0
        assert summary.kind("player").imported == 1
        assert _player(store, "JOHN", "SMITH").team_id is None
        assert "Match 1: Home team ID 1 not found" in summary.warnings

    def test_empty_table_warns(self, tmp_path):
        tables = basic_league_tables()
        tables["venue"] = []
        write_league_dir(tmp_path, tables)
        store, _, summary = _run(tmp_path)
        assert "Venue.DB contains no records" in summary.warnings
        assert _team(store, "CLUB A REDS").venue_id is None


class TestStepFailure:
    def test_failed_step_rolled_back_and_reset(self, tmp_path):
        class FailingPlayerStore(InMemoryLeagueStore):
            def create_player(self, *args, **kwargs):
                if self.tables.players:
                    raise RuntimeError("boom")
                return super().create_player(*args, **kwargs)

        write_league_dir(tmp_path, _league())
        store, _, summary = _run(tmp_path, FailingPlayerStore())

        assert not summary.success
        assert summary.errors == ["Error importing Players: RuntimeError: boom"]
        assert store.steps_rolled_back == ["player"]
        assert store.tables.players == {}
        assert summary.kind("player").imported == 0
        assert summary.kind("player").records_read == 0
        # Later steps still run, with player slots unresolved
        assert summary.kind("match").imported == 2
        assert summary.kind("singles").imported == 3
        first, _ = _fixtures(store)
        assert all(f.home_player_id is None for f in first.frames)
        assert store.persist_count == 1

    def test_failed_match_step_resets_dates_and_rejects(self, tmp_path):
        class NoWidenStore(InMemoryLeagueStore):
            def widen_season_dates(self, *args, **kwargs):
                raise RuntimeError("season locked")

        tables = basic_league_tables()
        tables["match"].append(
            {"MatchNo": 2, "HomeTeam": 1, "AwayTeam": 99, "MatchDate": date(2024, 2, 1)}
        )
        write_league_dir(tmp_path, tables)
        rejects = RejectWriter(tmp_path / "rejects.csv")

        store, _, summary = _run(tmp_path, NoWidenStore(), rejects=rejects)
        rejects.close()

        assert summary.errors == ["Error importing Fixtures: RuntimeError: season locked"]
        assert store.tables.fixtures == {}
        assert summary.kind("match").imported == 0
        assert summary.kind("match").skipped_orphaned == 0
        assert (summary.date_min, summary.date_max) == (None, None)
        assert "Season dates" not in summary.summary_text()
        with (tmp_path / "rejects.csv").open(newline="") as f:
            kinds = [r["_kind"] for r in csv.DictReader(f)]
        assert kinds == ["singles"]

    def test_persist_failure_propagates(self, tmp_path):
        class BrokenStore(InMemoryLeagueStore):
            def persist(self):
                raise RuntimeError("disk full")

        write_league_dir(tmp_path, basic_league_tables())
        with pytest.raises(RuntimeError, match="disk full"):
            _run(tmp_path, BrokenStore())


# ---------------------------------------------------------------------------
# Progress and cancellation
# ---------------------------------------------------------------------------

class TestProgressAndCancel:
    def test_progress_reported_per_step(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        calls = []
        _run(tmp_path, progress=lambda label, i, total: calls.append((label, i, total)))
        assert calls == [
            ("Divisions", 1, 7),
            ("Venues", 2, 7),
            ("Teams", 3, 7),
            ("Players", 4, 7),
            ("Fixtures", 5, 7),
            ("Singles Frames", 6, 7),
            ("Doubles Frames", 7, 7),
        ]

    def test_cancel_between_steps(self, tmp_path):
        write_league_dir(tmp_path, basic_league_tables())
        polls = []

        def should_cancel():
            polls.append(1)
            return len(polls) > 2

        store, _, summary = _run(tmp_path, should_cancel=should_cancel)

        assert summary.cancelled
        assert summary.success
        assert "Import cancelled before Teams" in summary.warnings
        assert summary.kind("division").imported == 1
        assert summary.kind("venue").imported == 1
        assert store.tables.teams == {}
        assert store.persist_count == 1
