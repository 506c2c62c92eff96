"""league_etl.orchestrator

Legacy league import pipeline.

Processes the seven tables in dependency order:
  division → venue → team → player → match → singles → doubles

Each step parses its table into staging records, then merges them into the
store: an entity whose natural key already exists in the season is mapped
to the existing row and counted as a duplicate (nothing is overwritten);
otherwise it is created with its foreign keys resolved through the legacy
id maps filled by earlier steps.  Legacy statistics are never written.

A step runs inside `store.step(kind)`.  If it raises, its writes are rolled
back, its counters, id maps and date range are reset, its held-back
rejects are dropped, the error is recorded, and the next step still
runs.  Only a failure in the final `persist()` aborts the run.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable

from league_etl.normalize import normalize_key
from league_etl.paradox_header import CorruptHeaderError
from league_etl.parse_tables import TABLE_PARSERS, TableParseResult
from league_etl.settings import ImportSettings
from league_etl.shared import KIND_LABELS, ImportSummary, RejectWriter
from league_etl.source_files import find_table_file
from league_etl.staging import (
    StagedDivision,
    StagedDoublesFrame,
    StagedMatch,
    StagedPlayer,
    StagedSinglesFrame,
    StagedTeam,
    StagedVenue,
)
from league_etl.store import LeagueStore, NewFrame

log = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


# ---------------------------------------------------------------------------
# Identifier maps
# ---------------------------------------------------------------------------

class IdMap:
    """Legacy integer id → stable id.  Entries are never overwritten."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._ids: dict[int, str] = {}

    def insert(self, legacy_id: int, stable_id: str) -> bool:
        if legacy_id in self._ids:
            return False
        self._ids[legacy_id] = stable_id
        return True

    def get(self, legacy_id: int | None) -> str | None:
        if legacy_id is None:
            return None
        return self._ids.get(legacy_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, legacy_id: object) -> bool:
        return legacy_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class NameMap:
    """Name → stable id, for tables that reference by name.

    Keys go through `normalize_key`, the same folding the store applies to
    natural keys.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    @staticmethod
    def _key(name: str) -> str:
        return normalize_key(name)

    def insert(self, name: str | None, stable_id: str) -> bool:
        if not name or not name.strip():
            return False
        key = self._key(name)
        if key in self._ids:
            return False
        self._ids[key] = stable_id
        return True

    def get(self, name: str | None) -> str | None:
        if not name or not name.strip():
            return None
        return self._ids.get(self._key(name))

    def clear(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass
class ImportContext:
    store: LeagueStore
    season_id: str
    settings: ImportSettings
    summary: ImportSummary
    run_id: str = ""
    rejects: RejectWriter | None = None
    division_ids: IdMap = field(default_factory=lambda: IdMap("division"))
    division_names: NameMap = field(default_factory=NameMap)
    venue_ids: IdMap = field(default_factory=lambda: IdMap("venue"))
    team_ids: IdMap = field(default_factory=lambda: IdMap("team"))
    player_ids: IdMap = field(default_factory=lambda: IdMap("player"))
    match_ids: IdMap = field(default_factory=lambda: IdMap("match"))
    pending_rejects: list[tuple[str, dict, str, Any]] = field(default_factory=list)

    def maps_for(self, kind: str) -> list[Any]:
        return {
            "division": [self.division_ids, self.division_names],
            "venue": [self.venue_ids],
            "team": [self.team_ids],
            "player": [self.player_ids],
            "match": [self.match_ids],
        }.get(kind, [])

    def reject(self, kind: str, entity: Any, reason: str, legacy_ref: Any = None) -> None:
        if self.rejects is not None:
            self.pending_rejects.append((kind, dataclasses.asdict(entity), reason, legacy_ref))

    def flush_rejects(self) -> None:
        """Write the rejects held back while a step was running."""
        if self.rejects is not None:
            for kind, row, reason, legacy_ref in self.pending_rejects:
                self.rejects.write(kind, row, reason, legacy_ref)
        self.pending_rejects.clear()

    def unresolved(self, kind: str, name: str, ref_kind: str, legacy_id: int | None) -> None:
        if legacy_id:
            self.summary.warnings.append(
                f"{kind} {name}: {ref_kind} ID {legacy_id} not found"
            )

    def claim(self, id_map: IdMap, legacy_id: int, stable_id: str, entity: Any) -> None:
        """Record legacy_id → stable_id, warning if the legacy id repeats."""
        if not id_map.insert(legacy_id, stable_id):
            self.summary.warnings.append(
                f"{id_map.kind} legacy id {legacy_id} appears more than once; "
                "keeping the first mapping"
            )
            self.reject(id_map.kind, entity, "duplicate_legacy_id", legacy_id)


# ---------------------------------------------------------------------------
# Commit steps
# ---------------------------------------------------------------------------

def commit_divisions(ctx: ImportContext, divisions: list[StagedDivision]) -> None:
    counters = ctx.summary.kind("division")
    for div in divisions:
        existing = ctx.store.find_division(ctx.season_id, div.full_name)
        if existing:
            div.mapped_id = existing
            counters.skipped_duplicate += 1
        else:
            div.mapped_id = ctx.store.create_division(ctx.season_id, div.full_name)
            counters.imported += 1
        ctx.claim(ctx.division_ids, div.legacy_id, div.mapped_id, div)
        ctx.division_names.insert(div.full_name, div.mapped_id)
        ctx.division_names.insert(div.abbreviated, div.mapped_id)


def commit_venues(ctx: ImportContext, venues: list[StagedVenue]) -> None:
    counters = ctx.summary.kind("venue")
    for venue in venues:
        existing = ctx.store.find_venue(ctx.season_id, venue.name)
        if existing:
            venue.mapped_id = existing
            counters.skipped_duplicate += 1
        else:
            venue.mapped_id = ctx.store.create_venue(ctx.season_id, venue.name, venue.address)
            counters.imported += 1
        ctx.claim(ctx.venue_ids, venue.legacy_id, venue.mapped_id, venue)


def commit_teams(ctx: ImportContext, teams: list[StagedTeam]) -> None:
    counters = ctx.summary.kind("team")
    for team in teams:
        existing = ctx.store.find_team(ctx.season_id, team.name)
        if existing:
            team.mapped_id = existing
            counters.skipped_duplicate += 1
        else:
            team.mapped_venue_id = ctx.venue_ids.get(team.venue_legacy_id)
            team.mapped_division_id = ctx.division_ids.get(team.division_legacy_id)
            if team.mapped_venue_id is None:
                ctx.unresolved("Team", team.name, "venue", team.venue_legacy_id)
            if team.mapped_division_id is None:
                ctx.unresolved("Team", team.name, "division", team.division_legacy_id)
            team.mapped_id = ctx.store.create_team(
                ctx.season_id, team.name,
                team.mapped_division_id, team.mapped_venue_id, team.captain,
            )
            counters.imported += 1
        ctx.claim(ctx.team_ids, team.legacy_id, team.mapped_id, team)


def commit_players(ctx: ImportContext, players: list[StagedPlayer]) -> None:
    counters = ctx.summary.kind("player")
    for player in players:
        existing = ctx.store.find_player(ctx.season_id, player.first_name, player.last_name)
        if existing:
            player.mapped_id = existing
            counters.skipped_duplicate += 1
        else:
            player.mapped_team_id = ctx.team_ids.get(player.team_legacy_id)
            if player.mapped_team_id is None:
                ctx.unresolved("Player", player.full_name, "team", player.team_legacy_id)
            player.mapped_id = ctx.store.create_player(
                ctx.season_id, player.first_name, player.last_name, player.mapped_team_id,
            )
            counters.imported += 1
        ctx.claim(ctx.player_ids, player.legacy_id, player.mapped_id, player)


def commit_matches(ctx: ImportContext, matches: list[StagedMatch]) -> None:
    counters = ctx.summary.kind("match")
    first: date | None = None
    last: date | None = None

    for match in matches:
        home = ctx.team_ids.get(match.home_team_legacy_id)
        away = ctx.team_ids.get(match.away_team_legacy_id)
        if home is None or away is None:
            side, legacy = (
                ("Home", match.home_team_legacy_id) if home is None
                else ("Away", match.away_team_legacy_id)
            )
            ctx.summary.warnings.append(
                f"Match {match.legacy_id}: {side} team ID {legacy} not found"
            )
            ctx.reject("match", match, "orphaned_team", match.legacy_id)
            counters.skipped_orphaned += 1
            continue
        match.mapped_home_team_id = home
        match.mapped_away_team_id = away

        existing = ctx.store.find_fixture(ctx.season_id, match.match_date, home, away)
        if existing:
            match.mapped_id = existing
            counters.skipped_duplicate += 1
            ctx.claim(ctx.match_ids, match.legacy_id, existing, match)
            continue

        match.mapped_division_id = ctx.division_names.get(match.division_name)
        match.mapped_venue_id = ctx.store.team_venue_id(home)
        match.mapped_id = ctx.store.create_fixture(
            ctx.season_id, match.match_date, home, away,
            match.mapped_division_id, match.mapped_venue_id,
        )
        counters.imported += 1
        ctx.claim(ctx.match_ids, match.legacy_id, match.mapped_id, match)

        if match.match_date is not None:
            first = match.match_date if first is None else min(first, match.match_date)
            last = match.match_date if last is None else max(last, match.match_date)

    if first is not None:
        current_start, current_end = ctx.store.season_dates(ctx.season_id)
        covered = (
            current_start is not None and current_end is not None
            and current_start <= first and last <= current_end
        )
        if not covered:
            ctx.store.widen_season_dates(ctx.season_id, first, last)
        ctx.summary.observe_date(first)
        ctx.summary.observe_date(last)


def _group_by_match(frames: list) -> dict[int, list]:
    groups: dict[int, list] = {}
    for frame in frames:
        groups.setdefault(frame.match_no, []).append(frame)
    return groups


def _resolve_fixture(
    ctx: ImportContext,
    kind: str,
    match_no: int,
    group: list,
) -> tuple[str | None, set[int] | None]:
    """Return (fixture_id, existing frame numbers), or (None, None) for an orphan group."""
    noun = "singles" if kind == "singles" else "doubles"
    fixture_id = ctx.match_ids.get(match_no)
    if fixture_id is None:
        ctx.summary.warnings.append(
            f"Match {match_no}: fixture not found, skipping {len(group)} {noun} frames"
        )
    else:
        numbers = ctx.store.frame_numbers(fixture_id)
        if numbers is not None:
            return fixture_id, numbers
        ctx.summary.warnings.append(
            f"Match {match_no}: fixture {fixture_id} not in store, "
            f"skipping {len(group)} {noun} frames"
        )
    ctx.summary.kind(kind).skipped_orphaned += len(group)
    for frame in group:
        ctx.reject(kind, frame, "orphaned_match", match_no)
    return None, None


def _player(ctx: ImportContext, legacy_id: int | None) -> str | None:
    if not legacy_id or legacy_id <= 0:
        return None
    return ctx.player_ids.get(legacy_id)


def commit_singles(ctx: ImportContext, frames: list[StagedSinglesFrame]) -> None:
    counters = ctx.summary.kind("singles")
    for match_no, group in _group_by_match(frames).items():
        fixture_id, existing = _resolve_fixture(ctx, "singles", match_no, group)
        if fixture_id is None:
            continue
        for frame in group:
            frame.mapped_fixture_id = fixture_id
            if frame.frame_number in existing:
                counters.skipped_duplicate += 1
                continue
            frame.mapped_home_player_id = _player(ctx, frame.home_player_legacy_id)
            frame.mapped_away_player_id = _player(ctx, frame.away_player_legacy_id)
            ctx.store.add_frame(fixture_id, NewFrame(
                number=frame.frame_number,
                winner=frame.winner,
                home_player_id=frame.mapped_home_player_id,
                away_player_id=frame.mapped_away_player_id,
                eight_ball=frame.eight_ball,
            ))
            existing.add(frame.frame_number)
            counters.imported += 1


def commit_doubles(ctx: ImportContext, frames: list[StagedDoublesFrame]) -> None:
    counters = ctx.summary.kind("doubles")
    offset = ctx.settings.doubles_frame_offset
    for match_no, group in _group_by_match(frames).items():
        fixture_id, existing = _resolve_fixture(ctx, "doubles", match_no, group)
        if fixture_id is None:
            continue
        for frame in group:
            frame.mapped_fixture_id = fixture_id
            number = offset + frame.frame_number
            if number in existing:
                counters.skipped_duplicate += 1
                continue
            frame.mapped_home_player1_id = _player(ctx, frame.home_player1_legacy_id)
            frame.mapped_home_player2_id = _player(ctx, frame.home_player2_legacy_id)
            frame.mapped_away_player1_id = _player(ctx, frame.away_player1_legacy_id)
            frame.mapped_away_player2_id = _player(ctx, frame.away_player2_legacy_id)
            ctx.store.add_frame(fixture_id, NewFrame(
                number=number,
                winner=frame.winner,
                home_player_id=frame.mapped_home_player1_id,
                away_player_id=frame.mapped_away_player1_id,
                home_partner_id=frame.mapped_home_player2_id,
                away_partner_id=frame.mapped_away_player2_id,
                eight_ball=frame.eight_ball,
                is_doubles=True,
            ))
            existing.add(number)
            counters.imported += 1


# ---------------------------------------------------------------------------
# Step table (dependency order)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportStep:
    kind: str
    label: str
    parse: Callable[..., TableParseResult]
    commit: Callable[[ImportContext, list], None]


IMPORT_STEPS: tuple[ImportStep, ...] = (
    ImportStep("division", KIND_LABELS["division"], TABLE_PARSERS["division"], commit_divisions),
    ImportStep("venue",    KIND_LABELS["venue"],    TABLE_PARSERS["venue"],    commit_venues),
    ImportStep("team",     KIND_LABELS["team"],     TABLE_PARSERS["team"],     commit_teams),
    ImportStep("player",   KIND_LABELS["player"],   TABLE_PARSERS["player"],   commit_players),
    ImportStep("match",    KIND_LABELS["match"],    TABLE_PARSERS["match"],    commit_matches),
    ImportStep("singles",  KIND_LABELS["singles"],  TABLE_PARSERS["singles"],  commit_singles),
    ImportStep("doubles",  KIND_LABELS["doubles"],  TABLE_PARSERS["doubles"],  commit_doubles),
)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def run_step(ctx: ImportContext, step: ImportStep, source_dir: Path) -> None:
    """Parse and commit one table; failures are recorded, not raised."""
    summary = ctx.summary
    candidates = ctx.settings.file_candidates(step.kind)
    path = find_table_file(source_dir, candidates)
    if path is None:
        expected = candidates[0] if candidates else step.kind
        summary.warnings.append(f"{expected} not found - skipping {step.kind} import")
        return

    snapshot = (dataclasses.replace(summary.kind(step.kind)), summary.date_min, summary.date_max)
    try:
        parsed = step.parse(path.read_bytes(), ctx.settings, path.name)
        counters = summary.kind(step.kind)
        counters.records_read += parsed.records_read
        counters.skipped_placeholder += parsed.skipped_placeholder
        counters.skipped_invalid += parsed.skipped_invalid
        summary.warnings.extend(parsed.warnings)
        with ctx.store.step(step.kind):
            step.commit(ctx, parsed.entities)
        ctx.flush_rejects()
    except CorruptHeaderError as exc:
        _reset_step(ctx, step.kind, snapshot)
        summary.errors.append(f"{path.name}: corrupt header: {exc}")
        log.warning("%s: corrupt header: %s", path.name, exc)
    except Exception as exc:
        _reset_step(ctx, step.kind, snapshot)
        summary.errors.append(f"Error importing {step.label}: {type(exc).__name__}: {exc}")
        log.exception("step %s failed", step.kind)


def _reset_step(ctx: ImportContext, kind: str, snapshot: tuple) -> None:
    counters, date_min, date_max = snapshot
    ctx.summary.counters[kind] = counters
    ctx.summary.date_min, ctx.summary.date_max = date_min, date_max
    ctx.pending_rejects.clear()
    for id_map in ctx.maps_for(kind):
        id_map.clear()


def run_import(
    source_dir: Path,
    store: LeagueStore,
    season_id: str,
    *,
    settings: ImportSettings | None = None,
    progress: ProgressCallback | None = None,
    should_cancel: Callable[[], bool] | None = None,
    rejects: RejectWriter | None = None,
    run_id: str = "",
    persist: bool = True,
) -> ImportSummary:
    """Run every import step in order and return the summary.

    `progress(label, index, total)` is called once per attempted step, with
    a 1-based index.  `should_cancel()` is polled between steps only; a
    cancelled run keeps the steps already completed.
    """
    summary = ImportSummary()
    ctx = ImportContext(
        store=store,
        season_id=season_id,
        settings=settings or ImportSettings(),
        summary=summary,
        run_id=run_id,
        rejects=rejects,
    )
    source_dir = Path(source_dir)
    total = len(IMPORT_STEPS)

    for index, step in enumerate(IMPORT_STEPS, start=1):
        if should_cancel is not None and should_cancel():
            summary.cancelled = True
            summary.warnings.append(f"Import cancelled before {step.label}")
            log.info("import cancelled before step %d/%d (%s)", index, total, step.kind)
            break
        if progress is not None:
            progress(step.label, index, total)
        run_step(ctx, step, source_dir)

    if persist:
        store.persist()

    summary.success = not summary.errors
    return summary
