"""league_etl.store

The target league store as seen by the importer, plus an in-memory
implementation used for preview runs and tests.

Every lookup is by natural key within one season.  Names compare through
`normalize_key`, so case and accents do not create duplicates.
"""

from __future__ import annotations

import copy
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Iterator, Protocol

from league_etl.normalize import normalize_key
from league_etl.staging import FrameWinner


@dataclass
class NewFrame:
    number: int
    winner: FrameWinner
    home_player_id: str | None = None
    away_player_id: str | None = None
    home_partner_id: str | None = None
    away_partner_id: str | None = None
    eight_ball: bool = False
    is_doubles: bool = False


class LeagueStore(Protocol):
    def find_or_create_season(self, name: str) -> str: ...
    def season_dates(self, season_id: str) -> tuple[date | None, date | None]: ...
    def widen_season_dates(self, season_id: str, start: date | None, end: date | None) -> None: ...

    def find_division(self, season_id: str, name: str) -> str | None: ...
    def create_division(self, season_id: str, name: str) -> str: ...

    def find_venue(self, season_id: str, name: str) -> str | None: ...
    def create_venue(self, season_id: str, name: str, address: str | None) -> str: ...

    def find_team(self, season_id: str, name: str) -> str | None: ...
    def create_team(
        self, season_id: str, name: str,
        division_id: str | None, venue_id: str | None, captain: str | None,
    ) -> str: ...
    def team_venue_id(self, team_id: str) -> str | None: ...

    def find_player(self, season_id: str, first_name: str, last_name: str | None) -> str | None: ...
    def create_player(
        self, season_id: str, first_name: str, last_name: str | None, team_id: str | None,
    ) -> str: ...

    def find_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
    ) -> str | None: ...
    def create_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
        division_id: str | None, venue_id: str | None,
    ) -> str: ...

    def frame_numbers(self, fixture_id: str) -> set[int] | None: ...
    def add_frame(self, fixture_id: str, frame: NewFrame) -> None: ...

    def step(self, kind: str): ...
    def persist(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory rows
# ---------------------------------------------------------------------------

@dataclass
class SeasonRow:
    id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class DivisionRow:
    id: str
    season_id: str
    name: str


@dataclass
class VenueRow:
    id: str
    season_id: str
    name: str
    address: str | None = None


@dataclass
class TeamRow:
    id: str
    season_id: str
    name: str
    division_id: str | None = None
    venue_id: str | None = None
    captain: str | None = None
    # Recomputed from frame results after import
    wins: int = 0
    losses: int = 0
    draws: int = 0
    points: int = 0
    played: int = 0


@dataclass
class PlayerRow:
    id: str
    season_id: str
    first_name: str
    last_name: str | None = None
    team_id: str | None = None
    # Recomputed from frame results after import
    played: int = 0
    wins: int = 0
    losses: int = 0
    rating: int = 0


@dataclass
class FixtureRow:
    id: str
    season_id: str
    match_date: date | None
    home_team_id: str
    away_team_id: str
    division_id: str | None = None
    venue_id: str | None = None
    frames: list[NewFrame] = field(default_factory=list)


@dataclass
class _Tables:
    seasons: dict[str, SeasonRow] = field(default_factory=dict)
    divisions: dict[str, DivisionRow] = field(default_factory=dict)
    venues: dict[str, VenueRow] = field(default_factory=dict)
    teams: dict[str, TeamRow] = field(default_factory=dict)
    players: dict[str, PlayerRow] = field(default_factory=dict)
    fixtures: dict[str, FixtureRow] = field(default_factory=dict)


def _new_id() -> str:
    return str(uuid.uuid4())


def _same(a: str | None, b: str | None) -> bool:
    return normalize_key(a) == normalize_key(b)


# ---------------------------------------------------------------------------
# InMemoryLeagueStore
# ---------------------------------------------------------------------------

class InMemoryLeagueStore:
    """Dict-backed LeagueStore.

    `step()` snapshots every table and restores the snapshot if the block
    raises, so a failed step leaves no partial rows behind.
    """

    def __init__(self) -> None:
        self.tables = _Tables()
        self.persist_count = 0
        self.steps_rolled_back: list[str] = []

    # -- season ------------------------------------------------------------

    def find_or_create_season(self, name: str) -> str:
        for row in self.tables.seasons.values():
            if _same(row.name, name):
                return row.id
        row = SeasonRow(id=_new_id(), name=name)
        self.tables.seasons[row.id] = row
        return row.id

    def season_dates(self, season_id: str) -> tuple[date | None, date | None]:
        row = self.tables.seasons[season_id]
        return row.start_date, row.end_date

    def widen_season_dates(self, season_id: str, start: date | None, end: date | None) -> None:
        row = self.tables.seasons[season_id]
        if start is not None and (row.start_date is None or start < row.start_date):
            row.start_date = start
        if end is not None and (row.end_date is None or end > row.end_date):
            row.end_date = end

    # -- division / venue --------------------------------------------------

    def find_division(self, season_id: str, name: str) -> str | None:
        for row in self.tables.divisions.values():
            if row.season_id == season_id and _same(row.name, name):
                return row.id
        return None

    def create_division(self, season_id: str, name: str) -> str:
        row = DivisionRow(id=_new_id(), season_id=season_id, name=name)
        self.tables.divisions[row.id] = row
        return row.id

    def find_venue(self, season_id: str, name: str) -> str | None:
        for row in self.tables.venues.values():
            if row.season_id == season_id and _same(row.name, name):
                return row.id
        return None

    def create_venue(self, season_id: str, name: str, address: str | None) -> str:
        row = VenueRow(id=_new_id(), season_id=season_id, name=name, address=address)
        self.tables.venues[row.id] = row
        return row.id

    # -- team / player -----------------------------------------------------

    def find_team(self, season_id: str, name: str) -> str | None:
        for row in self.tables.teams.values():
            if row.season_id == season_id and _same(row.name, name):
                return row.id
        return None

    def create_team(
        self, season_id: str, name: str,
        division_id: str | None, venue_id: str | None, captain: str | None,
    ) -> str:
        row = TeamRow(
            id=_new_id(), season_id=season_id, name=name,
            division_id=division_id, venue_id=venue_id, captain=captain,
        )
        self.tables.teams[row.id] = row
        return row.id

    def team_venue_id(self, team_id: str) -> str | None:
        row = self.tables.teams.get(team_id)
        return row.venue_id if row else None

    def find_player(self, season_id: str, first_name: str, last_name: str | None) -> str | None:
        for row in self.tables.players.values():
            if (
                row.season_id == season_id
                and _same(row.first_name, first_name)
                and _same(row.last_name, last_name)
            ):
                return row.id
        return None

    def create_player(
        self, season_id: str, first_name: str, last_name: str | None, team_id: str | None,
    ) -> str:
        row = PlayerRow(
            id=_new_id(), season_id=season_id,
            first_name=first_name, last_name=last_name, team_id=team_id,
        )
        self.tables.players[row.id] = row
        return row.id

    # -- fixtures / frames -------------------------------------------------

    def find_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
    ) -> str | None:
        for row in self.tables.fixtures.values():
            if (
                row.season_id == season_id
                and row.match_date == match_date
                and row.home_team_id == home_team_id
                and row.away_team_id == away_team_id
            ):
                return row.id
        return None

    def create_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
        division_id: str | None, venue_id: str | None,
    ) -> str:
        row = FixtureRow(
            id=_new_id(), season_id=season_id, match_date=match_date,
            home_team_id=home_team_id, away_team_id=away_team_id,
            division_id=division_id, venue_id=venue_id,
        )
        self.tables.fixtures[row.id] = row
        return row.id

    def frame_numbers(self, fixture_id: str) -> set[int] | None:
        row = self.tables.fixtures.get(fixture_id)
        if row is None:
            return None
        return {f.number for f in row.frames}

    def add_frame(self, fixture_id: str, frame: NewFrame) -> None:
        self.tables.fixtures[fixture_id].frames.append(frame)

    # -- transactions ------------------------------------------------------

    @contextmanager
    def step(self, kind: str) -> Iterator[None]:
        snapshot = copy.deepcopy(self.tables)
        try:
            yield
        except BaseException:
            self.tables = snapshot
            self.steps_rolled_back.append(kind)
            raise

    def persist(self) -> None:
        self.persist_count += 1
