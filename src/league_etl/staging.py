"""league_etl.staging

Typed staging records, one dataclass per legacy table.

Each record carries the legacy integer id, the natural-key fields used to
recognise the entity on re-import, foreign keys as legacy ids, and
`mapped_*` slots that stay None until the orchestrator resolves them.
Statistics from the legacy tables are parsed for reporting only; the
orchestrator never writes them to the store.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date


class FrameWinner(str, enum.Enum):
    HOME = "Home"
    AWAY = "Away"
    NONE = "None"

    @classmethod
    def from_text(cls, text: str | None) -> "FrameWinner":
        v = (text or "").strip().lower()
        if v == "home":
            return cls.HOME
        if v == "away":
            return cls.AWAY
        return cls.NONE


# ---------------------------------------------------------------------------
# Reference tables
# ---------------------------------------------------------------------------

@dataclass
class StagedDivision:
    legacy_id: int
    full_name: str
    abbreviated: str | None = None
    mapped_id: str | None = None


@dataclass
class StagedVenue:
    legacy_id: int
    name: str
    address: str | None = None
    mapped_id: str | None = None


@dataclass
class StagedTeam:
    legacy_id: int
    name: str
    venue_legacy_id: int | None = None
    division_legacy_id: int | None = None
    captain: str | None = None
    contact_address: str | None = None
    withdrawn: bool = False
    remove_results: bool = False
    # Statistics (never written)
    wins: int = 0
    losses: int = 0
    draws: int = 0
    singles_wins: int = 0
    singles_losses: int = 0
    doubles_wins: int = 0
    doubles_losses: int = 0
    points: int = 0
    played: int = 0
    points_deduction: int = 0
    mapped_id: str | None = None
    mapped_venue_id: str | None = None
    mapped_division_id: str | None = None


@dataclass
class StagedPlayer:
    legacy_id: int
    full_name: str
    first_name: str
    last_name: str | None = None
    team_legacy_id: int | None = None
    # Statistics (never written)
    played: int = 0
    wins: int = 0
    losses: int = 0
    current_rating: int | None = None
    best_rating: int | None = None
    best_rating_date: date | None = None
    eight_balls: int = 0
    mapped_id: str | None = None
    mapped_team_id: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class StagedMatch:
    legacy_id: int
    home_team_legacy_id: int
    away_team_legacy_id: int
    match_date: date | None = None
    division_name: str | None = None
    home_singles_wins: int = 0
    away_singles_wins: int = 0
    home_doubles_wins: int = 0
    away_doubles_wins: int = 0
    mapped_id: str | None = None
    mapped_home_team_id: str | None = None
    mapped_away_team_id: str | None = None
    mapped_division_id: str | None = None
    mapped_venue_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return any((
            self.home_singles_wins, self.away_singles_wins,
            self.home_doubles_wins, self.away_doubles_wins,
        ))


@dataclass
class StagedSinglesFrame:
    match_no: int
    frame_number: int
    winner: FrameWinner
    home_player_legacy_id: int | None = None
    away_player_legacy_id: int | None = None
    eight_ball: bool = False
    mapped_fixture_id: str | None = None
    mapped_home_player_id: str | None = None
    mapped_away_player_id: str | None = None


@dataclass
class StagedDoublesFrame:
    match_no: int
    frame_number: int
    winner: FrameWinner
    home_player1_legacy_id: int | None = None
    home_player2_legacy_id: int | None = None
    away_player1_legacy_id: int | None = None
    away_player2_legacy_id: int | None = None
    eight_ball1: bool = False
    eight_ball2: bool = False
    mapped_fixture_id: str | None = None
    mapped_home_player1_id: str | None = None
    mapped_home_player2_id: str | None = None
    mapped_away_player1_id: str | None = None
    mapped_away_player2_id: str | None = None

    @property
    def eight_ball(self) -> bool:
        return self.eight_ball1 or self.eight_ball2
