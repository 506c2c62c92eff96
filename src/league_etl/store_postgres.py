"""league_etl.store_postgres

LeagueStore backed by PostgreSQL (psycopg 3).

The caller owns the connection and opens it with autocommit=False.  Each
import step runs inside a SAVEPOINT, so a failing step is rolled back on
its own while earlier steps stay in the open transaction.  `persist()`
commits; a dry run simply rolls the connection back instead.

Schema: migrations/0002_league_core.sql.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Iterator

import psycopg

from league_etl.normalize import normalize_key
from league_etl.store import NewFrame


def _norm(value: str | None) -> str:
    return normalize_key(value) or ""


class PostgresLeagueStore:
    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn
        self._savepoint_seq = 0

    # -- season ------------------------------------------------------------

    def find_or_create_season(self, name: str) -> str:
        """Insert the season if absent (DO NOTHING on conflict), then look it up."""
        norm = _norm(name)
        self.conn.execute(
            """
            INSERT INTO season (name, normalized_name)
            VALUES (%s, %s)
            ON CONFLICT (normalized_name) DO NOTHING
            """,
            (name, norm),
        )
        row = self.conn.execute(
            "SELECT id FROM season WHERE normalized_name = %s",
            (norm,),
        ).fetchone()
        return str(row[0])

    def season_dates(self, season_id: str) -> tuple[date | None, date | None]:
        row = self.conn.execute(
            "SELECT start_date, end_date FROM season WHERE id = %s",
            (season_id,),
        ).fetchone()
        if row is None:
            return None, None
        return row[0], row[1]

    def widen_season_dates(self, season_id: str, start: date | None, end: date | None) -> None:
        self.conn.execute(
            """
            UPDATE season
               SET start_date = CASE
                       WHEN %(start)s::date IS NULL THEN start_date
                       WHEN start_date IS NULL OR %(start)s::date < start_date THEN %(start)s::date
                       ELSE start_date END,
                   end_date = CASE
                       WHEN %(end)s::date IS NULL THEN end_date
                       WHEN end_date IS NULL OR %(end)s::date > end_date THEN %(end)s::date
                       ELSE end_date END
             WHERE id = %(id)s
            """,
            {"start": start, "end": end, "id": season_id},
        )

    # -- division / venue --------------------------------------------------

    def _find_named(self, table: str, season_id: str, name: str) -> str | None:
        row = self.conn.execute(
            f"SELECT id FROM {table} WHERE season_id = %s AND normalized_name = %s",
            (season_id, _norm(name)),
        ).fetchone()
        return str(row[0]) if row else None

    def find_division(self, season_id: str, name: str) -> str | None:
        return self._find_named("division", season_id, name)

    def create_division(self, season_id: str, name: str) -> str:
        row = self.conn.execute(
            """
            INSERT INTO division (season_id, name, normalized_name)
            VALUES (%s, %s, %s)
            RETURNING id
            """,
            (season_id, name, _norm(name)),
        ).fetchone()
        return str(row[0])

    def find_venue(self, season_id: str, name: str) -> str | None:
        return self._find_named("venue", season_id, name)

    def create_venue(self, season_id: str, name: str, address: str | None) -> str:
        row = self.conn.execute(
            """
            INSERT INTO venue (season_id, name, normalized_name, address)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (season_id, name, _norm(name), address),
        ).fetchone()
        return str(row[0])

    # -- team / player -----------------------------------------------------

    def find_team(self, season_id: str, name: str) -> str | None:
        return self._find_named("team", season_id, name)

    def create_team(
        self, season_id: str, name: str,
        division_id: str | None, venue_id: str | None, captain: str | None,
    ) -> str:
        row = self.conn.execute(
            """
            INSERT INTO team (season_id, name, normalized_name, division_id, venue_id, captain)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (season_id, name, _norm(name), division_id, venue_id, captain),
        ).fetchone()
        return str(row[0])

    def team_venue_id(self, team_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT venue_id FROM team WHERE id = %s",
            (team_id,),
        ).fetchone()
        return str(row[0]) if row and row[0] else None

    def find_player(self, season_id: str, first_name: str, last_name: str | None) -> str | None:
        row = self.conn.execute(
            """
            SELECT id FROM player
             WHERE season_id = %s
               AND normalized_first_name = %s
               AND normalized_last_name = %s
            """,
            (season_id, _norm(first_name), _norm(last_name)),
        ).fetchone()
        return str(row[0]) if row else None

    def create_player(
        self, season_id: str, first_name: str, last_name: str | None, team_id: str | None,
    ) -> str:
        row = self.conn.execute(
            """
            INSERT INTO player
              (season_id, first_name, last_name,
               normalized_first_name, normalized_last_name, team_id)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (season_id, first_name, last_name, _norm(first_name), _norm(last_name), team_id),
        ).fetchone()
        return str(row[0])

    # -- fixtures / frames -------------------------------------------------

    def find_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
    ) -> str | None:
        row = self.conn.execute(
            """
            SELECT id FROM fixture
             WHERE season_id = %s
               AND match_date IS NOT DISTINCT FROM %s::date
               AND home_team_id = %s
               AND away_team_id = %s
             ORDER BY created_at ASC
             LIMIT 1
            """,
            (season_id, match_date, home_team_id, away_team_id),
        ).fetchone()
        return str(row[0]) if row else None

    def create_fixture(
        self, season_id: str, match_date: date | None, home_team_id: str, away_team_id: str,
        division_id: str | None, venue_id: str | None,
    ) -> str:
        row = self.conn.execute(
            """
            INSERT INTO fixture
              (season_id, match_date, home_team_id, away_team_id, division_id, venue_id)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (season_id, match_date, home_team_id, away_team_id, division_id, venue_id),
        ).fetchone()
        return str(row[0])

    def frame_numbers(self, fixture_id: str) -> set[int] | None:
        exists = self.conn.execute(
            "SELECT 1 FROM fixture WHERE id = %s",
            (fixture_id,),
        ).fetchone()
        if exists is None:
            return None
        rows = self.conn.execute(
            "SELECT frame_number FROM frame_result WHERE fixture_id = %s",
            (fixture_id,),
        ).fetchall()
        return {r[0] for r in rows}

    def add_frame(self, fixture_id: str, frame: NewFrame) -> None:
        self.conn.execute(
            """
            INSERT INTO frame_result
              (fixture_id, frame_number, winner,
               home_player_id, away_player_id, home_partner_id, away_partner_id,
               eight_ball, is_doubles)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                fixture_id, frame.number, frame.winner.value,
                frame.home_player_id, frame.away_player_id,
                frame.home_partner_id, frame.away_partner_id,
                frame.eight_ball, frame.is_doubles,
            ),
        )

    # -- transactions ------------------------------------------------------

    @contextmanager
    def step(self, kind: str) -> Iterator[None]:
        self._savepoint_seq += 1
        sp_name = f"step_{kind}_{self._savepoint_seq}"
        self.conn.execute(f"SAVEPOINT {sp_name}")
        try:
            yield
        except BaseException:
            self.conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            raise
        self.conn.execute(f"RELEASE SAVEPOINT {sp_name}")

    def persist(self) -> None:
        self.conn.commit()
