"""Teams taking part in games, with the team preloaded."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import game_teams
from cdsctf.transfer.game import Game
from cdsctf.transfer.members import Team, find_teams_by_ids


def _paginate(stmt: Select, page: int | None, size: int | None) -> Select:
    if page is None or size is None:
        return stmt
    if page < 1 or size < 0:
        raise ValueError("page must be at least 1 and size must not be negative")
    return stmt.offset((page - 1) * size).limit(size)


def _apply_sorts(stmt: Select, sorts: str) -> Select:
    for sort in sorts.split(","):
        name = sort.replace("-", "")
        if name not in game_teams.c:
            continue
        column = game_teams.c[name]
        stmt = stmt.order_by(column.desc() if sort.startswith("-") else column.asc())
    return stmt


@dataclass
class GameTeam:
    game_id: int
    team_id: int
    is_allowed: bool
    pts: int
    rank: int
    game: Game | None = None
    team: Team | None = None

    @classmethod
    def from_row(cls, row: Any) -> GameTeam:
        """Build from a ``game_teams`` row; game and team are not loaded."""
        data = getattr(row, "_mapping", row)
        return cls(
            game_id=data["game_id"],
            team_id=data["team_id"],
            is_allowed=data["is_allowed"],
            pts=data["pts"],
            rank=data["rank"],
        )


def _preload(conn: Connection, items: list[GameTeam]) -> list[GameTeam]:
    if not items:
        return items
    by_id = {team.id: team for team in find_teams_by_ids(conn, {i.team_id for i in items})}
    for item in items:
        item.team = by_id.get(item.team_id)
    return items


def find(
    conn: Connection,
    *,
    game_id: int | None = None,
    team_id: int | None = None,
    is_allowed: bool | None = None,
    sorts: str | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[GameTeam], int]:
    """Return matching game teams, each with its team, and the count before paging.

    ``sorts`` is a comma-separated list of column names; a leading ``-``
    sorts that column in descending order. Unknown columns are ignored.
    """
    stmt = select(game_teams)
    if game_id is not None:
        stmt = stmt.where(game_teams.c.game_id == game_id)
    if team_id is not None:
        stmt = stmt.where(game_teams.c.team_id == team_id)
    if is_allowed is not None:
        stmt = stmt.where(game_teams.c.is_allowed == is_allowed)
    if sorts is not None:
        stmt = _apply_sorts(stmt, sorts)

    total = conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    stmt = _paginate(stmt, page, size)
    items = [GameTeam.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, items), total