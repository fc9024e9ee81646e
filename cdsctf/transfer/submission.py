"""Flag submissions, with user, team, game and challenge preloaded."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, Table, func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import SubmissionStatus, challenges, games, submissions, teams, users
from cdsctf.transfer.challenge import Challenge
from cdsctf.transfer.game import Game
from cdsctf.transfer.members import Team, User


def _mapping(row: Any) -> Mapping[str, Any]:
    return getattr(row, "_mapping", row)


def _count(conn: Connection, stmt: Select) -> int:
    return conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()


def _paginate(stmt: Select, page: int | None, size: int | None) -> Select:
    if page is None or size is None:
        return stmt
    if page < 1 or size < 0:
        raise ValueError("page must be at least 1 and size must not be negative")
    return stmt.offset((page - 1) * size).limit(size)


def _rows_by_id(
    conn: Connection, table: Table, ids: Iterable[int | None]
) -> dict[int, dict[str, Any]]:
    wanted = {value for value in ids if value is not None}
    if not wanted:
        return {}
    stmt = select(table).where(table.c.id.in_(wanted))
    return {row.id: dict(row._mapping) for row in conn.execute(stmt)}


def _status_value(status: SubmissionStatus | int) -> int:
    return int(SubmissionStatus(status))


@dataclass
class Submission:
    id: int
    flag: str
    status: SubmissionStatus
    user_id: int
    team_id: int | None
    game_id: int | None
    challenge_id: int
    created_at: int
    updated_at: int
    pts: int
    rank: int
    user: User | None = None
    team: Team | None = None
    game: Game | None = None
    challenge: Challenge | None = None

    @classmethod
    def from_row(cls, row: Any) -> Submission:
        """Build a submission from a ``submissions`` row; relations are not loaded."""
        data = _mapping(row)
        return cls(
            id=data["id"],
            flag=data["flag"],
            status=SubmissionStatus(data["status"]),
            user_id=data["user_id"],
            team_id=data["team_id"],
            game_id=data["game_id"],
            challenge_id=data["challenge_id"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            pts=data["pts"],
            rank=data["rank"],
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``submissions`` table."""
        return {
            "id": self.id,
            "flag": self.flag,
            "status": int(self.status),
            "user_id": self.user_id,
            "team_id": self.team_id,
            "game_id": self.game_id,
            "challenge_id": self.challenge_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "pts": self.pts,
            "rank": self.rank,
        }

    def desensitize(self) -> None:
        """Blank the submitted flag."""
        self.flag = ""


def _preload(conn: Connection, found: list[Submission]) -> list[Submission]:
    if not found:
        return found
    user_rows = _rows_by_id(conn, users, (s.user_id for s in found))
    challenge_rows = _rows_by_id(conn, challenges, (s.challenge_id for s in found))
    team_rows = _rows_by_id(conn, teams, (s.team_id for s in found))
    game_rows = _rows_by_id(conn, games, (s.game_id for s in found))
    for item in found:
        user_row = user_rows.get(item.user_id)
        item.user = User.from_row(user_row) if user_row is not None else None
        if item.user is not None:
            item.user.desensitize()

        challenge_row = challenge_rows.get(item.challenge_id)
        item.challenge = Challenge.from_row(challenge_row) if challenge_row is not None else None
        if item.challenge is not None:
            item.challenge.desensitize()

        team_row = team_rows.get(item.team_id) if item.team_id is not None else None
        item.team = Team.from_row(team_row) if team_row is not None else None
        if item.team is not None:
            item.team.desensitize()

        game_row = game_rows.get(item.game_id) if item.game_id is not None else None
        item.game = Game.from_row(game_row) if game_row is not None else None
    return found


def find(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    user_id: int | None = None,
    team_id: int | None = None,
    game_id: int | None = None,
    challenge_id: int | None = None,
    status: SubmissionStatus | int | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[Submission], int]:
    """Return matching submissions with relations, and the count before paging."""
    stmt = select(submissions)
    if id is not None:
        stmt = stmt.where(submissions.c.id == id)
    if user_id is not None:
        stmt = stmt.where(submissions.c.user_id == user_id)
    if team_id is not None:
        stmt = stmt.where(submissions.c.team_id == team_id)
    if game_id is not None:
        stmt = stmt.where(submissions.c.game_id == game_id)
    if challenge_id is not None:
        stmt = stmt.where(submissions.c.challenge_id == challenge_id)
    if status is not None:
        stmt = stmt.where(submissions.c.status == _status_value(status))

    total = _count(conn, stmt)
    stmt = _paginate(stmt, page, size)
    found = [Submission.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, found), total


def get_by_challenge_ids(conn: Connection, challenge_ids: Iterable[int]) -> list[Submission]:
    """Return submissions to any of the challenges, oldest first."""
    stmt = (
        select(submissions)
        .where(submissions.c.challenge_id.in_(list(challenge_ids)))
        .order_by(submissions.c.created_at.asc())
    )
    found = [Submission.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, found)


def get_by_game_id_and_team_ids(
    conn: Connection,
    game_id: int,
    team_ids: Iterable[int],
    status: SubmissionStatus | int | None = None,
) -> list[Submission]:
    """Return the game's submissions made by any of the teams."""
    stmt = select(submissions).where(
        submissions.c.game_id == game_id,
        submissions.c.team_id.in_(list(team_ids)),
    )
    if status is not None:
        stmt = stmt.where(submissions.c.status == _status_value(status))
    found = [Submission.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, found)