"""Challenge pods, with their user, team and challenge preloaded."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select, Table, func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import Nat, challenges, pods, teams, users
from cdsctf.transfer.challenge import Challenge
from cdsctf.transfer.members import Team, User


def _mapping(row: Any) -> Mapping[str, Any]:
    return getattr(row, "_mapping", row)


def _nat(item: Any) -> Nat:
    return item if isinstance(item, Nat) else Nat.from_dict(item)


def _count(conn: Connection, stmt: Select) -> int:
    return conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()


def _rows_by_id(
    conn: Connection, table: Table, ids: Iterable[int | None]
) -> dict[int, dict[str, Any]]:
    wanted = {value for value in ids if value is not None}
    if not wanted:
        return {}
    stmt = select(table).where(table.c.id.in_(wanted))
    return {row.id: dict(row._mapping) for row in conn.execute(stmt)}


@dataclass
class Pod:
    id: int
    name: str
    flag: str | None
    user_id: int
    team_id: int | None
    game_id: int | None
    challenge_id: int
    nats: list[Nat]
    removed_at: int
    created_at: int
    user: User | None = None
    team: Team | None = None
    challenge: Challenge | None = None
    _extra: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_row(cls, row: Any) -> Pod:
        """Build a pod from a ``pods`` row; related records are not loaded."""
        data = _mapping(row)
        return cls(
            id=data["id"],
            name=data["name"],
            flag=data["flag"],
            user_id=data["user_id"],
            team_id=data["team_id"],
            game_id=data["game_id"],
            challenge_id=data["challenge_id"],
            nats=[_nat(item) for item in data["nats"]],
            removed_at=data["removed_at"],
            created_at=data["created_at"],
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``pods`` table."""
        return {
            "id": self.id,
            "name": self.name,
            "flag": self.flag,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "game_id": self.game_id,
            "challenge_id": self.challenge_id,
            "nats": [nat.to_dict() for nat in self.nats],
            "removed_at": self.removed_at,
            "created_at": self.created_at,
        }

    def desensitize(self) -> None:
        """Drop the injected flag."""
        self.flag = None


def _preload(conn: Connection, found: list[Pod]) -> list[Pod]:
    if not found:
        return found
    user_rows = _rows_by_id(conn, users, (pod.user_id for pod in found))
    team_rows = _rows_by_id(conn, teams, (pod.team_id for pod in found))
    challenge_rows = _rows_by_id(conn, challenges, (pod.challenge_id for pod in found))
    for pod in found:
        user_row = user_rows.get(pod.user_id)
        pod.user = User.from_row(user_row) if user_row is not None else None
        team_row = team_rows.get(pod.team_id) if pod.team_id is not None else None
        pod.team = Team.from_row(team_row) if team_row is not None else None
        challenge_row = challenge_rows.get(pod.challenge_id)
        pod.challenge = Challenge.from_row(challenge_row) if challenge_row is not None else None
    return found


def find(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    name: str | None = None,
    user_id: int | None = None,
    team_id: int | None = None,
    game_id: int | None = None,
    challenge_id: int | None = None,
    is_available: bool | None = None,
) -> tuple[list[Pod], int]:
    """Return matching pods with user, team and challenge, and their count.

    ``is_available`` keeps pods whose removal time is not yet past (``True``)
    or already past (``False``).
    """
    stmt = select(pods)
    if id is not None:
        stmt = stmt.where(pods.c.id == id)
    if name is not None:
        stmt = stmt.where(pods.c.name == name)
    if user_id is not None:
        stmt = stmt.where(pods.c.user_id == user_id)
    if team_id is not None:
        stmt = stmt.where(pods.c.team_id == team_id)
    if game_id is not None:
        stmt = stmt.where(pods.c.game_id == game_id)
    if challenge_id is not None:
        stmt = stmt.where(pods.c.challenge_id == challenge_id)
    if is_available is not None:
        now = int(time.time())
        if is_available:
            stmt = stmt.where(pods.c.removed_at >= now)
        else:
            stmt = stmt.where(pods.c.removed_at <= now)

    total = _count(conn, stmt)
    found = [Pod.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, found), total