"""Users, teams and the memberships that link them."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.engine import Connection

from cdsctf.entity import Group, teams, user_teams, users


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


def _group_value(group: Group | int | str) -> int:
    if isinstance(group, str):
        text = group.strip()
        if text.isdigit():
            return int(Group(int(text)))
        try:
            return int(Group[text.upper()])
        except KeyError as exc:
            raise ValueError(f"unknown group: {group!r}") from exc
    return int(Group(group))


@dataclass
class User:
    id: int
    username: str
    nickname: str
    email: str
    group: Group
    hashed_password: str
    is_deleted: bool
    created_at: int
    updated_at: int
    teams: list[Team] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any) -> User:
        """Build a user from a ``users`` row; teams are not loaded."""
        data = _mapping(row)
        return cls(
            id=data["id"],
            username=data["username"],
            nickname=data["nickname"],
            email=data["email"],
            group=Group(data["group"]),
            hashed_password=data["hashed_password"],
            is_deleted=data["is_deleted"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``users`` table."""
        return {
            "id": self.id,
            "username": self.username,
            "nickname": self.nickname,
            "email": self.email,
            "group": int(self.group),
            "hashed_password": self.hashed_password,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def desensitize(self) -> None:
        """Drop the password hash, here and in every loaded team."""
        self.hashed_password = ""
        for team in self.teams:
            team.desensitize()


@dataclass
class Team:
    id: int
    name: str
    email: str | None
    captain_id: int
    slogan: str | None
    invite_token: str | None
    is_deleted: bool
    created_at: int
    updated_at: int
    users: list[User] = field(default_factory=list)
    captain: User | None = None

    @classmethod
    def from_row(cls, row: Any) -> Team:
        """Build a team from a ``teams`` row; members are not loaded."""
        data = _mapping(row)
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            captain_id=data["captain_id"],
            slogan=data["slogan"],
            invite_token=data["invite_token"],
            is_deleted=data["is_deleted"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``teams`` table."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "captain_id": self.captain_id,
            "slogan": self.slogan,
            "invite_token": self.invite_token,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def desensitize(self) -> None:
        """Drop the invite token and desensitize the captain and members."""
        self.invite_token = None
        if self.captain is not None:
            self.captain.desensitize()
        for user in self.users:
            user.desensitize()


@dataclass
class UserTeam:
    user_id: int
    team_id: int

    @classmethod
    def from_row(cls, row: Any) -> UserTeam:
        """Build a membership from a ``user_teams`` row."""
        data = _mapping(row)
        return cls(user_id=data["user_id"], team_id=data["team_id"])


def _preload_users(conn: Connection, found: list[User]) -> list[User]:
    if not found:
        return found
    stmt = (
        select(user_teams.c.user_id, teams)
        .join(teams, teams.c.id == user_teams.c.team_id)
        .where(user_teams.c.user_id.in_([user.id for user in found]))
        .order_by(teams.c.id)
    )
    by_user: dict[int, list[Team]] = defaultdict(list)
    for row in conn.execute(stmt):
        by_user[row.user_id].append(Team.from_row(row))
    for user in found:
        user.teams = list(by_user.get(user.id, []))
    return found


def _preload_teams(conn: Connection, found: list[Team]) -> list[Team]:
    if not found:
        return found
    stmt = (
        select(user_teams.c.team_id, users)
        .join(users, users.c.id == user_teams.c.user_id)
        .where(user_teams.c.team_id.in_([team.id for team in found]))
        .order_by(users.c.id)
    )
    by_team: dict[int, list[Any]] = defaultdict(list)
    for row in conn.execute(stmt):
        by_team[row.team_id].append(row)
    for team in found:
        team.users = [User.from_row(row) for row in by_team.get(team.id, [])]
        for user in team.users:
            user.desensitize()
            if user.id == team.captain_id:
                team.captain = replace(user)
    return found


def find_users(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    name: str | None = None,
    username: str | None = None,
    group: Group | int | str | None = None,
    email: str | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[User], int]:
    """Return matching users with their teams, and the count before paging.

    ``name`` matches a substring of either the username or the nickname.
    """
    stmt = select(users)
    if id is not None:
        stmt = stmt.where(users.c.id == id)
    if name is not None:
        pattern = f"%{name}%"
        stmt = stmt.where(
            or_(users.c.username.like(pattern), users.c.nickname.like(pattern))
        )
    if username is not None:
        stmt = stmt.where(users.c.username == username)
    if group is not None:
        stmt = stmt.where(users.c.group == _group_value(group))
    if email is not None:
        stmt = stmt.where(users.c.email == email)

    total = _count(conn, stmt)
    stmt = _paginate(stmt, page, size)
    found = [User.from_row(row) for row in conn.execute(stmt)]
    return _preload_users(conn, found), total


def find_teams(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    name: str | None = None,
    email: str | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[Team], int]:
    """Return matching teams with their members, and the count before paging."""
    stmt = select(teams)
    if id is not None:
        stmt = stmt.where(teams.c.id == id)
    if name is not None:
        stmt = stmt.where(teams.c.name.contains(name))
    if email is not None:
        stmt = stmt.where(teams.c.email == email)

    total = _count(conn, stmt)
    stmt = _paginate(stmt, page, size)
    found = [Team.from_row(row) for row in conn.execute(stmt)]
    return _preload_teams(conn, found), total


def find_teams_by_ids(conn: Connection, ids: Iterable[int]) -> list[Team]:
    """Return the teams whose id is in ``ids``, with their members."""
    stmt = select(teams).where(teams.c.id.in_(list(ids)))
    found = [Team.from_row(row) for row in conn.execute(stmt)]
    return _preload_teams(conn, found)


def find_teams_by_user_id(conn: Connection, user_id: int) -> list[Team]:
    """Return the teams the user belongs to, with their members."""
    stmt = (
        select(teams)
        .join(user_teams, user_teams.c.team_id == teams.c.id)
        .where(user_teams.c.user_id == user_id)
    )
    found = [Team.from_row(row) for row in conn.execute(stmt)]
    return _preload_teams(conn, found)


def find_user_teams(
    conn: Connection,
    *,
    user_id: int | None = None,
    team_id: int | None = None,
) -> tuple[list[UserTeam], int]:
    """Return matching memberships and their count."""
    stmt = select(user_teams)
    if user_id is not None:
        stmt = stmt.where(user_teams.c.user_id == user_id)
    if team_id is not None:
        stmt = stmt.where(user_teams.c.team_id == team_id)

    total = _count(conn, stmt)
    return [UserTeam.from_row(row) for row in conn.execute(stmt)], total