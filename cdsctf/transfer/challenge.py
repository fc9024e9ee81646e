"""Challenges as handed to the rest of the application."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import ChallengeEnv, Flag, challenges


def _mapping(row: Any) -> Mapping[str, Any]:
    return getattr(row, "_mapping", row)


def _env(item: Any) -> ChallengeEnv:
    return item if isinstance(item, ChallengeEnv) else ChallengeEnv.from_dict(item)


def _flag(item: Any) -> Flag:
    return item if isinstance(item, Flag) else Flag.from_dict(item)


def _count(conn: Connection, stmt: Select) -> int:
    return conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()


def _paginate(stmt: Select, page: int | None, size: int | None) -> Select:
    if page is None or size is None:
        return stmt
    if page < 1 or size < 0:
        raise ValueError("page must be at least 1 and size must not be negative")
    return stmt.offset((page - 1) * size).limit(size)


@dataclass
class Challenge:
    id: int
    title: str
    description: str | None
    category: int
    tags: list[str]
    is_dynamic: bool
    has_attachment: bool
    is_practicable: bool
    image_name: str | None
    cpu_limit: int
    memory_limit: int
    duration: int
    ports: list[int]
    envs: list[ChallengeEnv]
    flags: list[Flag]
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Any) -> Challenge:
        """Build a challenge from a ``challenges`` row or an equivalent mapping."""
        data = _mapping(row)
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            category=data["category"],
            tags=list(data["tags"]),
            is_dynamic=data["is_dynamic"],
            has_attachment=data["has_attachment"],
            is_practicable=data["is_practicable"],
            image_name=data["image_name"],
            cpu_limit=data["cpu_limit"],
            memory_limit=data["memory_limit"],
            duration=data["duration"],
            ports=list(data["ports"]),
            envs=[_env(item) for item in data["envs"]],
            flags=[_flag(item) for item in data["flags"]],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``challenges`` table."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "is_dynamic": self.is_dynamic,
            "has_attachment": self.has_attachment,
            "is_practicable": self.is_practicable,
            "image_name": self.image_name,
            "cpu_limit": self.cpu_limit,
            "memory_limit": self.memory_limit,
            "duration": self.duration,
            "ports": list(self.ports),
            "envs": [env.to_dict() for env in self.envs],
            "flags": [flag.to_dict() for flag in self.flags],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def desensitize(self) -> None:
        """Drop environment variables, ports and flags."""
        self.envs.clear()
        self.ports.clear()
        self.flags.clear()


def find(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    title: str | None = None,
    category: int | None = None,
    is_practicable: bool | None = None,
    is_dynamic: bool | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[Challenge], int]:
    """Return matching challenges and the total count before paging."""
    stmt = select(challenges)
    if id is not None:
        stmt = stmt.where(challenges.c.id == id)
    if title is not None:
        stmt = stmt.where(challenges.c.title.contains(title))
    if category is not None:
        stmt = stmt.where(challenges.c.category == category)
    if is_practicable is not None:
        stmt = stmt.where(challenges.c.is_practicable == is_practicable)
    if is_dynamic is not None:
        stmt = stmt.where(challenges.c.is_dynamic == is_dynamic)

    total = _count(conn, stmt)
    stmt = _paginate(stmt, page, size)
    return [Challenge.from_row(row) for row in conn.execute(stmt)], total


def find_by_ids(conn: Connection, ids: Iterable[int]) -> list[Challenge]:
    """Return the challenges whose id is in ``ids``."""
    stmt = select(challenges).where(challenges.c.id.in_(list(ids)))
    return [Challenge.from_row(row) for row in conn.execute(stmt)]