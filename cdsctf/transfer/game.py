"""Games as handed to the rest of the application."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import games


def _count(conn: Connection, stmt: Select) -> int:
    return conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()


def _paginate(stmt: Select, page: int | None, size: int | None) -> Select:
    if page is None or size is None:
        return stmt
    if page < 1 or size < 0:
        raise ValueError("page must be at least 1 and size must not be negative")
    return stmt.offset((page - 1) * size).limit(size)


def _apply_sorts(stmt: Select, sorts: str) -> Select:
    for sort in sorts.split(","):
        name = sort.replace("-", "")
        if name not in games.c:
            continue
        column = games.c[name]
        stmt = stmt.order_by(column.desc() if sort.startswith("-") else column.asc())
    return stmt


@dataclass
class Game:
    id: int
    title: str
    sketch: str | None
    description: str | None
    is_enabled: bool
    is_public: bool
    member_limit_min: int
    member_limit_max: int
    parallel_container_limit: int
    is_need_write_up: bool
    started_at: int
    frozen_at: int
    ended_at: int
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Any) -> Game:
        """Build a game from a ``games`` row or an equivalent mapping."""
        data = getattr(row, "_mapping", row)
        return cls(**{name: data[name] for name in cls.__dataclass_fields__})

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``games`` table."""
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def find(
    conn: Connection,
    *,
    id: int | None = None,  # noqa: A002
    title: str | None = None,
    is_enabled: bool | None = None,
    sorts: str | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[Game], int]:
    """Return matching games and the total count before paging.

    ``sorts`` is a comma-separated list of column names; a leading ``-``
    sorts that column in descending order. Unknown columns are ignored.
    """
    stmt = select(games)
    if id is not None:
        stmt = stmt.where(games.c.id == id)
    if title is not None:
        stmt = stmt.where(games.c.title.contains(title))
    if is_enabled is not None:
        stmt = stmt.where(games.c.is_enabled == is_enabled)
    if sorts is not None:
        stmt = _apply_sorts(stmt, sorts)

    total = _count(conn, stmt)
    stmt = _paginate(stmt, page, size)
    return [Game.from_row(row) for row in conn.execute(stmt)], total