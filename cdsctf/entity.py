"""Database schema: tables, column defaults and JSON value types."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import URL, Connection, Engine

from cdsctf.cache import CacheError
from cdsctf.config import CACHE_KEY
from cdsctf.env import Env, get_env

logger = logging.getLogger(__name__)

metadata = MetaData()

_Id = BigInteger().with_variant(Integer, "sqlite")


class FlagType(IntEnum):
    STATIC = 0
    PATTERN = 1
    DYNAMIC = 2


class SubmissionStatus(IntEnum):
    PENDING = 0
    CORRECT = 1
    INCORRECT = 2
    CHEAT = 3
    INVALID = 4


class Group(IntEnum):
    GUEST = 0
    BANNED = 1
    USER = 2
    ADMIN = 3


def _field(data: Mapping[str, Any], key: str, kind: type, owner: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}` in {owner}")
    return _typed(data[key], key, kind, owner)


def _optional(data: Mapping[str, Any], key: str, kind: type, owner: str) -> Any:
    value = data.get(key)
    return None if value is None else _typed(value, key, kind, owner)


def _typed(value: Any, key: str, kind: type, owner: str) -> Any:
    if kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)
    if not valid:
        raise ValueError(f"invalid type for `{key}` in {owner}: expected {kind.__name__}")
    return value


@dataclass
class ChallengeEnv:
    """An environment variable passed to a challenge container."""

    key: str = ""
    value: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChallengeEnv:
        return cls(
            key=_field(data, "key", str, "env"),
            value=_field(data, "value", str, "env"),
        )


@dataclass
class Flag:
    """A flag accepted by a challenge."""

    type_: FlagType = FlagType.STATIC
    banned: bool = False
    env: str | None = None
    value: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": int(self.type_),
            "banned": self.banned,
            "env": self.env,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Flag:
        return cls(
            type_=FlagType(_field(data, "type", int, "flag")),
            banned=_field(data, "banned", bool, "flag"),
            env=_optional(data, "env", str, "flag"),
            value=_field(data, "value", str, "flag"),
        )


@dataclass
class Nat:
    """A port exposed by a running challenge pod."""

    src: str = ""
    dst: str | None = None
    proxy: bool = False
    entry: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"src": self.src}
        if self.dst is not None:
            result["dst"] = self.dst
        result["proxy"] = self.proxy
        if self.entry is not None:
            result["entry"] = self.entry
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Nat:
        return cls(
            src=_field(data, "src", str, "nat"),
            dst=_optional(data, "dst", str, "nat"),
            proxy=_field(data, "proxy", bool, "nat"),
            entry=_optional(data, "entry", str, "nat"),
        )


def _pk() -> Column:
    return Column("id", _Id, primary_key=True, autoincrement=True)


def _fk(name: str, target: str, *, nullable: bool, cascade: bool = False, primary: bool = False) -> Column:
    return Column(
        name,
        _Id,
        ForeignKey(target, ondelete="CASCADE" if cascade else None),
        primary_key=primary,
        autoincrement=False,
        nullable=nullable,
    )


users = Table(
    "users",
    metadata,
    _pk(),
    Column("username", String, unique=True, nullable=False),
    Column("nickname", String, nullable=False),
    Column("email", String, unique=True, nullable=False),
    Column("group", Integer, nullable=False),
    Column("hashed_password", String, nullable=False),
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

teams = Table(
    "teams",
    metadata,
    _pk(),
    Column("name", String, nullable=False),
    Column("email", String, nullable=True),
    Column("captain_id", BigInteger, nullable=False),
    Column("slogan", String, nullable=True),
    Column("invite_token", String, nullable=True),
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

user_teams = Table(
    "user_teams",
    metadata,
    _fk("user_id", "users.id", nullable=False, cascade=True, primary=True),
    _fk("team_id", "teams.id", nullable=False, cascade=True, primary=True),
)

challenges = Table(
    "challenges",
    metadata,
    _pk(),
    Column("title", String, nullable=False),
    Column("description", String, nullable=True),
    Column("category", Integer, nullable=False),
    Column("tags", JSON, nullable=False),
    Column("is_dynamic", Boolean, nullable=False, default=False),
    Column("has_attachment", Boolean, nullable=False, default=False),
    Column("is_practicable", Boolean, nullable=False, default=False),
    Column("image_name", String, nullable=True),
    Column("cpu_limit", BigInteger, nullable=False, default=0),
    Column("memory_limit", BigInteger, nullable=False, default=0),
    Column("duration", BigInteger, nullable=False, default=1800),
    Column("ports", JSON, nullable=False),
    Column("envs", JSON, nullable=False),
    Column("flags", JSON, nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

configs = Table(
    "configs",
    metadata,
    _pk(),
    Column("value", JSON, nullable=False),
)

games = Table(
    "games",
    metadata,
    _pk(),
    Column("title", String, nullable=False),
    Column("sketch", String, nullable=True),
    Column("description", String, nullable=True),
    Column("is_enabled", Boolean, nullable=False),
    Column("is_public", Boolean, nullable=False),
    Column("member_limit_min", BigInteger, nullable=False, default=3),
    Column("member_limit_max", BigInteger, nullable=False, default=3),
    Column("parallel_container_limit", BigInteger, nullable=False, default=2),
    Column("is_need_write_up", Boolean, nullable=False, default=False),
    Column("started_at", BigInteger, nullable=False),
    Column("frozen_at", BigInteger, nullable=False),
    Column("ended_at", BigInteger, nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

game_challenges = Table(
    "game_challenges",
    metadata,
    _fk("game_id", "games.id", nullable=False, cascade=True, primary=True),
    _fk("challenge_id", "challenges.id", nullable=False, cascade=True, primary=True),
    _fk("contact_id", "users.id", nullable=True),
    Column("difficulty", BigInteger, nullable=False, default=1),
    Column("is_enabled", Boolean, nullable=False, default=False),
    Column("first_blood_reward_ratio", BigInteger, nullable=False, default=5),
    Column("second_blood_reward_ratio", BigInteger, nullable=False, default=3),
    Column("third_blood_reward_ratio", BigInteger, nullable=False, default=1),
    Column("max_pts", BigInteger, nullable=False, default=2000),
    Column("min_pts", BigInteger, nullable=False, default=200),
    Column("pts", BigInteger, nullable=False, default=0),
)

game_teams = Table(
    "game_teams",
    metadata,
    _fk("game_id", "games.id", nullable=False, cascade=True, primary=True),
    _fk("team_id", "teams.id", nullable=False, cascade=True, primary=True),
    Column("is_allowed", Boolean, nullable=False, default=False),
    Column("pts", BigInteger, nullable=False, default=0),
    Column("rank", BigInteger, nullable=False, default=0),
)

pods = Table(
    "pods",
    metadata,
    _pk(),
    Column("name", String, nullable=False),
    Column("flag", String, nullable=True),
    _fk("user_id", "users.id", nullable=False),
    _fk("team_id", "teams.id", nullable=True),
    _fk("game_id", "games.id", nullable=True),
    _fk("challenge_id", "challenges.id", nullable=False),
    Column("nats", JSON, nullable=False),
    Column("removed_at", BigInteger, nullable=False),
    Column("created_at", BigInteger, nullable=False),
)

submissions = Table(
    "submissions",
    metadata,
    _pk(),
    Column("flag", String, nullable=False),
    Column("status", Integer, nullable=False),
    _fk("user_id", "users.id", nullable=False, cascade=True),
    _fk("team_id", "teams.id", nullable=True, cascade=True),
    _fk("game_id", "games.id", nullable=True, cascade=True),
    _fk("challenge_id", "challenges.id", nullable=False, cascade=True),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
    Column("pts", BigInteger, nullable=False, default=0),
    Column("rank", BigInteger, nullable=False, default=0),
)


def create_engine_from_env(env: Env | None = None) -> Engine:
    """Create the PostgreSQL engine described by the environment."""
    db = (env or get_env()).db
    url = URL.create(
        "postgresql",
        username=db.username,
        password=db.password,
        host=db.host,
        port=db.port,
        database=db.dbname,
    )
    engine = create_engine(
        url,
        pool_size=5,
        max_overflow=95,
        pool_timeout=8,
        pool_recycle=8,
        echo=False,
        connect_args={"connect_timeout": 8, "options": "-c search_path=public"},
    )
    logger.info("Database connection established successfully.")
    return engine


def create_schema(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(engine)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_plain(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return value


def _key_clause(table: Table, key: Mapping[str, Any]) -> Any:
    return and_(*(table.c[name] == value for name, value in key.items()))


def _fetch(conn: Connection, table: Table, key: Mapping[str, Any]) -> dict[str, Any]:
    row = conn.execute(select(table).where(_key_clause(table, key))).first()
    if row is None:
        raise LookupError(f"no row in {table.name} for {dict(key)}")
    return dict(row._mapping)


def insert_row(conn: Connection, table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
    """Insert a row, stamping ``created_at``/``updated_at``, and return it."""
    row = {name: _plain(value) for name, value in values.items()}
    now = int(time.time())
    if "created_at" in table.c and row.get("created_at") is None:
        row["created_at"] = now
    if "updated_at" in table.c:
        row["updated_at"] = now
    result = conn.execute(insert(table).values(**row))
    key = {
        column.name: value
        for column, value in zip(table.primary_key.columns, result.inserted_primary_key)
    }
    return _fetch(conn, table, key)


def update_row(
    conn: Connection, table: Table, key: Mapping[str, Any], values: Mapping[str, Any]
) -> dict[str, Any]:
    """Update the row identified by ``key``, refreshing ``updated_at``."""
    row = {name: _plain(value) for name, value in values.items()}
    if "updated_at" in table.c:
        row["updated_at"] = int(time.time())
    result = conn.execute(update(table).where(_key_clause(table, key)).values(**row))
    if result.rowcount == 0:
        raise LookupError(f"no row in {table.name} for {dict(key)}")
    return _fetch(conn, table, key)


def save_config(conn: Connection, value: Any, cache: Any) -> dict[str, Any]:
    """Store the configuration value and mirror it into the cache."""
    current = conn.execute(select(configs.c.id).order_by(configs.c.id)).first()
    if current is None:
        row = insert_row(conn, configs, {"value": value})
    else:
        row = update_row(conn, configs, {"id": current.id}, {"value": value})
    try:
        cache.set(CACHE_KEY, row["value"])
    except CacheError as exc:
        logger.warning("Could not cache configuration: %s", exc)
    return row