import time

import pytest
import redis
from sqlalchemy import create_engine, select

from cdsctf.cache import Cache
from cdsctf.entity import (
    ChallengeEnv,
    Flag,
    FlagType,
    Group,
    Nat,
    SubmissionStatus,
    challenges,
    configs,
    create_schema,
    game_challenges,
    games,
    insert_row,
    pods,
    save_config,
    update_row,
    users,
)


class _DictClient:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value


class _BrokenClient:
    def set(self, key, value, ex=None):
        raise redis.ConnectionError("down")


@pytest.fixture
def conn():
    engine = create_engine("sqlite://")
    create_schema(engine)
    with engine.begin() as connection:
        yield connection


def _challenge(conn, **extra):
    values = {
        "title": "warmup",
        "category": 1,
        "tags": ["web"],
        "ports": [80],
        "envs": [ChallengeEnv("A", "B")],
        "flags": [Flag(FlagType.DYNAMIC, False, "FLAG", "flag{x}")],
    }
    values.update(extra)
    return insert_row(conn, challenges, values)


def _user(conn, name="alice"):
    return insert_row(
        conn,
        users,
        {
            "username": name,
            "nickname": name,
            "email": f"{name}@example.com",
            "group": Group.USER,
            "hashed_password": "password",
        },
    )


def test_enum_values_match_source():
    assert [FlagType(v) for v in (0, 1, 2)] == [
        FlagType.STATIC,
        FlagType.PATTERN,
        FlagType.DYNAMIC,
    ]
    assert Flag(FlagType.DYNAMIC, False, None, "v").to_dict()["type"] == 2
    assert Flag.from_dict({"type": 1, "banned": False, "value": "v"}).type_ is FlagType.PATTERN
    assert SubmissionStatus(3) is SubmissionStatus.CHEAT
    assert SubmissionStatus(4) is SubmissionStatus.INVALID
    assert Group(3) is Group.ADMIN
    assert Group(1) is Group.BANNED


def test_challenge_env_round_trip():
    env = ChallengeEnv("KEY", "VALUE")
    assert env.to_dict() == {"key": "KEY", "value": "VALUE"}
    assert ChallengeEnv.from_dict(env.to_dict()) == env


def test_challenge_env_missing_field():
    with pytest.raises(ValueError):
        ChallengeEnv.from_dict({"key": "K"})


def test_flag_uses_type_key():
    flag = Flag(FlagType.PATTERN, True, None, "x")
    data = flag.to_dict()
    assert data["type"] == 1
    assert "type_" not in data
    assert Flag.from_dict(data) == flag


def test_flag_env_optional_when_missing():
    flag = Flag.from_dict({"type": 0, "banned": False, "value": "v"})
    assert flag.env is None
    assert flag.type_ is FlagType.STATIC


def test_flag_unknown_type_rejected():
    with pytest.raises(ValueError):
        Flag.from_dict({"type": 9, "banned": False, "value": "v"})


def test_nat_skips_absent_optionals():
    nat = Nat(src="80", proxy=True)
    assert nat.to_dict() == {"src": "80", "proxy": True}
    assert Nat.from_dict(nat.to_dict()) == nat


def test_nat_full_round_trip():
    nat = Nat("80", "30080", False, "host:30080")
    assert Nat.from_dict(nat.to_dict()) == nat


def test_nat_bad_type():
    with pytest.raises(ValueError):
        Nat.from_dict({"src": 80, "proxy": True})


def test_insert_challenge_applies_defaults_and_timestamps(conn):
    before = int(time.time())
    row = _challenge(conn)
    after = int(time.time())
    assert row["duration"] == 1800
    assert row["is_dynamic"] is False
    assert row["cpu_limit"] == 0
    assert before <= row["created_at"] <= after
    assert row["created_at"] == row["updated_at"]
    assert row["envs"] == [{"key": "A", "value": "B"}]
    assert Flag.from_dict(row["flags"][0]).env == "FLAG"


def test_insert_keeps_given_created_at_but_stamps_updated_at(conn):
    before = int(time.time())
    row = _challenge(conn, created_at=1, updated_at=1)
    assert row["created_at"] == 1
    assert row["updated_at"] >= before


def test_insert_game_defaults(conn):
    row = insert_row(
        conn,
        games,
        {
            "title": "ctf",
            "is_enabled": True,
            "is_public": True,
            "started_at": 0,
            "frozen_at": 0,
            "ended_at": 0,
        },
    )
    assert row["member_limit_min"] == 3
    assert row["member_limit_max"] == 3
    assert row["parallel_container_limit"] == 2


def test_game_challenge_composite_key_defaults(conn):
    game = insert_row(
        conn,
        games,
        {"title": "g", "is_enabled": True, "is_public": False,
         "started_at": 0, "frozen_at": 0, "ended_at": 0},
    )
    challenge = _challenge(conn)
    row = insert_row(
        conn, game_challenges, {"game_id": game["id"], "challenge_id": challenge["id"]}
    )
    assert (row["game_id"], row["challenge_id"]) == (game["id"], challenge["id"])
    assert row["max_pts"] == 2000
    assert row["min_pts"] == 200
    assert "created_at" not in row


def test_pod_stores_nats(conn):
    user = _user(conn)
    challenge = _challenge(conn)
    nat = Nat(src="80", proxy=True)
    row = insert_row(
        conn,
        pods,
        {"name": "p", "user_id": user["id"], "challenge_id": challenge["id"],
         "nats": [nat], "removed_at": 0},
    )
    assert [Nat.from_dict(n) for n in row["nats"]] == [nat]
    assert "updated_at" not in row
    assert row["created_at"] > 0


def test_user_group_stored_as_int(conn):
    row = _user(conn)
    assert Group(row["group"]) is Group.USER


def test_update_row_changes_values_and_refreshes_updated_at(conn):
    row = _challenge(conn, created_at=1, updated_at=1)
    conn.execute(challenges.update().values(updated_at=1))
    updated = update_row(conn, challenges, {"id": row["id"]}, {"title": "renamed"})
    assert updated["title"] == "renamed"
    assert updated["updated_at"] > 1
    assert updated["created_at"] == 1


def test_update_row_missing_raises(conn):
    with pytest.raises(LookupError):
        update_row(conn, challenges, {"id": 42}, {"title": "x"})


def test_save_config_inserts_then_updates_and_caches(conn):
    cache = Cache(_DictClient())
    first = save_config(conn, {"a": 1}, cache)
    second = save_config(conn, {"a": 2}, cache)
    assert first["id"] == second["id"]
    assert cache.get("config") == {"a": 2}
    stored = conn.execute(select(configs)).all()
    assert len(stored) == 1
    assert stored[0].value == {"a": 2}


def test_save_config_ignores_cache_failure(conn):
    row = save_config(conn, {"b": True}, Cache(_BrokenClient()))
    assert row["value"] == {"b": True}
    assert conn.execute(select(configs.c.value)).scalar_one() == {"b": True}