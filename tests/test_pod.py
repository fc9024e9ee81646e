import time

import pytest
from sqlalchemy import create_engine

from cdsctf.entity import (
    Group,
    Nat,
    challenges,
    create_schema,
    insert_row,
    pods,
    teams,
    users,
)
from cdsctf.transfer.pod import Pod, find


@pytest.fixture
def conn():
    engine = create_engine("sqlite://")
    create_schema(engine)
    with engine.begin() as connection:
        yield connection


def _seed(conn):
    user = insert_row(
        conn,
        users,
        {
            "username": "alice",
            "nickname": "Alice",
            "email": "alice@example.com",
            "group": Group.USER,
            "hashed_password": "password",
        },
    )
    team = insert_row(conn, teams, {"name": "red", "captain_id": user["id"]})
    challenge = insert_row(
        conn,
        challenges,
        {
            "title": "web1",
            "category": 1,
            "tags": ["web"],
            "ports": [80],
            "envs": [],
            "flags": [],
        },
    )
    return user, team, challenge


def _pod(conn, user, team, challenge, name, removed_at, nats=()):
    return insert_row(
        conn,
        pods,
        {
            "name": name,
            "flag": "flag{x}",
            "user_id": user["id"],
            "team_id": team["id"] if team else None,
            "game_id": None,
            "challenge_id": challenge["id"],
            "nats": list(nats),
            "removed_at": removed_at,
        },
    )


def test_from_row_and_to_row_round_trip():
    data = {
        "id": 3,
        "name": "cds-abc",
        "flag": "flag{x}",
        "user_id": 1,
        "team_id": None,
        "game_id": 2,
        "challenge_id": 5,
        "nats": [{"src": "80", "dst": "30080", "proxy": False, "entry": "host:30080"}],
        "removed_at": 100,
        "created_at": 50,
    }
    pod = Pod.from_row(data)
    assert pod.nats == [Nat(src="80", dst="30080", proxy=False, entry="host:30080")]
    assert pod.to_row() == data
    assert Pod.from_row(pod.to_row()) == pod


def test_desensitize_drops_flag():
    pod = Pod(1, "p", "flag{x}", 1, None, None, 2, [], 0, 0)
    pod.desensitize()
    assert pod.flag is None
    assert pod.name == "p"


def test_find_preloads_related_records(conn):
    user, team, challenge = _seed(conn)
    nat = Nat(src="80", proxy=True)
    _pod(conn, user, team, challenge, "cds-one", int(time.time()) + 3600, [nat])

    found, total = find(conn, name="cds-one")
    assert total == 1
    pod = found[0]
    assert pod.nats == [nat]
    assert pod.user.username == "alice"
    assert pod.team.name == "red"
    assert pod.challenge.title == "web1"
    assert pod.flag == "flag{x}"


def test_find_without_team_leaves_team_empty(conn):
    user, _, challenge = _seed(conn)
    _pod(conn, user, None, challenge, "solo", int(time.time()) + 3600)
    found, _ = find(conn, name="solo")
    assert found[0].team is None
    assert found[0].user.id == user["id"]


def test_find_is_available(conn):
    user, team, challenge = _seed(conn)
    now = int(time.time())
    _pod(conn, user, team, challenge, "live", now + 3600)
    _pod(conn, user, team, challenge, "gone", now - 3600)

    live, live_total = find(conn, is_available=True)
    gone, gone_total = find(conn, is_available=False)
    assert [p.name for p in live] == ["live"]
    assert [p.name for p in gone] == ["gone"]
    assert live_total == gone_total == 1


def test_find_filters_by_user_and_challenge(conn):
    user, team, challenge = _seed(conn)
    _pod(conn, user, team, challenge, "a", 0)
    _pod(conn, user, team, challenge, "b", 0)

    found, total = find(conn, user_id=user["id"], challenge_id=challenge["id"])
    assert total == 2
    assert {p.name for p in found} == {"a", "b"}
    assert find(conn, user_id=user["id"] + 100) == ([], 0)