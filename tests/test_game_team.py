import pytest
from sqlalchemy import create_engine

from cdsctf.entity import (
    Group,
    create_schema,
    game_teams,
    games,
    insert_row,
    teams,
    user_teams,
    users,
)
from cdsctf.transfer.game_team import GameTeam, find


@pytest.fixture
def conn():
    engine = create_engine("sqlite://")
    create_schema(engine)
    with engine.begin() as connection:
        yield connection


@pytest.fixture
def populated(conn):
    game = insert_row(
        conn,
        games,
        {
            "title": "final",
            "is_enabled": True,
            "is_public": True,
            "started_at": 1,
            "frozen_at": 2,
            "ended_at": 3,
        },
    )
    other = insert_row(
        conn,
        games,
        {
            "title": "qual",
            "is_enabled": True,
            "is_public": False,
            "started_at": 1,
            "frozen_at": 2,
            "ended_at": 3,
        },
    )
    captain = insert_row(
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
    team_ids = []
    for name in ("red", "green", "blue"):
        team = insert_row(
            conn,
            teams,
            {
                "name": name,
                "email": None,
                "captain_id": captain["id"],
                "slogan": None,
                "invite_token": "token",
            },
        )
        insert_row(conn, user_teams, {"user_id": captain["id"], "team_id": team["id"]})
        team_ids.append(team["id"])
    points = [10, 30, 20]
    for team_id, pts in zip(team_ids, points):
        insert_row(
            conn,
            game_teams,
            {"game_id": game["id"], "team_id": team_id, "is_allowed": pts != 20, "pts": pts},
        )
    insert_row(conn, game_teams, {"game_id": other["id"], "team_id": team_ids[0]})
    return {"game": game, "other": other, "team_ids": team_ids, "points": points}


def test_from_row_leaves_relations_empty():
    item = GameTeam.from_row(
        {"game_id": 1, "team_id": 2, "is_allowed": True, "pts": 5, "rank": 1}
    )
    assert (item.game_id, item.team_id, item.pts, item.rank) == (1, 2, 5, 1)
    assert item.game is None and item.team is None


def test_find_by_game_preloads_teams(conn, populated):
    found, total = find(conn, game_id=populated["game"]["id"])
    assert total == 3
    for item in found:
        assert item.team is not None
        assert item.team.id == item.team_id
        assert item.team.captain.username == "alice"
        assert item.team.captain.hashed_password == ""


def test_insert_defaults(conn, populated):
    found, _ = find(conn, game_id=populated["other"]["id"])
    assert len(found) == 1
    assert found[0].is_allowed is False
    assert (found[0].pts, found[0].rank) == (0, 0)


def test_sort_descending_and_ascending(conn, populated):
    desc, _ = find(conn, game_id=populated["game"]["id"], sorts="-pts")
    asc, _ = find(conn, game_id=populated["game"]["id"], sorts="pts")
    assert [i.pts for i in desc] == sorted(populated["points"], reverse=True)
    assert [i.pts for i in asc] == sorted(populated["points"])


def test_unknown_sort_column_is_ignored(conn, populated):
    found, total = find(conn, game_id=populated["game"]["id"], sorts="nope,-pts")
    assert total == 3
    assert [i.pts for i in found] == sorted(populated["points"], reverse=True)


def test_is_allowed_filter(conn, populated):
    found, total = find(conn, game_id=populated["game"]["id"], is_allowed=False)
    assert total == 1
    assert found[0].pts == 20


def test_team_filter_spans_games(conn, populated):
    found, total = find(conn, team_id=populated["team_ids"][0])
    assert total == 2
    assert {i.game_id for i in found} == {populated["game"]["id"], populated["other"]["id"]}


def test_paging_keeps_total(conn, populated):
    found, total = find(
        conn, game_id=populated["game"]["id"], sorts="-pts", page=2, size=2
    )
    assert total == 3
    assert [i.pts for i in found] == [min(populated["points"])]


def test_bad_paging_raises(conn, populated):
    with pytest.raises(ValueError):
        find(conn, page=0, size=5)


def test_no_match_returns_empty(conn, populated):
    assert find(conn, game_id=populated["game"]["id"] + 100) == ([], 0)