"""Challenges attached to games, with the challenge itself preloaded."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from cdsctf.entity import game_challenges
from cdsctf.transfer.challenge import Challenge, find_by_ids


@dataclass
class GameChallenge:
    game_id: int
    challenge_id: int
    contact_id: int | None
    difficulty: int
    is_enabled: bool
    first_blood_reward_ratio: int
    second_blood_reward_ratio: int
    third_blood_reward_ratio: int
    max_pts: int
    min_pts: int
    pts: int
    challenge: Challenge | None = None

    @classmethod
    def from_row(cls, row: Any) -> GameChallenge:
        """Build from a ``game_challenges`` row; the challenge is not loaded."""
        data = getattr(row, "_mapping", row)
        return cls(
            game_id=data["game_id"],
            challenge_id=data["challenge_id"],
            contact_id=data["contact_id"],
            difficulty=data["difficulty"],
            is_enabled=data["is_enabled"],
            first_blood_reward_ratio=data["first_blood_reward_ratio"],
            second_blood_reward_ratio=data["second_blood_reward_ratio"],
            third_blood_reward_ratio=data["third_blood_reward_ratio"],
            max_pts=data["max_pts"],
            min_pts=data["min_pts"],
            pts=data["pts"],
        )


def _preload(conn: Connection, items: list[GameChallenge]) -> list[GameChallenge]:
    ids = {item.challenge_id for item in items}
    by_id = {challenge.id: challenge for challenge in find_by_ids(conn, ids)}
    for item in items:
        item.challenge = by_id.get(item.challenge_id)
    return items


def find(
    conn: Connection,
    *,
    game_id: int | None = None,
    challenge_id: int | None = None,
    is_enabled: bool | None = None,
) -> tuple[list[GameChallenge], int]:
    """Return matching game challenges, each with its challenge, and the count."""
    stmt = select(game_challenges)
    if game_id is not None:
        stmt = stmt.where(game_challenges.c.game_id == game_id)
    if challenge_id is not None:
        stmt = stmt.where(game_challenges.c.challenge_id == challenge_id)
    if is_enabled is not None:
        stmt = stmt.where(game_challenges.c.is_enabled == is_enabled)

    total = conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    items = [GameChallenge.from_row(row) for row in conn.execute(stmt)]
    return _preload(conn, items), total