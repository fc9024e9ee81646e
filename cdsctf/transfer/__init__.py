"""Record types and queries over the platform's database tables."""

__all__ = [
    "challenge",
    "config",
    "game",
    "game_challenge",
    "game_team",
    "members",
    "pod",
    "submission",
]