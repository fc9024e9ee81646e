"""Stored configuration records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ConfigRecord:
    id: int = 0
    value: Any = None

    @classmethod
    def from_row(cls, row: Any) -> ConfigRecord:
        """Build a record from a ``configs`` row or an equivalent mapping."""
        data = getattr(row, "_mapping", row)
        return cls(id=data["id"], value=data["value"])