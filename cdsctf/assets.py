"""Static assets, read from ``./assets`` with a packaged fallback."""

from __future__ import annotations

from pathlib import Path

_PACKAGED = Path(__file__).with_name("assets")


def get(path: str, base_dir: str | Path | None = None) -> bytes | None:
    """Return the asset at ``path``, or ``None`` if it exists nowhere.

    The working-directory ``assets`` folder (or ``base_dir``) overrides the
    assets shipped with the package.
    """
    local = Path("assets") if base_dir is None else Path(base_dir)
    for root in (local, _PACKAGED):
        try:
            return (root / path).read_bytes()
        except OSError:
            continue
    return None