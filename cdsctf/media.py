"""File storage for uploaded media, plus hashing and image conversion."""

from __future__ import annotations

import hashlib
import io
import shutil
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from cdsctf.env import MEDIA_PATH

WEBP_QUALITY = 85


class MediaError(Exception):
    """Base error for media operations."""


class MediaNotFound(MediaError):
    """The requested media file does not exist."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"not found: {detail}")


class MediaInternalError(MediaError):
    """The media file exists but could not be read."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"internal server error: {detail}")


@dataclass(frozen=True)
class MediaStore:
    """Media files kept below a root directory."""

    root: Path = Path(MEDIA_PATH)

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))

    def _file(self, path: str, filename: str) -> Path:
        return self.root / f"{path}/{filename}"

    def get(self, path: str, filename: str) -> bytes:
        """Return the contents of ``path/filename``."""
        try:
            handle = self._file(path, filename).open("rb")
        except OSError as exc:
            raise MediaNotFound() from exc
        with handle:
            try:
                return handle.read()
            except OSError as exc:
                raise MediaInternalError() from exc

    def scan_dir(self, path: str) -> list[tuple[str, int]]:
        """List ``(name, size)`` of the regular files directly in ``path``."""
        directory = self.root / path
        if not directory.exists():
            return []
        try:
            return [
                (entry.name, entry.stat().st_size)
                for entry in directory.iterdir()
                if entry.is_file()
            ]
        except OSError as exc:
            raise MediaError(f"I/O error: {exc}") from exc

    def save(self, path: str, filename: str, data: bytes) -> None:
        """Write ``data`` to ``path/filename``, creating directories as needed."""
        target = self._file(path, filename)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise MediaError(f"I/O error: {exc}") from exc

    def delete(self, path: str, filename: str) -> None:
        """Remove ``path/filename`` if it exists."""
        target = self._file(path, filename)
        if not target.exists():
            return
        try:
            target.unlink()
        except OSError as exc:
            raise MediaError(f"I/O error: {exc}") from exc

    def delete_dir(self, path: str) -> None:
        """Remove the directory ``path`` and everything in it, if it exists."""
        target = self.root / path
        if not target.exists():
            return
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise MediaError(f"I/O error: {exc}") from exc


def hash(data: bytes) -> str:  # noqa: A001
    """Hex-encoded SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def img_convert_to_webp(img: bytes) -> bytes:
    """Decode an image and re-encode it as lossy WebP."""
    try:
        with Image.open(io.BytesIO(img)) as source:
            rgba = source.convert("RGBA")
        output = io.BytesIO()
        rgba.save(output, format="WEBP", quality=WEBP_QUALITY)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise MediaError(str(exc)) from exc
    return output.getvalue()