"""Uploaded media on disk.

Files live flat in the uploads directory and are referenced from the
database by their public path ``/uploads/<filename>``.
"""
from __future__ import annotations

import logging
import os
import re
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from galerie_core.errors import UnsupportedMediaError

logger = logging.getLogger("galerie_core.media")

ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
UNSUPPORTED_MEDIA_MESSAGE = "Format d'image non supporté. Formats autorisés : JPG, PNG, GIF, WEBP."

PUBLIC_PREFIX = "/uploads/"

_legacy_prefix_re = re.compile(r"^/?public/")
_slashes_re = re.compile(r"/{2,}")


def normalize_public_path(value: Optional[str]) -> Optional[str]:
    """Canonical ``/uploads/...`` form of a stored media path.

    Strips the legacy ``/public/`` prefix and doubled slashes. Absolute URLs
    and empty values are returned as they are (empty becomes ``None``).
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if "://" in value:
        return value
    value = _slashes_re.sub("/", value)
    value = _legacy_prefix_re.sub("/", value)
    if not value.startswith("/"):
        value = "/" + value
    return value


def is_allowed_mime(content_type: Optional[str]) -> bool:
    return (content_type or "").split(";")[0].strip().lower() in ALLOWED_MIME_TYPES


@dataclass(frozen=True)
class SavedUpload:
    filename: str
    content_type: str
    original_name: Optional[str] = None

    @property
    def public_path(self) -> str:
        return PUBLIC_PREFIX + self.filename


class MediaStore:
    """Saves, resolves and deletes files in the uploads directory."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def ensure_dir(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    @staticmethod
    def _generate_name(extension: str) -> str:
        return f"photo_{int(time.time() * 1000)}_{secrets.randbelow(10 ** 9)}{extension}"

    def save(self, stream: BinaryIO, content_type: Optional[str], original_name: Optional[str] = None) -> SavedUpload:
        """Write *stream* under a generated name.

        Unsupported types are rejected before anything touches the disk, and
        a failed write leaves no partial file behind.
        """
        mime = (content_type or "").split(";")[0].strip().lower()
        extension = ALLOWED_MIME_TYPES.get(mime)
        if extension is None:
            logger.warning("media.reject content_type=%s name=%s", content_type, original_name)
            raise UnsupportedMediaError(UNSUPPORTED_MEDIA_MESSAGE)
        self.ensure_dir()
        filename = self._generate_name(extension)
        target = self.root / filename
        partial = self.root / f".{filename}.part"
        try:
            with open(partial, "wb") as buffer:
                shutil.copyfileobj(stream, buffer)
            os.replace(partial, target)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        logger.info("media.save file=%s content_type=%s", filename, mime)
        return SavedUpload(filename=filename, content_type=mime, original_name=original_name)

    def path_for(self, public_path: Optional[str]) -> Optional[Path]:
        """Filesystem path behind *public_path*, or ``None`` if it is not an upload."""
        normalized = normalize_public_path(public_path)
        if not normalized or not normalized.startswith(PUBLIC_PREFIX):
            return None
        relative = normalized[len(PUBLIC_PREFIX):]
        root = self.root.resolve()
        candidate = (root / relative).resolve()
        if candidate == root or root not in candidate.parents:
            return None
        return candidate

    def exists(self, public_path: Optional[str]) -> bool:
        path = self.path_for(public_path)
        return path is not None and path.is_file()

    def delete(self, public_path: Optional[str]) -> bool:
        path = self.path_for(public_path)
        if path is None or not path.is_file():
            return False
        path.unlink()
        logger.info("media.delete file=%s", path.name)
        return True

    def discard(self, uploads: Iterable[Optional[SavedUpload]]) -> None:
        """Delete files saved for a request that was rejected."""
        for upload in uploads:
            if upload is not None:
                self.delete(upload.public_path)


__all__ = [
    "ALLOWED_MIME_TYPES",
    "PUBLIC_PREFIX",
    "SavedUpload",
    "MediaStore",
    "normalize_public_path",
    "is_allowed_mime",
]
