"""Request dependencies shared by the routers."""
from typing import Iterable, List, Optional

from fastapi import Request, UploadFile

from galerie_core.backup import BackupCodec
from galerie_core.mailer import Mailer
from galerie_core.media import MediaStore, SavedUpload
from galerie_core.repository import ContentRepository


def get_repository(request: Request) -> ContentRepository:
    return request.app.state.repository


def get_media(request: Request) -> MediaStore:
    return request.app.state.media


def get_codec(request: Request) -> BackupCodec:
    return request.app.state.codec


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def actor(user) -> str:
    return getattr(user, "username", "?")


def _has_file(upload: Optional[UploadFile]) -> bool:
    # Browsers send an empty part when no file was picked
    return upload is not None and bool(upload.filename)


def save_upload(media: MediaStore, upload: Optional[UploadFile]) -> Optional[SavedUpload]:
    if not _has_file(upload):
        return None
    try:
        return media.save(upload.file, upload.content_type, upload.filename)
    finally:
        upload.file.close()


def save_uploads(media: MediaStore, uploads: Iterable[Optional[UploadFile]]) -> List[SavedUpload]:
    """Save every upload; if one is rejected, remove the ones already written."""
    saved: List[SavedUpload] = []
    try:
        for upload in uploads:
            item = save_upload(media, upload)
            if item is not None:
                saved.append(item)
    except Exception:
        media.discard(saved)
        raise
    return saved
