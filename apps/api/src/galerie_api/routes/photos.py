from fastapi import APIRouter, Depends, File, Form, UploadFile
import logging
from typing import List, Optional
from galerie_core.auth import get_current_user
from galerie_core.media import MediaStore
from galerie_core.repository import ContentRepository
from ..deps import actor, get_media, get_repository, save_upload, save_uploads

router = APIRouter(prefix="/photos", tags=["photos"])
log = logging.getLogger("galerie_api")


@router.get("/")
def list_photos(
    category_id: Optional[int] = None,
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
):
    items = repo.list_photos(category_id=category_id)
    log.info("photos.list count=%d actor=%s", len(items), actor(user))
    return [p.to_dict() for p in items]


@router.get("/{photo_id}")
def get_photo(photo_id: int, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    return repo.get_photo(photo_id).to_dict()


@router.post("/", status_code=201)
def create_photos(
    photos: List[UploadFile] = File(default=[]),
    description: str = Form(""),
    accent_color: str = Form(""),
    category_id: str = Form(""),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_uploads(media, photos)
    created = repo.create_photos(saved, description=description, accent_color=accent_color, category_id=category_id)
    log.info("photos.create count=%d actor=%s", len(created), actor(user))
    message = (
        f"{len(created)} photos ont été ajoutées avec succès."
        if len(created) > 1
        else "La photo a été ajoutée avec succès."
    )
    return {"message": message, "photos": [p.to_dict() for p in created]}


@router.put("/{photo_id}")
def update_photo(
    photo_id: int,
    description: str = Form(""),
    accent_color: str = Form(""),
    category_id: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_upload(media, photo)
    updated = repo.update_photo(
        photo_id, description=description, accent_color=accent_color, category_id=category_id, image=saved
    )
    log.info("photos.update ok id=%s actor=%s", photo_id, actor(user))
    return updated.to_dict()


@router.delete("/{photo_id}")
def delete_photo(photo_id: int, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    repo.delete_photo(photo_id)
    log.info("photos.delete ok id=%s actor=%s", photo_id, actor(user))
    return {"status": "deleted"}
