from fastapi import APIRouter, Depends, File, Form, UploadFile
import logging
from typing import Optional
from galerie_core.auth import get_current_user
from galerie_core.media import MediaStore
from galerie_core.repository import ContentRepository
from ..deps import actor, get_media, get_repository, save_upload

router = APIRouter(prefix="/categories", tags=["categories"])
log = logging.getLogger("galerie_api")


@router.get("/")
def list_categories(user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    counts = repo.category_photo_counts()
    items = []
    for category in repo.list_categories():
        item = category.to_dict()
        item["photo_count"] = counts.get(category.id, 0)
        items.append(item)
    log.info("categories.list count=%d actor=%s", len(items), actor(user))
    return items


@router.post("/", status_code=201)
def create_category(
    name: str = Form(""),
    description: str = Form(""),
    position: str = Form(""),
    hero_image: Optional[UploadFile] = File(None),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_upload(media, hero_image)
    category = repo.create_category(name, description=description, position=position, hero_image=saved)
    log.info("categories.create ok id=%s slug=%s actor=%s", category.id, category.slug, actor(user))
    return category.to_dict()


@router.put("/{category_id}")
def update_category(
    category_id: int,
    name: str = Form(""),
    description: Optional[str] = Form(None),
    position: str = Form(""),
    hero_image: Optional[UploadFile] = File(None),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_upload(media, hero_image)
    category = repo.update_category(category_id, name, description=description, position=position, hero_image=saved)
    log.info("categories.update ok id=%s slug=%s actor=%s", category.id, category.slug, actor(user))
    return category.to_dict()


@router.delete("/{category_id}")
def delete_category(category_id: int, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    repo.delete_category(category_id)
    log.info("categories.delete ok id=%s actor=%s", category_id, actor(user))
    return {"status": "deleted"}
