from fastapi import APIRouter, Depends, File, Form, UploadFile
import logging
from typing import Optional
from galerie_core.auth import get_current_user
from galerie_core.media import MediaStore
from galerie_core.repository import ContentRepository
from ..deps import actor, get_media, get_repository, save_upload

router = APIRouter(prefix="/experiences", tags=["experiences"])
log = logging.getLogger("galerie_api")


@router.get("/")
def list_experiences(user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    return [e.to_dict() for e in repo.list_experiences()]


@router.post("/", status_code=201)
def create_experience(
    title: str = Form(""),
    description: str = Form(""),
    icon: str = Form(""),
    position: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_upload(media, image)
    experience = repo.create_experience(title, description, icon=icon, position=position, image=saved)
    log.info("experiences.create ok id=%s actor=%s", experience.id, actor(user))
    return experience.to_dict()


@router.put("/{experience_id}")
def update_experience(
    experience_id: int,
    title: str = Form(""),
    description: str = Form(""),
    icon: str = Form(""),
    position: str = Form(""),
    remove_image: bool = Form(False),
    image: Optional[UploadFile] = File(None),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
    media: MediaStore = Depends(get_media),
):
    saved = save_upload(media, image)
    experience = repo.update_experience(
        experience_id, title, description, icon=icon, position=position, image=saved, remove_image=remove_image
    )
    log.info("experiences.update ok id=%s actor=%s", experience.id, actor(user))
    return experience.to_dict()


@router.delete("/{experience_id}")
def delete_experience(experience_id: int, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    repo.delete_experience(experience_id)
    log.info("experiences.delete ok id=%s actor=%s", experience_id, actor(user))
    return {"status": "deleted"}
