from fastapi import APIRouter, Depends
import logging
from pydantic import BaseModel
from galerie_core.auth import get_current_user
from galerie_core.repository import ContentRepository
from ..deps import actor, get_repository

router = APIRouter(prefix="/settings", tags=["settings"])
log = logging.getLogger("galerie_api")


class HeroIntroRequest(BaseModel):
    hero_intro_heading: str = ""
    hero_intro_subheading: str = ""
    hero_intro_body: str = ""
    hero_intro_image_url: str = ""


class ContactEmailRequest(BaseModel):
    contact_email: str = ""


@router.get("/")
def get_settings(user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    return repo.get_settings()


@router.put("/hero-intro")
def update_hero_intro(data: HeroIntroRequest, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    result = repo.update_hero_intro(
        data.hero_intro_heading, data.hero_intro_subheading, data.hero_intro_body, data.hero_intro_image_url
    )
    log.info("settings.hero_intro ok actor=%s", actor(user))
    return result


@router.put("/contact-email")
def update_contact_email(data: ContactEmailRequest, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    email = repo.update_contact_email(data.contact_email)
    log.info("settings.contact_email ok actor=%s", actor(user))
    return {"contact_email": email}
