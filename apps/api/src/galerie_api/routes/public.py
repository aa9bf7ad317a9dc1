"""Public (unauthenticated) pages: home, gallery and contact form."""
from fastapi import APIRouter, Depends
import logging
from pydantic import BaseModel
from galerie_core.contact import submit_contact_message
from galerie_core.defaults import DEFAULT_MESSAGE_SUBJECT
from galerie_core.mailer import Mailer
from galerie_core.repository import ContentRepository
from ..deps import get_mailer, get_repository

router = APIRouter(tags=["public"])
log = logging.getLogger("galerie_api")

HERO_INTRO_FIELDS = ("hero_intro_heading", "hero_intro_subheading", "hero_intro_body", "hero_intro_image_url")


class ContactRequest(BaseModel):
    name: str = ""
    email: str = ""
    subject: str = DEFAULT_MESSAGE_SUBJECT
    message: str = ""


def _gallery_categories(repo: ContentRepository):
    counts = repo.category_photo_counts()
    items = []
    for category in repo.list_categories():
        item = category.to_dict()
        item["photo_count"] = counts.get(category.id, 0)
        items.append(item)
    return items


@router.get("/home")
def home(repo: ContentRepository = Depends(get_repository)):
    settings = repo.get_settings()
    return {
        "photos": [p.to_dict() for p in repo.list_photos()],
        "categories": _gallery_categories(repo),
        "experiences": [e.to_dict() for e in repo.list_experiences()],
        "studio_insights": [i.to_dict() for i in repo.list_insights()],
        "hero_intro": {key: settings[key] for key in HERO_INTRO_FIELDS},
    }


@router.get("/gallery")
def gallery(repo: ContentRepository = Depends(get_repository)):
    return {"categories": _gallery_categories(repo)}


@router.get("/gallery/{slug}")
def gallery_category(slug: str, repo: ContentRepository = Depends(get_repository)):
    category = repo.get_category_by_slug(slug)
    photos = repo.list_photos(category_id=category.id)
    log.info("gallery.view slug=%s photos=%d", category.slug, len(photos))
    return {"category": category.to_dict(), "photos": [p.to_dict() for p in photos]}


@router.get("/contact")
def contact_info(repo: ContentRepository = Depends(get_repository)):
    return {"contact_email": repo.get_settings()["contact_email"]}


@router.post("/contact")
async def contact_submit(
    data: ContactRequest,
    repo: ContentRepository = Depends(get_repository),
    mailer: Mailer = Depends(get_mailer),
):
    result = await submit_contact_message(
        repo, mailer, name=data.name, email=data.email, message=data.message, subject=data.subject
    )
    return {"id": result.message.id, "outcome": result.outcome, "message": result.confirmation}
