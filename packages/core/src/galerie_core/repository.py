"""Content repository.

Every admin mutation goes through :class:`ContentRepository`. Uploads are
saved by the caller through :class:`~galerie_core.media.MediaStore` and
handed in as :class:`~galerie_core.media.SavedUpload`; if the mutation is
rejected those files are deleted again. Files replaced or orphaned by a
mutation are deleted only after its transaction commits.
"""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from sqlalchemy import func
from sqlalchemy.orm import Session

from galerie_core.db import Database
from galerie_core.defaults import (
    DEFAULT_ACCENT_COLOR,
    DEFAULT_HERO_IMAGE_URL,
    DEFAULT_MESSAGE_SUBJECT,
    DEFAULT_PHOTO_TITLE,
    DEFAULT_SETTINGS,
)
from galerie_core.errors import ConflictError, NotFoundError, ValidationError
from galerie_core.media import MediaStore, SavedUpload, normalize_public_path
from galerie_core.models import (
    Category,
    ContactMessage,
    Experience,
    Photo,
    SiteSettings,
    StudioInsight,
)
from galerie_core.slugs import generate_unique_slug, resolve_category_slug

logger = logging.getLogger("galerie_core.repository")

EMAIL_RE = re.compile(r".+@.+\..+")
_leading_int_re = re.compile(r"^\s*([+-]?\d+)")
_title_separators_re = re.compile(r"[_\s-]+")
_non_digit_re = re.compile(r"[^0-9]")


def parse_int(value) -> Optional[int]:
    """Leading integer of *value*, or ``None`` (``"12px"`` -> 12, ``""`` -> None)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _leading_int_re.match(str(value))
    return int(match.group(1)) if match else None


def _clean(value) -> str:
    return "" if value is None else str(value).strip()


def is_valid_email(value) -> bool:
    return bool(EMAIL_RE.search(_clean(value)))


def is_http_url(value) -> bool:
    try:
        parts = urlsplit(_clean(value))
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def title_from_filename(original_name: Optional[str], fallback: str = DEFAULT_PHOTO_TITLE) -> str:
    """Photo title derived from an uploaded file's name.

    >>> title_from_filename("mariage_eglise-2024.jpg")
    'mariage eglise 2024'
    """
    stem = PurePath(original_name or "").stem
    return _title_separators_re.sub(" ", stem).strip() or fallback


def resolve_data_count(raw, stat_value) -> int:
    """Explicit count (never negative), else the digits of *stat_value*, else 0."""
    parsed = parse_int(raw)
    if parsed is not None:
        return max(parsed, 0)
    digits = _non_digit_re.sub("", _clean(stat_value))
    return int(digits) if digits else 0


def resolve_hero_image_url(value) -> str:
    return _clean(value) if is_http_url(value) else DEFAULT_HERO_IMAGE_URL


class ContentRepository:
    def __init__(self, database: Database, media: MediaStore):
        self.database = database
        self.media = media

    @contextmanager
    def _rejecting(self, uploads: Iterable[Optional[SavedUpload]]):
        """Delete *uploads* if the enclosed mutation raises."""
        uploads = [u for u in uploads if u is not None]
        try:
            yield
        except Exception:
            if uploads:
                self.media.discard(uploads)
                logger.info("repository.discard uploads=%d", len(uploads))
            raise

    def _delete_files(self, paths: Iterable[Optional[str]]) -> None:
        for path in paths:
            if not path:
                continue
            try:
                self.media.delete(path)
            except OSError:
                # Row changes are committed; a stale file is only wasted space.
                logger.warning("media.delete failed path=%s", path, exc_info=True)

    # ---- Categories ----

    def list_categories(self) -> List[Category]:
        with self.database.session() as session:
            return (
                session.query(Category)
                .order_by(Category.position.asc(), Category.name.asc(), Category.id.asc())
                .all()
            )

    def get_category(self, category_id: int) -> Category:
        with self.database.session() as session:
            category = session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Catégorie introuvable.")
        return category

    def get_category_by_slug(self, slug: str) -> Category:
        key = _clean(slug).lower()
        with self.database.session() as session:
            category = session.query(Category).filter(Category.slug == key).first() if key else None
        if category is None:
            raise NotFoundError("Catégorie introuvable.")
        return category

    def category_photo_counts(self) -> Dict[int, int]:
        with self.database.session() as session:
            rows = (
                session.query(Photo.category_id, func.count(Photo.id))
                .filter(Photo.category_id.isnot(None))
                .group_by(Photo.category_id)
                .all()
            )
        return {category_id: count for category_id, count in rows}

    @staticmethod
    def _category_name_taken(session: Session, name: str, exclude_id: Optional[int] = None) -> bool:
        key = name.strip().casefold()
        for category_id, existing in session.query(Category.id, Category.name):
            if category_id != exclude_id and _clean(existing).casefold() == key:
                return True
        return False

    def create_category(
        self,
        name,
        description=None,
        position=None,
        hero_image: Optional[SavedUpload] = None,
    ) -> Category:
        with self._rejecting([hero_image]), self.database.transaction() as session:
            trimmed = _clean(name)
            if not trimmed:
                raise ValidationError("Merci d'indiquer un nom pour la catégorie.")
            if self._category_name_taken(session, trimmed):
                raise ConflictError("Une catégorie avec ce nom existe déjà.")
            final_position = parse_int(position)
            if final_position is None:
                final_position = session.query(func.coalesce(func.max(Category.position), 0)).scalar() + 1
            category = Category(
                name=trimmed,
                description=_clean(description) or None,
                hero_image_path=hero_image.public_path if hero_image else None,
                position=final_position,
                slug=generate_unique_slug(session, trimmed),
            )
            session.add(category)
            session.flush()
        logger.info("category.create ok id=%s slug=%s", category.id, category.slug)
        return category

    def update_category(
        self,
        category_id: int,
        name,
        description=None,
        position=None,
        hero_image: Optional[SavedUpload] = None,
    ) -> Category:
        with self._rejecting([hero_image]), self.database.transaction() as session:
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError("Catégorie introuvable.")
            trimmed = _clean(name)
            if not trimmed:
                raise ValidationError("Merci d'indiquer un nom pour la catégorie.")
            if self._category_name_taken(session, trimmed, exclude_id=category.id):
                raise ConflictError("Une autre catégorie porte déjà ce nom.")
            category.slug = resolve_category_slug(session, category, trimmed)
            category.name = trimmed
            if description is not None:
                category.description = _clean(description) or None
            new_position = parse_int(position)
            if new_position is not None:
                category.position = new_position
            replaced = None
            if hero_image is not None:
                replaced = category.hero_image_path
                category.hero_image_path = hero_image.public_path
        if replaced and normalize_public_path(replaced) != hero_image.public_path:
            self._delete_files([replaced])
        logger.info("category.update ok id=%s slug=%s", category.id, category.slug)
        return category

    def delete_category(self, category_id: int) -> Category:
        with self.database.transaction() as session:
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError("Catégorie introuvable.")
            detached = (
                session.query(Photo)
                .filter(Photo.category_id == category.id)
                .update({Photo.category_id: None}, synchronize_session=False)
            )
            session.delete(category)
        self._delete_files([category.hero_image_path])
        logger.info("category.delete ok id=%s photos_detached=%d", category_id, detached)
        return category

    # ---- Photos ----

    def list_photos(self, category_id: Optional[int] = None) -> List[Photo]:
        with self.database.session() as session:
            query = session.query(Photo)
            if category_id is not None:
                query = query.filter(Photo.category_id == category_id)
            return query.order_by(Photo.created_at.desc(), Photo.id.desc()).all()

    def get_photo(self, photo_id: int) -> Photo:
        with self.database.session() as session:
            photo = session.get(Photo, photo_id)
        if photo is None:
            raise NotFoundError("Photo introuvable.")
        return photo

    @staticmethod
    def _category_ref(session: Session, raw, errors: List[str]) -> Optional[int]:
        if raw is None or _clean(raw) == "":
            return None
        category_id = parse_int(raw)
        if category_id is None or category_id <= 0:
            errors.append("La catégorie sélectionnée est invalide.")
            return None
        if session.get(Category, category_id) is None:
            errors.append("La catégorie sélectionnée est introuvable.")
            return None
        return category_id

    def create_photos(
        self,
        uploads: Sequence[SavedUpload],
        description=None,
        accent_color=None,
        category_id=None,
    ) -> List[Photo]:
        uploads = list(uploads or [])
        with self._rejecting(uploads), self.database.transaction() as session:
            errors: List[str] = []
            category_value = self._category_ref(session, category_id, errors)
            if not uploads:
                errors.append("Merci de sélectionner une image à téléverser.")
            if errors:
                raise ValidationError(errors)
            photos = []
            for index, upload in enumerate(uploads):
                title = title_from_filename(upload.original_name)
                if index > 0:
                    title = f"{title} ({index + 1})"
                photos.append(Photo(
                    title=title,
                    description=_clean(description) or None,
                    image_path=upload.public_path,
                    accent_color=_clean(accent_color) or DEFAULT_ACCENT_COLOR,
                    category_id=category_value,
                ))
            session.add_all(photos)
            session.flush()
        logger.info("photo.create ok count=%d category_id=%s", len(photos), category_value)
        return photos

    def update_photo(
        self,
        photo_id: int,
        description=None,
        accent_color=None,
        category_id=None,
        image: Optional[SavedUpload] = None,
    ) -> Photo:
        with self._rejecting([image]), self.database.transaction() as session:
            photo = session.get(Photo, photo_id)
            if photo is None:
                raise NotFoundError("Photo introuvable.")
            errors: List[str] = []
            category_value = self._category_ref(session, category_id, errors)
            if errors:
                raise ValidationError(errors)
            fallback_title = _clean(photo.title) or DEFAULT_PHOTO_TITLE
            replaced = None
            if image is not None:
                replaced = photo.image_path
                photo.image_path = image.public_path
                photo.title = title_from_filename(image.original_name, fallback=fallback_title)
            else:
                photo.title = fallback_title
            photo.description = _clean(description) or None
            photo.accent_color = _clean(accent_color) or DEFAULT_ACCENT_COLOR
            photo.category_id = category_value
        if replaced and normalize_public_path(replaced) != image.public_path:
            self._delete_files([replaced])
        logger.info("photo.update ok id=%s replaced_image=%s", photo.id, image is not None)
        return photo

    def delete_photo(self, photo_id: int) -> Photo:
        with self.database.transaction() as session:
            photo = session.get(Photo, photo_id)
            if photo is None:
                raise NotFoundError("Photo introuvable.")
            session.delete(photo)
        self._delete_files([photo.image_path])
        logger.info("photo.delete ok id=%s", photo_id)
        return photo

    # ---- Experiences ----

    def list_experiences(self) -> List[Experience]:
        with self.database.session() as session:
            return session.query(Experience).order_by(Experience.position.asc(), Experience.id.asc()).all()

    @staticmethod
    def _experience_errors(title: str, description: str, icon: str, image_path: Optional[str]) -> List[str]:
        errors = []
        if not title:
            errors.append("Le titre de l'expérience est requis.")
        if not description:
            errors.append("La description de l'expérience est requise.")
        if not icon and not image_path:
            errors.append("Ajoutez une icône ou une image pour l'expérience.")
        return errors

    def create_experience(
        self,
        title,
        description,
        icon=None,
        position=None,
        image: Optional[SavedUpload] = None,
    ) -> Experience:
        with self._rejecting([image]), self.database.transaction() as session:
            title, description, icon = _clean(title), _clean(description), _clean(icon)
            image_path = image.public_path if image else None
            errors = self._experience_errors(title, description, icon, image_path)
            if errors:
                raise ValidationError(errors)
            final_position = parse_int(position)
            if final_position is None:
                final_position = session.query(func.coalesce(func.max(Experience.position), -1)).scalar() + 1
            experience = Experience(
                title=title,
                description=description,
                icon=icon or None,
                image_path=image_path,
                position=final_position,
            )
            session.add(experience)
            session.flush()
        logger.info("experience.create ok id=%s", experience.id)
        return experience

    def update_experience(
        self,
        experience_id: int,
        title,
        description,
        icon=None,
        position=None,
        image: Optional[SavedUpload] = None,
        remove_image: bool = False,
    ) -> Experience:
        with self._rejecting([image]), self.database.transaction() as session:
            experience = session.get(Experience, experience_id)
            if experience is None:
                raise NotFoundError("L'expérience demandée est introuvable.")
            title, description, icon = _clean(title), _clean(description), _clean(icon)
            previous_image = experience.image_path
            if image is not None:
                final_image = image.public_path
            elif remove_image:
                final_image = None
            else:
                final_image = previous_image
            errors = self._experience_errors(title, description, icon, final_image)
            if errors:
                raise ValidationError(errors)
            experience.title = title
            experience.description = description
            experience.icon = icon or None
            experience.image_path = final_image
            new_position = parse_int(position)
            if new_position is not None:
                experience.position = new_position
        if previous_image and previous_image != final_image:
            self._delete_files([previous_image])
        logger.info("experience.update ok id=%s", experience.id)
        return experience

    def delete_experience(self, experience_id: int) -> Experience:
        with self.database.transaction() as session:
            experience = session.get(Experience, experience_id)
            if experience is None:
                raise NotFoundError("L'expérience demandée est introuvable.")
            session.delete(experience)
        self._delete_files([experience.image_path])
        logger.info("experience.delete ok id=%s", experience_id)
        return experience

    # ---- Studio insights ----

    def list_insights(self) -> List[StudioInsight]:
        with self.database.session() as session:
            return session.query(StudioInsight).order_by(StudioInsight.position.asc(), StudioInsight.id.asc()).all()

    @staticmethod
    def _insight_fields(stat_value, stat_caption, data_count, position) -> dict:
        value, caption = _clean(stat_value), _clean(stat_caption)
        errors = []
        if not value:
            errors.append("Merci de renseigner la valeur à afficher.")
        if not caption:
            errors.append("Merci de renseigner la description de votre statistique.")
        if errors:
            raise ValidationError(errors)
        return {
            "stat_value": value,
            "stat_caption": caption,
            "data_count": resolve_data_count(data_count, value),
            "position": parse_int(position) or 0,
        }

    def create_insight(self, stat_value, stat_caption, data_count=None, position=None) -> StudioInsight:
        fields = self._insight_fields(stat_value, stat_caption, data_count, position)
        with self.database.transaction() as session:
            insight = StudioInsight(**fields)
            session.add(insight)
            session.flush()
        logger.info("insight.create ok id=%s data_count=%s", insight.id, insight.data_count)
        return insight

    def update_insight(self, insight_id: int, stat_value, stat_caption, data_count=None, position=None) -> StudioInsight:
        with self.database.transaction() as session:
            insight = session.get(StudioInsight, insight_id)
            if insight is None:
                raise NotFoundError("Cette statistique est introuvable.")
            for key, value in self._insight_fields(stat_value, stat_caption, data_count, position).items():
                setattr(insight, key, value)
        logger.info("insight.update ok id=%s", insight.id)
        return insight

    def delete_insight(self, insight_id: int) -> StudioInsight:
        with self.database.transaction() as session:
            insight = session.get(StudioInsight, insight_id)
            if insight is None:
                raise NotFoundError("Cette statistique est introuvable.")
            session.delete(insight)
        logger.info("insight.delete ok id=%s", insight_id)
        return insight

    # ---- Settings ----

    @staticmethod
    def _settings_row(session: Session) -> SiteSettings:
        row = session.get(SiteSettings, 1)
        if row is None:
            row = SiteSettings(id=1, **DEFAULT_SETTINGS)
            session.add(row)
        return row

    def get_settings(self) -> Dict[str, str]:
        """Current settings with defaults in place of blank fields."""
        with self.database.session() as session:
            row = session.get(SiteSettings, 1)
        result = {}
        for key, default in DEFAULT_SETTINGS.items():
            value = _clean(getattr(row, key, None)) if row is not None else ""
            result[key] = value or default
        result["hero_intro_image_url"] = resolve_hero_image_url(result["hero_intro_image_url"])
        return result

    def update_hero_intro(self, heading, subheading, body, image_url=None) -> Dict[str, str]:
        heading, subheading, body, proposed = _clean(heading), _clean(subheading), _clean(body), _clean(image_url)
        errors = []
        if not heading:
            errors.append("Merci d'indiquer un titre pour la présentation.")
        if not subheading:
            errors.append("Merci d'indiquer un sous-titre pour la présentation.")
        if not body:
            errors.append("Merci de rédiger un texte de présentation.")
        if proposed and not is_http_url(proposed):
            errors.append("Merci de fournir une URL d'image valide (http ou https).")
        if errors:
            raise ValidationError(errors)
        with self.database.transaction() as session:
            row = self._settings_row(session)
            row.hero_intro_heading = heading
            row.hero_intro_subheading = subheading
            row.hero_intro_body = body
            row.hero_intro_image_url = proposed or resolve_hero_image_url(row.hero_intro_image_url)
        logger.info("settings.hero_intro ok image_changed=%s", bool(proposed))
        return self.get_settings()

    def update_contact_email(self, email) -> str:
        trimmed = _clean(email)
        if not is_valid_email(trimmed):
            raise ValidationError("Veuillez indiquer une adresse email valide.")
        with self.database.transaction() as session:
            self._settings_row(session).contact_email = trimmed
        logger.info("settings.contact_email ok")
        return trimmed

    # ---- Contact messages ----

    def record_message(self, name, email, message, subject=None) -> ContactMessage:
        name, email, message = _clean(name), _clean(email), _clean(message)
        if not name or not email or not message:
            raise ValidationError("Merci de renseigner votre nom, email et message.")
        if not is_valid_email(email):
            raise ValidationError("L'adresse email fournie n'est pas valide.")
        with self.database.transaction() as session:
            record = ContactMessage(
                name=name,
                email=email,
                subject=_clean(subject) or DEFAULT_MESSAGE_SUBJECT,
                message=message,
            )
            session.add(record)
            session.flush()
        logger.info("message.record ok id=%s", record.id)
        return record

    def list_messages(self, limit: int = 20) -> List[ContactMessage]:
        with self.database.session() as session:
            return (
                session.query(ContactMessage)
                .order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
                .limit(limit)
                .all()
            )


__all__ = [
    "ContentRepository",
    "parse_int",
    "is_valid_email",
    "is_http_url",
    "title_from_filename",
    "resolve_data_count",
    "resolve_hero_image_url",
]
