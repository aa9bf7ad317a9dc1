"""ORM models.

Column defaults mirror what the migrations add to older databases so a
fresh schema and an upgraded one accept the same rows.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, CheckConstraint, text

from galerie_core.db import Base
from galerie_core.media import normalize_public_path

_NOW = text("CURRENT_TIMESTAMP")


def utc_timestamp() -> str:
    """Current UTC time in the same format as SQLite's CURRENT_TIMESTAMP."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class User(Base):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        Index("idx_categories_slug", "slug", unique=True),
        {"sqlite_autoincrement": True},
    )
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    hero_image_path = Column(String)
    position = Column(Integer, nullable=False, server_default=text("0"))
    slug = Column(String)
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "hero_image_path": normalize_public_path(self.hero_image_path),
            "position": self.position,
            "slug": self.slug,
            "created_at": self.created_at,
        }


class Photo(Base):
    __tablename__ = "photos"
    __table_args__ = (
        Index("idx_photos_category", "category_id"),
        {"sqlite_autoincrement": True},
    )
    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    image_path = Column(String, nullable=False)
    palette = Column(String, server_default="vibrant", default="vibrant")
    accent_color = Column(String, server_default="#ff6f61", default="#ff6f61")
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image_path": normalize_public_path(self.image_path),
            "palette": self.palette,
            "accent_color": self.accent_color,
            "category_id": self.category_id,
            "created_at": self.created_at,
        }


class Experience(Base):
    __tablename__ = "experiences"
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String)
    image_path = Column(String)
    position = Column(Integer, nullable=False, server_default=text("0"))
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "image_path": normalize_public_path(self.image_path),
            "position": self.position,
            "created_at": self.created_at,
        }


class StudioInsight(Base):
    __tablename__ = "studio_insights"
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True)
    stat_value = Column(String, nullable=False)
    stat_caption = Column(String, nullable=False)
    data_count = Column(Integer, nullable=False, server_default=text("0"))
    position = Column(Integer, nullable=False, server_default=text("0"))
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "stat_value": self.stat_value,
            "stat_caption": self.stat_caption,
            "data_count": self.data_count,
            "position": self.position,
            "created_at": self.created_at,
        }


class SiteSettings(Base):
    __tablename__ = "settings"
    __table_args__ = (CheckConstraint("id = 1", name="settings_singleton"),)
    id = Column(Integer, primary_key=True)
    contact_email = Column(String, nullable=False)
    hero_intro_heading = Column(String)
    hero_intro_subheading = Column(String)
    hero_intro_body = Column(Text)
    hero_intro_image_url = Column(String)


class ContactMessage(Base):
    __tablename__ = "contact_messages"
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(String, nullable=False, server_default=_NOW, default=utc_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "created_at": self.created_at,
        }


class SchemaMeta(Base):
    __tablename__ = "schema_meta"
    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


__all__ = [
    "User",
    "Category",
    "Photo",
    "Experience",
    "StudioInsight",
    "SiteSettings",
    "ContactMessage",
    "SchemaMeta",
]
