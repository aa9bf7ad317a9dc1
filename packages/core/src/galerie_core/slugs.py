"""URL slugs for categories.

``slugify`` and ``unique_slug`` are pure; ``generate_unique_slug`` and
``resolve_category_slug`` probe the live ``categories.slug`` namespace.
"""
from __future__ import annotations

import itertools
import re
import unicodedata
from typing import Container, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from galerie_core.defaults import FALLBACK_SLUG
from galerie_core.models import Category

_non_alnum_re = re.compile(r"[^a-z0-9]+")


def slugify(value) -> str:
    """Lowercase ASCII form of *value* with hyphens between words.

    >>> slugify("Été 2024!!")
    'ete-2024'
    >>> slugify("???")
    ''
    """
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(value))
    ascii_only = decomposed.encode("ascii", "ignore").decode("ascii").lower()
    return _non_alnum_re.sub("-", ascii_only).strip("-")


def slug_base(name) -> str:
    return slugify(name) or FALLBACK_SLUG


def unique_slug(name, taken: Container[str]) -> str:
    """First of ``base``, ``base-2``, ``base-3``... that is not in *taken*."""
    base = slug_base(name)
    if base not in taken:
        return base
    for suffix in itertools.count(2):
        candidate = f"{base}-{suffix}"
        if candidate not in taken:
            return candidate
    raise AssertionError("unreachable")  # pragma: no cover


def _taken_slugs(session: Session, base: str, exclude_id: Optional[int]) -> set:
    stmt = select(Category.slug).where(
        (Category.slug == base) | Category.slug.like(f"{base}-%")
    )
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return {row for row in session.scalars(stmt) if row}


def generate_unique_slug(session: Session, name, exclude_id: Optional[int] = None) -> str:
    """Unique slug for *name* among stored categories, ignoring row *exclude_id*."""
    return unique_slug(name, _taken_slugs(session, slug_base(name), exclude_id))


def resolve_category_slug(session: Session, category: Category, new_name: str) -> str:
    """Slug to store when *category* is saved under *new_name*.

    An existing slug survives as long as the name is unchanged so published
    gallery links keep working.
    """
    current = (category.slug or "").strip()
    if current and new_name == category.name:
        return current
    return generate_unique_slug(session, new_name, exclude_id=category.id)


__all__ = [
    "slugify",
    "slug_base",
    "unique_slug",
    "generate_unique_slug",
    "resolve_category_slug",
]
