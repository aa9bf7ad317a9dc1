"""Versioned schema migrations.

Each migration is a forward-only step identified by an integer version. The
highest applied version is stored in ``schema_meta`` and only newer steps run
on boot. Steps are idempotent on their own (columns and indexes are only
added when missing) because SQLite may commit DDL before the step's
transaction ends; a boot interrupted mid-step simply re-runs it.

Databases created before ``schema_meta`` existed start at version 0, so every
step runs once against them and fills whatever they lack.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List

from sqlalchemy import func, inspect, select, text
from sqlalchemy.engine import Connection

from galerie_core.db import Base, Database
from galerie_core.defaults import (
    DEFAULT_CATEGORIES,
    DEFAULT_EXPERIENCES,
    DEFAULT_SETTINGS,
    DEFAULT_STUDIO_INSIGHTS,
)
from galerie_core.errors import SchemaMigrationError
from galerie_core.models import Category, Experience, SchemaMeta, SiteSettings, StudioInsight
from galerie_core.slugs import unique_slug

logger = logging.getLogger("galerie_core.migrations")

SCHEMA_VERSION_KEY = "schema_version"


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[Connection], None]


# ---- Helpers ----

def _columns(conn: Connection, table: str) -> set:
    return {col["name"] for col in inspect(conn).get_columns(table)}


def _add_missing_columns(conn: Connection, table: str, columns: Dict[str, str]) -> List[str]:
    present = _columns(conn, table)
    added = []
    for name, ddl in columns.items():
        if name in present:
            continue
        conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
        added.append(name)
    if added:
        logger.info("migration.columns table=%s added=%s", table, ",".join(added))
    return added


def _fill_created_at(conn: Connection, table: str) -> None:
    conn.exec_driver_sql(f"UPDATE {table} SET created_at = CURRENT_TIMESTAMP WHERE created_at IS NULL")


def _is_blank(value) -> bool:
    return value is None or not str(value).strip()


def get_schema_version(conn: Connection) -> int:
    SchemaMeta.__table__.create(conn, checkfirst=True)
    raw = conn.execute(
        select(SchemaMeta.value).where(SchemaMeta.key == SCHEMA_VERSION_KEY)
    ).scalar_one_or_none()
    try:
        return int(raw) if raw is not None else 0
    except ValueError:
        return 0


def _set_schema_version(conn: Connection, version: int) -> None:
    conn.execute(
        text("INSERT OR REPLACE INTO schema_meta(key, value) VALUES(:key, :value)"),
        {"key": SCHEMA_VERSION_KEY, "value": str(version)},
    )


# ---- Steps ----

def _create_base_tables(conn: Connection) -> None:
    # Only creates missing tables; older tables are widened by later steps.
    Base.metadata.create_all(bind=conn)


def _photo_columns(conn: Connection) -> None:
    _add_missing_columns(conn, "photos", {
        "palette": "TEXT DEFAULT 'vibrant'",
        "accent_color": "TEXT DEFAULT '#ff6f61'",
        "category_id": "INTEGER REFERENCES categories(id) ON DELETE SET NULL",
    })
    conn.exec_driver_sql("CREATE INDEX IF NOT EXISTS idx_photos_category ON photos (category_id)")


def _category_columns(conn: Connection) -> None:
    added = _add_missing_columns(conn, "categories", {
        "description": "TEXT",
        "hero_image_path": "TEXT",
        "position": "INTEGER NOT NULL DEFAULT 0",
        "slug": "TEXT",
        "created_at": "TEXT",
    })
    if "created_at" in added:
        _fill_created_at(conn, "categories")


def _settings_columns(conn: Connection) -> None:
    _add_missing_columns(conn, "settings", {
        "hero_intro_heading": "TEXT",
        "hero_intro_subheading": "TEXT",
        "hero_intro_body": "TEXT",
        "hero_intro_image_url": "TEXT",
    })


def _experience_columns(conn: Connection) -> None:
    added = _add_missing_columns(conn, "experiences", {
        "icon": "TEXT",
        "image_path": "TEXT",
        "position": "INTEGER NOT NULL DEFAULT 0",
        "created_at": "TEXT",
    })
    if "created_at" in added:
        _fill_created_at(conn, "experiences")


def _studio_insight_columns(conn: Connection) -> None:
    added = _add_missing_columns(conn, "studio_insights", {
        "data_count": "INTEGER NOT NULL DEFAULT 0",
        "position": "INTEGER NOT NULL DEFAULT 0",
        "created_at": "TEXT",
    })
    if "created_at" in added:
        _fill_created_at(conn, "studio_insights")


def _seed_default_categories(conn: Connection) -> None:
    table = Category.__table__
    existing = {
        (name or "").strip().casefold()
        for name in conn.execute(select(table.c.name)).scalars()
    }
    next_position = conn.execute(select(func.coalesce(func.max(table.c.position), 0))).scalar_one()
    for name in DEFAULT_CATEGORIES:
        if name.casefold() in existing:
            continue
        next_position += 1
        conn.execute(table.insert().values(name=name, position=next_position))
        existing.add(name.casefold())
        logger.info("migration.seed category name=%s", name)


def backfill_category_slugs(conn: Connection) -> int:
    """Give every category without a usable slug a unique one.

    Rows are visited by ``position, name`` so seeded categories get
    deterministic slugs. A slug already claimed by an earlier row counts as
    unusable, which heals duplicates left by builds that had no unique index.
    """
    table = Category.__table__
    rows = conn.execute(
        select(table.c.id, table.c.name, table.c.slug).order_by(
            table.c.position, table.c.name, table.c.id
        )
    ).all()
    taken = set()
    pending = []
    for row in rows:
        slug = (row.slug or "").strip()
        if slug and slug not in taken:
            taken.add(slug)
        else:
            pending.append(row)
    for row in pending:
        slug = unique_slug(row.name, taken)
        taken.add(slug)
        conn.execute(table.update().where(table.c.id == row.id).values(slug=slug))
        logger.info("migration.slug id=%s slug=%s", row.id, slug)
    return len(pending)


def _category_slugs(conn: Connection) -> None:
    backfill_category_slugs(conn)
    # Created only once every row holds a unique slug.
    conn.exec_driver_sql(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_categories_slug ON categories (slug)"
    )


def _seed_default_content(conn: Connection) -> None:
    experiences = Experience.__table__
    if conn.execute(select(func.count()).select_from(experiences)).scalar_one() == 0:
        for position, item in enumerate(DEFAULT_EXPERIENCES):
            conn.execute(experiences.insert().values(position=position, **item))
        logger.info("migration.seed experiences count=%d", len(DEFAULT_EXPERIENCES))
    insights = StudioInsight.__table__
    if conn.execute(select(func.count()).select_from(insights)).scalar_one() == 0:
        for position, item in enumerate(DEFAULT_STUDIO_INSIGHTS):
            conn.execute(insights.insert().values(position=position, **item))
        logger.info("migration.seed studio_insights count=%d", len(DEFAULT_STUDIO_INSIGHTS))


MIGRATIONS: List[Migration] = [
    Migration(1, "base_tables", _create_base_tables),
    Migration(2, "photo_columns", _photo_columns),
    Migration(3, "category_columns", _category_columns),
    Migration(4, "settings_hero_intro", _settings_columns),
    Migration(5, "experience_columns", _experience_columns),
    Migration(6, "studio_insight_columns", _studio_insight_columns),
    Migration(7, "seed_default_categories", _seed_default_categories),
    Migration(8, "category_slugs", _category_slugs),
    Migration(9, "seed_default_content", _seed_default_content),
]

LATEST_VERSION = MIGRATIONS[-1].version


# ---- Every-boot healing ----

def heal_settings(conn: Connection) -> None:
    """Ensure the settings singleton exists and no field is blank."""
    table = SiteSettings.__table__
    row = conn.execute(select(table).where(table.c.id == 1)).mappings().first()
    if row is None:
        conn.execute(table.insert().values(id=1, **DEFAULT_SETTINGS))
        logger.info("settings.seed defaults")
        return
    repairs = {key: default for key, default in DEFAULT_SETTINGS.items() if _is_blank(row.get(key))}
    if repairs:
        conn.execute(table.update().where(table.c.id == 1).values(**repairs))
        logger.info("settings.heal fields=%s", ",".join(sorted(repairs)))


def _heal(conn: Connection) -> None:
    heal_settings(conn)
    backfill_category_slugs(conn)


def migrate(conn_factory, target: int = LATEST_VERSION) -> int:
    """Apply pending migrations up to *target*, one transaction per step."""
    with conn_factory() as conn:
        version = get_schema_version(conn)
    for migration in MIGRATIONS:
        if migration.version <= version or migration.version > target:
            continue
        logger.info("migration.apply version=%d name=%s", migration.version, migration.name)
        try:
            with conn_factory() as conn:
                migration.apply(conn)
                _set_schema_version(conn, migration.version)
        except Exception as exc:
            logger.error("migration.fail version=%d name=%s", migration.version, migration.name, exc_info=True)
            raise SchemaMigrationError(
                f"migration {migration.version} ({migration.name}) failed: {exc}"
            ) from exc
        version = migration.version
    return version


def prepare_database(database: Database) -> int:
    """Bring *database* to the latest schema and heal the settings row.

    Raises :class:`SchemaMigrationError` on any failure; callers treat that as
    fatal.
    """
    engine = database.engine
    version = migrate(engine.begin)
    try:
        with engine.begin() as conn:
            _heal(conn)
    except Exception as exc:
        logger.error("migration.heal failed", exc_info=True)
        raise SchemaMigrationError(f"post-migration healing failed: {exc}") from exc
    logger.info("db.ready schema_version=%d", version)
    return version


__all__ = [
    "Migration",
    "MIGRATIONS",
    "LATEST_VERSION",
    "get_schema_version",
    "backfill_category_slugs",
    "heal_settings",
    "migrate",
    "prepare_database",
]
