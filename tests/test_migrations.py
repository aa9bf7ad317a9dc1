import pytest
from sqlalchemy import inspect, select, text

from galerie_core import migrations
from galerie_core.db import Database
from galerie_core.defaults import DEFAULT_CATEGORIES, DEFAULT_SETTINGS
from galerie_core.errors import SchemaMigrationError
from galerie_core.migrations import LATEST_VERSION, get_schema_version, migrate, prepare_database
from galerie_core.models import Category, Experience, SiteSettings, StudioInsight

TABLES = ("users", "photos", "categories", "experiences", "studio_insights", "settings", "contact_messages")


def _snapshot(database):
    with database.engine.connect() as conn:
        schema = conn.execute(
            text("SELECT type, name, tbl_name, sql FROM sqlite_master WHERE name NOT LIKE 'sqlite_%' ORDER BY name")
        ).all()
        counts = {t: conn.execute(text(f"SELECT COUNT(*) FROM {t}")).scalar_one() for t in TABLES}
    return schema, counts


@pytest.fixture
def blank_db(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'blank.sqlite'}")
    db.open()
    yield db
    db.close()


def test_fresh_database_reaches_latest_version(blank_db):
    assert prepare_database(blank_db) == LATEST_VERSION
    with blank_db.engine.connect() as conn:
        assert get_schema_version(conn) == LATEST_VERSION
    with blank_db.session() as session:
        names = [c.name for c in session.query(Category).order_by(Category.position)]
        assert names == DEFAULT_CATEGORIES
        assert session.query(Experience).count() == 3
        assert session.query(StudioInsight).count() == 3
        settings = session.get(SiteSettings, 1)
        assert settings.contact_email == DEFAULT_SETTINGS["contact_email"]


def test_prepare_twice_is_identical(blank_db):
    prepare_database(blank_db)
    first = _snapshot(blank_db)
    prepare_database(blank_db)
    assert _snapshot(blank_db) == first


def test_deleted_default_content_is_not_reseeded(database, repo):
    for experience in repo.list_experiences():
        repo.delete_experience(experience.id)
    for insight in repo.list_insights():
        repo.delete_insight(insight.id)
    prepare_database(database)
    assert repo.list_experiences() == []
    assert repo.list_insights() == []


def test_deleted_default_category_is_not_reseeded(database, repo):
    portrait = repo.get_category_by_slug("portrait")
    repo.delete_category(portrait.id)
    prepare_database(database)
    assert "Portrait" not in [c.name for c in repo.list_categories()]


LEGACY_SCHEMA = [
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE photos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        image_path TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE settings (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        contact_email TEXT NOT NULL
    )""",
    """CREATE TABLE contact_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        subject TEXT NOT NULL,
        message TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL
    )""",
]


def _legacy_db(blank_db):
    with blank_db.engine.begin() as conn:
        for ddl in LEGACY_SCHEMA:
            conn.exec_driver_sql(ddl)
        conn.exec_driver_sql(
            "INSERT INTO photos (title, image_path) VALUES ('Ancienne', '/public/uploads/old.jpg')"
        )
        conn.exec_driver_sql("INSERT INTO settings (id, contact_email) VALUES (1, '   ')")
        conn.exec_driver_sql("INSERT INTO categories (name) VALUES ('mariage'), ('Été 2024'), ('ete 2024')")
    return blank_db


def test_legacy_database_is_upgraded_in_place(blank_db):
    db = _legacy_db(blank_db)
    assert prepare_database(db) == LATEST_VERSION

    insp = inspect(db.engine)
    photo_cols = {c["name"] for c in insp.get_columns("photos")}
    assert {"category_id", "accent_color", "palette"} <= photo_cols
    category_cols = {c["name"] for c in insp.get_columns("categories")}
    assert {"slug", "position", "hero_image_path", "description", "created_at"} <= category_cols
    assert "idx_categories_slug" in {i["name"] for i in insp.get_indexes("categories")}

    with db.session() as session:
        photo_row = session.execute(text("SELECT title, accent_color, category_id FROM photos")).one()
        assert photo_row.title == "Ancienne"
        assert photo_row.accent_color == "#ff6f61"
        assert photo_row.category_id is None

        settings = session.get(SiteSettings, 1)
        assert settings.contact_email == DEFAULT_SETTINGS["contact_email"]
        assert settings.hero_intro_heading == DEFAULT_SETTINGS["hero_intro_heading"]

        rows = session.execute(select(Category.name, Category.slug)).all()
        slugs = {name: slug for name, slug in rows}
        # existing "mariage" is kept, not duplicated by the seed
        assert [name.casefold() for name, _ in rows].count("mariage") == 1
        assert slugs["mariage"] == "mariage"
        # same position: rows are visited by name, "ete" sorts before "Été"
        assert slugs["ete 2024"] == "ete-2024"
        assert slugs["Été 2024"] == "ete-2024-2"
        assert all(slugs.values())


def test_legacy_upgrade_is_idempotent(blank_db):
    db = _legacy_db(blank_db)
    prepare_database(db)
    first = _snapshot(db)
    prepare_database(db)
    assert _snapshot(db) == first


def test_blank_settings_fields_are_healed_without_touching_others(database, repo):
    repo.update_contact_email("studio@example.com")
    with database.engine.begin() as conn:
        conn.exec_driver_sql("UPDATE settings SET hero_intro_heading = '  ', hero_intro_body = NULL")
    prepare_database(database)
    with database.session() as session:
        settings = session.get(SiteSettings, 1)
        assert settings.contact_email == "studio@example.com"
        assert settings.hero_intro_heading == DEFAULT_SETTINGS["hero_intro_heading"]
        assert settings.hero_intro_body == DEFAULT_SETTINGS["hero_intro_body"]


def test_blank_slug_written_after_upgrade_is_backfilled(database, repo):
    category = repo.create_category("Voyages")
    with database.engine.begin() as conn:
        conn.exec_driver_sql(f"UPDATE categories SET slug = NULL WHERE id = {category.id}")
    prepare_database(database)
    assert repo.get_category(category.id).slug == "voyages"


def test_failing_step_raises_and_keeps_version(database, monkeypatch):
    def boom(conn):
        raise RuntimeError("disk full")

    failing = migrations.Migration(LATEST_VERSION + 1, "broken", boom)
    monkeypatch.setattr(migrations, "MIGRATIONS", migrations.MIGRATIONS + [failing])
    with pytest.raises(SchemaMigrationError):
        migrate(database.engine.begin, target=LATEST_VERSION + 1)
    with database.engine.connect() as conn:
        assert get_schema_version(conn) == LATEST_VERSION
