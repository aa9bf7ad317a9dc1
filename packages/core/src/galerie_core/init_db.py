"""Database initialization helper.

Migrates the schema to the latest version, heals the settings row and
optionally seeds the admin account.
"""
from __future__ import annotations
import logging
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from .config import Settings, load_env
from .db import Database
from .migrations import prepare_database
from .models import User
from .auth import hash_password

logger = logging.getLogger("galerie_core.init_db")


def init_db(database: Database, create_admin: bool = True, settings: Optional[Settings] = None) -> int:
    """Prepare the schema and optional seed records.

    Parameters
    ----------
    database: Database
        An open database.
    create_admin: bool
        If True and no users exist, create an initial admin user with
        environment-provided credentials (GALERIE_ADMIN_USER/GALERIE_ADMIN_PASS).

    Returns the schema version reached.
    """
    settings = settings or Settings()
    version = prepare_database(database)
    if not create_admin:
        return version
    with Session(database.engine) as session:
        user_count = session.query(func.count(User.id)).scalar()
        if user_count == 0:
            admin = User(username=settings.admin_user.strip(), password_hash=hash_password(settings.admin_pass))
            session.add(admin)
            session.commit()
            logger.info("init_db.admin created username=%s", admin.username)
            if settings.admin_pass == "admin":
                logger.warning("init_db.admin default password in use; set GALERIE_ADMIN_PASS")
    return version


def main() -> None:  # pragma: no cover
    from .logging_config import configure_logging

    load_env()
    configure_logging()
    settings = Settings()
    with Database(settings.effective_database_url()) as database:
        version = init_db(database, settings=settings)
    print(f"Base de données prête (schema v{version}).")


if __name__ == "__main__":  # pragma: no cover
    main()
