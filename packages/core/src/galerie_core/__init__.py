"""Core domain & services for Galerie.

Contains persistence models, schema migrations, the content repository,
the backup codec, mail notifications and configuration.
"""

from .config import Settings  # noqa: F401
