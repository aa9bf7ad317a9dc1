"""Configuration utilities.

Values come from the process environment (optionally primed from
``config/env/.env.backend``) and are exposed through the ``Settings``
dataclass. Relative paths are resolved against the repository root.
"""
from dataclasses import dataclass, field
from typing import Optional, List
import os, sys
from pathlib import Path
from dotenv import load_dotenv  # type: ignore

# ---- Helpers ----

def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    return val if val not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> List[str]:
    raw = _env(name, default) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_env() -> None:
    """Load the canonical backend env file if present (idempotent).

    Real environment variables always win over the file.
    """
    env_file = Path(_repo_root()) / "config" / "env" / ".env.backend"
    if env_file.exists():
        load_dotenv(env_file, override=False)


def _repo_root() -> str:
    base = getattr(sys, "_MEIPASS", None)
    if base and os.path.isdir(base):  # Frozen bundle base (PyInstaller, etc.)
        return base
    # Start from this file directory and walk upward looking for project markers
    cur = os.path.abspath(os.path.dirname(__file__))
    markers = ("pyproject.toml", ".git")
    for _ in range(8):  # safety limit to avoid infinite loop
        if any(os.path.exists(os.path.join(cur, m)) for m in markers):
            return cur
        parent = os.path.dirname(cur)
        if parent == cur:
            break
        cur = parent
    # Fallback: 4 levels up from packages/core/src/galerie_core
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../../"))


@dataclass
class Settings:
    # Storage
    db_url: Optional[str] = field(default_factory=lambda: _env("GALERIE_DB_URL") or _env("GALERIE_DATABASE_URL"))
    data_dir: str = field(default_factory=lambda: _env("GALERIE_DATA_DIR", "data"))
    uploads_dir: Optional[str] = field(default_factory=lambda: _env("GALERIE_UPLOADS_DIR"))
    max_backup_bytes: int = field(default_factory=lambda: _env_int("GALERIE_MAX_BACKUP_BYTES", 200 * 1024 * 1024))
    # Total size of the extracted archive members
    max_backup_extracted_bytes: int = field(
        default_factory=lambda: _env_int("GALERIE_MAX_BACKUP_EXTRACTED_BYTES", 1024 * 1024 * 1024)
    )

    # Auth
    secret_key: Optional[str] = field(default_factory=lambda: _env("GALERIE_SECRET_KEY") or _env("SECRET_KEY"))
    admin_user: str = field(default_factory=lambda: _env("GALERIE_ADMIN_USER", "admin"))
    admin_pass: str = field(default_factory=lambda: _env("GALERIE_ADMIN_PASS", "admin"))
    bcrypt_rounds: int = field(default_factory=lambda: _env_int("GALERIE_BCRYPT_ROUNDS", 12))
    token_expire_hours: int = field(default_factory=lambda: _env_int("GALERIE_TOKEN_EXPIRE_HOURS", 12))

    # Mail
    mail_provider: Optional[str] = field(default_factory=lambda: _env("MAIL_PROVIDER"))
    smtp_host: Optional[str] = field(default_factory=lambda: _env("SMTP_HOST"))
    smtp_port: int = field(default_factory=lambda: _env_int("SMTP_PORT", 587))
    smtp_user: Optional[str] = field(default_factory=lambda: _env("SMTP_USER"))
    smtp_pass: Optional[str] = field(default_factory=lambda: _env("SMTP_PASS"))
    # None means "derive from the port" (465 -> implicit TLS)
    smtp_secure: Optional[bool] = field(
        default_factory=lambda: None if _env("SMTP_SECURE") is None else _env_bool("SMTP_SECURE")
    )
    smtp_starttls: bool = field(default_factory=lambda: _env_bool("SMTP_STARTTLS", True))
    mail_from: Optional[str] = field(default_factory=lambda: _env("MAIL_FROM") or _env("SMTP_FROM") or _env("SMTP_USER"))
    resend_api_key: Optional[str] = field(default_factory=lambda: _env("RESEND_API_KEY"))
    mail_brand_name: str = field(default_factory=lambda: _env("MAIL_BRAND_NAME", "Cécil'Artiste"))
    mail_brand_url: str = field(default_factory=lambda: _env("MAIL_BRAND_URL", "https://cecilartiste.com"))
    mail_brand_color: str = field(default_factory=lambda: _env("MAIL_BRAND_COLOR", "#d16ba5"))

    # Web
    cors_origins: List[str] = field(default_factory=lambda: _env_list("GALERIE_CORS_ORIGINS", "*"))

    def repo_root(self) -> str:
        return _repo_root()

    def debug_print(self) -> None:  # lightweight runtime trace
        if _env("GALERIE_DEBUG_CONFIG", "0") in ("1", "true", "yes"):  # opt-in
            print(f"[config] repo_root={self.repo_root()}")
            print(f"[config] database_url={self.effective_database_url()}")
            print(f"[config] uploads_dir={self.effective_uploads_dir()}")

    def resolve_path(self, p: Optional[str]) -> Optional[str]:
        if not p:
            return None
        if os.path.isabs(p):
            return p
        return os.path.abspath(os.path.join(self.repo_root(), p))

    def effective_data_dir(self) -> str:
        return self.resolve_path(self.data_dir) or os.path.join(self.repo_root(), "data")

    def effective_database_url(self) -> str:
        if self.db_url:
            return self.db_url
        return f"sqlite:///{os.path.join(self.effective_data_dir(), 'galerie.sqlite')}"

    def effective_uploads_dir(self) -> str:
        if self.uploads_dir:
            return self.resolve_path(self.uploads_dir)  # type: ignore[return-value]
        return os.path.join(self.effective_data_dir(), "uploads")


__all__ = ["Settings", "load_env"]
