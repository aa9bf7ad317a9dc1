import os

from galerie_core.config import Settings


def test_settings_repo_root_is_directory():
    s = Settings()
    root = s.repo_root()
    assert os.path.isdir(root)


def test_default_database_lives_in_data_dir(tmp_path):
    s = Settings(db_url=None, data_dir=str(tmp_path / "data"), uploads_dir=None)
    assert s.effective_database_url() == f"sqlite:///{tmp_path / 'data' / 'galerie.sqlite'}"
    assert s.effective_uploads_dir() == str(tmp_path / "data" / "uploads")


def test_relative_paths_resolve_against_repo_root(tmp_path, monkeypatch):
    s = Settings(db_url=None, data_dir="var", uploads_dir="media/uploads")
    monkeypatch.setattr(s, "repo_root", lambda: str(tmp_path))
    assert s.effective_uploads_dir() == str(tmp_path / "media" / "uploads")
    assert s.effective_database_url().endswith(os.path.join("var", "galerie.sqlite"))


def test_explicit_database_url_wins(tmp_path):
    s = Settings(db_url="sqlite:////srv/galerie.db", data_dir=str(tmp_path))
    assert s.effective_database_url() == "sqlite:////srv/galerie.db"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GALERIE_MAX_BACKUP_BYTES", "1024")
    monkeypatch.setenv("GALERIE_CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("SMTP_SECURE", "yes")
    s = Settings()
    assert s.max_backup_bytes == 1024
    assert s.cors_origins == ["https://a.example", "https://b.example"]
    assert s.smtp_secure is True


def test_bad_integer_env_falls_back(monkeypatch):
    monkeypatch.setenv("SMTP_PORT", "not-a-port")
    monkeypatch.delenv("SMTP_SECURE", raising=False)
    s = Settings()
    assert s.smtp_port == 587
    assert s.smtp_secure is None
