import pytest
from fastapi.testclient import TestClient

from galerie_api.main import create_app
from galerie_core.config import Settings
from galerie_core.mailer import Mailer

JPEG = b"\xff\xd8\xff\xe0fake-jpeg-payload"


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        db_url=f"sqlite:///{tmp_path / 'api.sqlite'}",
        uploads_dir=str(tmp_path / "uploads"),
        admin_user="Admin",
        admin_pass="motdepasse",
        mail_provider=None,
        smtp_host=None,
        resend_api_key=None,
    )
    app = create_app(settings=settings, mailer=Mailer(settings))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(client):
    r = client.post("/api/users/login", json={"username": " admin ", "password": "motdepasse"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    body = client.get("/api/health").json()
    assert body["database"] == "open"
    assert body["schema_version"] >= 1
    assert body["mail"] == "disabled"


def test_login_rejects_bad_password(client):
    r = client.post("/api/users/login", json={"username": "admin", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Identifiants invalides. Merci de réessayer."


def test_admin_routes_require_token(client):
    assert client.get("/api/categories/").status_code == 401
    assert client.get("/api/backup/export").status_code == 401


def test_validate_token(client, auth):
    r = client.post("/api/users/validate", headers=auth)
    assert r.status_code == 200
    assert r.json()["payload"]["sub"] == "Admin"


def test_home_returns_seeded_content(client):
    body = client.get("/api/home").json()
    assert len(body["categories"]) == 5
    assert all(c["photo_count"] == 0 for c in body["categories"])
    assert len(body["experiences"]) == 3
    assert body["hero_intro"]["hero_intro_heading"] == "Qui suis-je ?"


def test_category_lifecycle_and_gallery(client, auth):
    r = client.post(
        "/api/categories/",
        data={"name": "Été 2024", "description": "Plages"},
        files={"hero_image": ("hero.jpg", JPEG, "image/jpeg")},
        headers=auth,
    )
    assert r.status_code == 201
    category = r.json()
    assert category["slug"] == "ete-2024"
    assert category["hero_image_path"].startswith("/uploads/photo_")
    assert client.get(category["hero_image_path"]).content == JPEG

    r = client.post(
        "/api/photos/",
        data={"category_id": str(category["id"])},
        files=[("photos", ("a.jpg", JPEG, "image/jpeg")), ("photos", ("b.png", JPEG, "image/png"))],
        headers=auth,
    )
    assert r.status_code == 201
    assert r.json()["message"] == "2 photos ont été ajoutées avec succès."

    gallery = client.get("/api/gallery/ete-2024").json()
    assert gallery["category"]["id"] == category["id"]
    assert len(gallery["photos"]) == 2

    duplicate = client.post("/api/categories/", data={"name": " été 2024"}, headers=auth)
    assert duplicate.status_code == 409

    assert client.delete(f"/api/categories/{category['id']}", headers=auth).json() == {"status": "deleted"}
    assert all(p["category_id"] is None for p in client.get("/api/photos/", headers=auth).json())


def test_unknown_gallery_slug_is_404(client):
    r = client.get("/api/gallery/inconnue")
    assert r.status_code == 404
    assert r.json()["detail"] == "Catégorie introuvable."


def test_validation_errors_share_one_shape(client, auth):
    r = client.post("/api/studio-insights/", json={"stat_value": "", "stat_caption": ""}, headers=auth)
    assert r.status_code == 400
    body = r.json()
    assert len(body["errors"]) == 2
    assert body["detail"] == " ".join(body["errors"])


def test_unsupported_upload_is_rejected(client, auth, tmp_path):
    r = client.post(
        "/api/photos/",
        files={"photos": ("notes.txt", b"hello", "text/plain")},
        headers=auth,
    )
    assert r.status_code == 400
    assert list((tmp_path / "uploads").iterdir()) == []


def test_contact_without_mail_transport(client, auth):
    r = client.post(
        "/api/contact",
        json={"name": "Alice", "email": "alice@example.com", "message": "Bonjour", "subject": "Mariage"},
    )
    assert r.status_code == 200
    assert r.json()["outcome"] == "stored"
    messages = client.get("/api/messages/?limit=5", headers=auth).json()
    assert messages[0]["email"] == "alice@example.com"

    invalid = client.post("/api/contact", json={"name": "", "email": "x", "message": ""})
    assert invalid.status_code == 400


def test_settings_endpoints(client, auth):
    r = client.put("/api/settings/contact-email", json={"contact_email": " studio@example.com "}, headers=auth)
    assert r.json() == {"contact_email": "studio@example.com"}
    assert client.get("/api/contact").json() == {"contact_email": "studio@example.com"}
    r = client.put(
        "/api/settings/hero-intro",
        json={"hero_intro_heading": "Bonjour", "hero_intro_subheading": "Studio", "hero_intro_body": "Texte"},
        headers=auth,
    )
    assert r.status_code == 200
    assert r.json()["hero_intro_heading"] == "Bonjour"


def test_backup_export_then_import(client, auth):
    client.post("/api/categories/", data={"name": "Voyages"}, headers=auth)
    exported = client.get("/api/backup/export", headers=auth)
    assert exported.status_code == 200
    assert exported.headers["content-type"] == "application/gzip"
    assert 'filename="galerie-backup-' in exported.headers["content-disposition"]

    client.post("/api/categories/", data={"name": "Mode"}, headers=auth)
    r = client.post(
        "/api/backup/import",
        files={"backup": ("sauvegarde.tar.gz", exported.content, "application/gzip")},
        headers=auth,
    )
    assert r.status_code == 200
    assert r.json()["summary"]["categories"] == 6
    names = [c["name"] for c in client.get("/api/categories/", headers=auth).json()]
    assert "Voyages" in names and "Mode" not in names

    bad = client.post(
        "/api/backup/import",
        files={"backup": ("x.tar.gz", b"garbage", "application/gzip")},
        headers=auth,
    )
    assert bad.status_code == 400
