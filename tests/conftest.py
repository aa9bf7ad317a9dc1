import io, sys, pytest, os, tempfile

# Always force tests to use an isolated SQLite database and uploads dir under a temp dir.
# Do this before importing any galerie_core modules (auth reads its settings at import).
if "GALERIE_DB_URL" not in os.environ and "GALERIE_DATABASE_URL" not in os.environ:
    _test_dir = tempfile.mkdtemp(prefix="galerie_test_")
    os.environ["GALERIE_DB_URL"] = f"sqlite:///{os.path.join(_test_dir, 'test_galerie.sqlite')}"
    os.environ["GALERIE_UPLOADS_DIR"] = os.path.join(_test_dir, "uploads")
os.environ.setdefault("GALERIE_SECRET_KEY", "test-secret-key")
os.environ["GALERIE_BCRYPT_ROUNDS"] = "4"
for _name in ("MAIL_PROVIDER", "SMTP_HOST", "RESEND_API_KEY"):
    os.environ.pop(_name, None)

# Ensure repository root and src dirs are on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
for _src in (os.path.join(ROOT, 'packages', 'core', 'src'), os.path.join(ROOT, 'apps', 'api', 'src')):
    if _src not in sys.path:
        sys.path.insert(0, _src)

from galerie_core.backup import BackupCodec  # noqa: E402
from galerie_core.config import Settings  # noqa: E402
from galerie_core.db import Database  # noqa: E402
from galerie_core.media import MediaStore  # noqa: E402
from galerie_core.migrations import prepare_database  # noqa: E402
from galerie_core.repository import ContentRepository  # noqa: E402

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload"


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'galerie.sqlite'}")
    db.open()
    prepare_database(db)
    yield db
    db.close()


@pytest.fixture
def media(tmp_path):
    store = MediaStore(tmp_path / "uploads")
    store.ensure_dir()
    return store


@pytest.fixture
def repo(database, media):
    return ContentRepository(database, media)


@pytest.fixture
def codec(database, media):
    return BackupCodec(database, media, Settings())


@pytest.fixture
def upload(media):
    """Save a fake image the way a request handler would and return the SavedUpload."""
    def _save(name="photo.jpg", content=JPEG_BYTES, content_type="image/jpeg"):
        return media.save(io.BytesIO(content), content_type, name)
    return _save
