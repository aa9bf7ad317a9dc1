"""Authentication helpers."""

# Standard library
import hashlib
import hmac
import logging
import warnings
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Iterator, Tuple

# Third-party
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

# Local
from galerie_core.config import Settings, load_env
from galerie_core.models import User


# Load env from backend file
load_env()
_settings = Settings()

logger = logging.getLogger(__name__)

_INSECURE_KEY = "dev-insecure-secret-key-change-me"
SECRET_KEY = _settings.secret_key or _INSECURE_KEY

if SECRET_KEY == _INSECURE_KEY:
    warnings.warn(
        "Using insecure default GALERIE_SECRET_KEY. Set a proper one in your environment!",
        RuntimeWarning,
    )
    logger.warning("auth: insecure default secret key in use; set GALERIE_SECRET_KEY in env")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = _settings.token_expire_hours

pwd_context = CryptContext(
    schemes=["bcrypt", "pbkdf2_sha256"],
    deprecated=["pbkdf2_sha256"],
    bcrypt__rounds=_settings.bcrypt_rounds,
)

# Hashes written by the first release of the site: scrypt$<hex salt>$<hex key>.
# The salt is used as text (not decoded), with N=16384, r=8, p=1, 64-byte key.
LEGACY_SCRYPT_PREFIX = "scrypt$"
_LEGACY_SCRYPT_KEY_LENGTH = 64


def _verify_legacy_scrypt(plain_password: str, stored_hash: str) -> bool:
    parts = stored_hash.split("$")
    if len(parts) != 3 or not parts[1] or not parts[2]:
        return False
    _, salt, derived = parts
    try:
        expected = bytes.fromhex(derived)
    except ValueError:
        return False
    if len(expected) != _LEGACY_SCRYPT_KEY_LENGTH:
        return False
    computed = hashlib.scrypt(
        plain_password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=16384,
        r=8,
        p=1,
        dklen=_LEGACY_SCRYPT_KEY_LENGTH,
    )
    return hmac.compare_digest(computed, expected)


def verify_and_upgrade(plain_password: str, hashed_password: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Verify ``plain_password``; also return a fresh hash when the stored one is outdated.

    The second element is ``None`` when the stored hash is current or the
    password is wrong.
    """
    if not hashed_password:
        return False, None
    if hashed_password.startswith(LEGACY_SCRYPT_PREFIX):
        if _verify_legacy_scrypt(plain_password, hashed_password):
            return True, hash_password(plain_password)
        return False, None
    try:
        return pwd_context.verify_and_update(plain_password, hashed_password)
    except ValueError:
        # Unrecognized hash format
        logger.warning("auth.hash unrecognized format")
        return False, None


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plaintext password against a hashed value."""
    ok, _ = verify_and_upgrade(plain_password, hashed_password)
    return ok


def hash_password(password: str) -> str:
    """Return a hashed representation of ``password``."""
    return pwd_context.hash(password)


def find_user(db: Session, username: str) -> Optional[User]:
    """Case and surrounding-whitespace insensitive username lookup."""
    key = (username or "").strip().lower()
    if not key:
        return None
    return db.query(User).filter(func.lower(func.trim(User.username)) == key).first()


def authenticate_user(username: str, password: str, db: Session) -> Optional[User]:
    """Authenticate a user by username and password.

    Returns the ``User`` when the credentials match. A password stored with a
    legacy algorithm is re-hashed with the current one on the way through.
    """
    user = find_user(db, username)
    if not user:
        return None
    ok, new_hash = verify_and_upgrade(password, user.password_hash)
    if not ok:
        return None
    if new_hash:
        user.password_hash = new_hash
        db.commit()
        logger.info("auth.hash upgraded user_id=%s", user.id)
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT access token containing ``data``.

    note: accepts a dict (e.g., {"sub": username}).
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token_raw(token: str) -> Dict:
    """Decode a JWT token without translating exceptions."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])


def decode_token(token: str) -> Dict:
    """Safe decode a JWT token with controlled exceptions."""
    try:
        return decode_token_raw(token)
    except ExpiredSignatureError as e:
        raise ExpiredSignatureError("Token expired") from e
    except JWTError as e:
        raise JWTError("Invalid token") from e


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/users/login")


def get_db(request: Request) -> Iterator[Session]:
    """Yield a session from the application's ``Database`` and close it after use."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Resolve the current user from a bearer token."""
    auth_log = logging.getLogger("galerie_api.auth")
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        auth_log.warning("auth.token expired")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="expired token")
    except JWTError:
        auth_log.warning("auth.token invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")

    username = payload.get("sub")
    if not username:
        auth_log.warning("auth.token missing_sub")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token: no subject")

    user = find_user(db, username)
    if not user:
        auth_log.warning("auth.user not_found sub=%s", username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token: user not found")
    return user


__all__ = [
    "verify_password",
    "verify_and_upgrade",
    "hash_password",
    "find_user",
    "authenticate_user",
    "create_access_token",
    "decode_token_raw",
    "decode_token",
    "oauth2_scheme",
    "get_db",
    "get_current_user",
    "ExpiredSignatureError",
    "JWTError",
]
