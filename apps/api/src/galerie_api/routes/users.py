from fastapi import APIRouter, Depends, HTTPException
import logging
from pydantic import BaseModel
from sqlalchemy.orm import Session
from galerie_core.auth import (
    authenticate_user,
    create_access_token,
    decode_token,
    ExpiredSignatureError,
    JWTError,
    get_db,
    oauth2_scheme,
)

router = APIRouter(prefix="/users", tags=["users"])
auth_log = logging.getLogger("galerie_api.auth")


class UserLoginRequest(BaseModel):
    username: str
    password: str


@router.post("/login")
@router.post("/login/", include_in_schema=False)
def login(request: UserLoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(request.username, request.password, db)
    if not user:
        auth_log.warning("user.login fail: username=%s", request.username.strip())
        raise HTTPException(status_code=401, detail="Identifiants invalides. Merci de réessayer.")
    token = create_access_token({"sub": user.username})
    auth_log.info("user.login ok: id=%s username=%s", user.id, user.username)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/validate")
@router.post("/validate/", include_in_schema=False)
def validate_token(token: str = Depends(oauth2_scheme)):
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        auth_log.warning("user.validate expired")
        raise HTTPException(status_code=401, detail="La session a expiré. Merci de vous reconnecter.")
    except JWTError:
        auth_log.warning("user.validate invalid")
        raise HTTPException(status_code=401, detail="Jeton invalide.")
    auth_log.info("user.validate ok: sub=%s", payload.get("sub"))
    return {"valid": True, "payload": payload}
