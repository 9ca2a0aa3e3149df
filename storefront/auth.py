import logging
import time

import bcrypt
from fastapi import Cookie, Depends, HTTPException
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from storefront import config
from storefront.database import get_db
from storefront.models import Admin

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in the row
        return False


def create_session_token(admin: Admin) -> str:
    payload = {
        "sub": str(admin.id),
        "email": admin.email,
        "exp": int(time.time()) + config.SESSION_MAX_AGE,
    }
    return jwt.encode(payload, config.SESSION_SECRET, algorithm=ALGORITHM)


def decode_session_token(token: str):
    """Return the token claims, or None when the token is invalid or expired."""
    try:
        return jwt.decode(token, config.SESSION_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        return None


def set_session_cookie(response, admin: Admin):
    response.set_cookie(
        key=config.SESSION_COOKIE,
        value=create_session_token(admin),
        max_age=config.SESSION_MAX_AGE,
        httponly=True,
        secure=config.SESSION_COOKIE_SECURE,
        samesite="none" if config.SESSION_COOKIE_SECURE else "lax",
    )


def clear_session_cookie(response):
    response.delete_cookie(
        key=config.SESSION_COOKIE,
        httponly=True,
        secure=config.SESSION_COOKIE_SECURE,
        samesite="none" if config.SESSION_COOKIE_SECURE else "lax",
    )


def require_admin(
    session_token: str = Cookie(None, alias=config.SESSION_COOKIE),
    db: Session = Depends(get_db),
) -> Admin:
    if not session_token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    claims = decode_session_token(session_token)
    if not claims:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        admin = db.get(Admin, int(claims["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Unauthorized")

    if admin is None or admin.email != claims.get("email"):
        logger.warning("Session for unknown admin %s rejected", claims.get("sub"))
        raise HTTPException(status_code=401, detail="Unauthorized")
    return admin
