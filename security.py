import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import errors
from config import Settings
from database import to_object_id

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise errors.Internal("Database not configured")
    return db


def verify_password(plain_password, hashed_password):
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def _encode(user_id: str, secret: str, algorithm: str, expires_delta: timedelta, token_type: str) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": user_id, "type": token_type, "exp": expire}
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def create_access_token(user_id: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(user_id, settings.jwt_secret, settings.jwt_algorithm, expires_delta, "access")


def create_refresh_token(user_id: str, settings: Settings) -> str:
    expires_delta = timedelta(days=settings.refresh_token_expire_days)
    return _encode(user_id, settings.jwt_refresh_secret, settings.jwt_algorithm, expires_delta, "refresh")


def generate_tokens(user_id: str, settings: Settings) -> Dict[str, str]:
    return {
        "token": create_access_token(user_id, settings),
        "refresh_token": create_refresh_token(user_id, settings),
    }


def decode_token(token: str, secret: str, algorithm: str, token_type: str = "access") -> Dict[str, Any]:
    """Verify a token and return its payload.

    Raises Unauthorized with TOKEN_EXPIRED or INVALID_TOKEN.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        raise errors.Unauthorized(code="TOKEN_EXPIRED")
    except JWTError:
        raise errors.Unauthorized(code="INVALID_TOKEN")
    if payload.get("type", "access") != token_type or not payload.get("sub"):
        raise errors.Unauthorized(code="INVALID_TOKEN")
    return payload


def load_active_user(db: Database, user_id: str) -> Dict[str, Any]:
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise errors.Unauthorized(code="USER_NOT_FOUND")
    if user.get("status") != "active":
        raise errors.Forbidden(code="USER_SUSPENDED")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if credentials is None:
        raise errors.Unauthorized()
    try:
        payload = decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)
    except errors.Unauthorized as exc:
        logger.warning("Rejected access token: %s", exc.code)
        raise
    return load_active_user(db, payload["sub"])
