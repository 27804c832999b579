import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt  # PyJWT
from fastapi import Header, Request
from passlib.context import CryptContext
from pydantic import BaseModel

from config import Settings
from errors import AuthError, Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class CurrentUser(BaseModel):
    id: str
    username: str


def verify_password(plain_password, hashed_password):
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        return False


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    issued = datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"iat": issued, "exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Settings) -> CurrentUser:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.PyJWTError as e:
        logger.debug("Rejected token: %s", e)
        raise AuthError("Invalid token")
    user_id = payload.get("id")
    username = payload.get("username")
    if not user_id or not username:
        raise AuthError("Invalid token")
    return CurrentUser(id=user_id, username=username)


def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> CurrentUser:
    # raw token in the header; a "Bearer " prefix is tolerated
    if not authorization or not authorization.strip():
        raise Unauthorized("No token provided")
    token = authorization.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return decode_access_token(token, request.app.state.settings)
