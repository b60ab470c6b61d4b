# backend/mentorlink/auth.py
"""
Bearer-token authentication for HTTP routes and the realtime socket.

Tokens are HS256 JWTs whose ``sub`` claim carries the user id. Issuing
tokens for end users belongs to the account service; ``create_access_token``
exists for service-to-service use and tests.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt import PyJWTError
from sqlalchemy.orm import Session

from .core.config import settings
from .core.exceptions import RepositoryException
from .database import SessionLocal, get_db
from .models.user import User
from .repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: The claims to encode; ``sub`` must be the user id
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )
    to_encode.update({"exp": expire})

    encoded_jwt = cast(
        str,
        jwt.encode(
            to_encode,
            _secret_value(settings.secret_key),
            algorithm=settings.algorithm,
        ),
    )
    logger.debug(f"Created access token for user: {data.get('sub')}")
    return encoded_jwt


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token. Raises PyJWTError on failure."""
    payload_raw = jwt.decode(
        token,
        _secret_value(settings.secret_key),
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def _subject_from_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except PyJWTError as e:
        logger.info(f"[AUTH] Rejected access token: {type(e).__name__}")
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    return subject


def _load_active_user(db: Session, user_id: str) -> Optional[User]:
    try:
        return RepositoryFactory.create_user_repository(db).get_active(user_id)
    except RepositoryException as e:
        logger.error(f"[AUTH] User lookup failed for {user_id}: {str(e)}")
        return None


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme_optional),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency resolving the bearer token to an active user.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired, or
            names a user that does not exist or is inactive
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = _subject_from_token(token)
    user = _load_active_user(db, user_id) if user_id else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def authenticate_websocket_token(token: Optional[str]) -> Optional[User]:
    """
    Resolve a socket token (query parameter) to an active user.

    Runs outside the request dependency graph, so it opens a short-lived
    session of its own. Returns None when the token is not acceptable.
    """
    user_id = _subject_from_token(token)
    if not user_id:
        return None
    db = SessionLocal()
    try:
        return _load_active_user(db, user_id)
    finally:
        db.close()
