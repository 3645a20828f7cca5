"""
Scrapbook Backend — Session Tokens and Principal Dependencies
==============================================================

What:  Issues and verifies bearer tokens, and turns them into an explicit
       `Principal` for each request.
How:   HS256 JWTs (python-jose). A member token carries
       {"kind": "user", "sub": "<user id>"}; the administrator token carries
       {"kind": "admin", "sub": "admin"}.
Who:   Route handlers depend on `require_user`, `require_admin` or
       `require_member` instead of reading ambient session state.

A member token whose user has since been deleted is treated as no token at
all, so a removed account is signed out on its next request.
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.config import settings
from scrapbook.database import get_db_session
from scrapbook.exceptions import AuthenticationError, PermissionDeniedError
from scrapbook.models import User
from scrapbook.services.identity_service import identity_service

logger = logging.getLogger(__name__)

KIND_USER = "user"
KIND_ADMIN = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


# ── Tokens ────────────────────────────────────────────────────────────────

def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign `data` with an `exp` claim; the lifetime defaults to settings."""
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": datetime.now(timezone.utc) + lifetime})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def user_token(user: User) -> str:
    return create_access_token({"kind": KIND_USER, "sub": str(user.id)})


def admin_token() -> str:
    return create_access_token({"kind": KIND_ADMIN, "sub": KIND_ADMIN})


def token_lifetime_seconds() -> int:
    return settings.access_token_expire_minutes * 60


def decode_token(token: str) -> Dict[str, Any]:
    """
    Raises:
        AuthenticationError: bad signature, expired, or malformed claims.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError(message="Invalid or expired session token")
    if payload.get("kind") not in (KIND_USER, KIND_ADMIN) or not payload.get("sub"):
        raise AuthenticationError(message="Invalid or expired session token")
    return payload


# ── Credentials ───────────────────────────────────────────────────────────

def verify_admin_credentials(login_id: str, login_pass: str) -> bool:
    id_ok = hmac.compare_digest(login_id.encode(), settings.admin_login_id.encode())
    pass_ok = hmac.compare_digest(login_pass.encode(), settings.admin_login_pass.encode())
    return id_ok and pass_ok


def verify_gateway_key(
    x_identity_gateway_key: Optional[str] = Header(default=None),
) -> None:
    """Only the configured identity gateway may post verified assertions."""
    expected = settings.identity_gateway_key
    if not expected:
        raise PermissionDeniedError(message="Identity gateway sign-in is not configured")
    supplied = (x_identity_gateway_key or "").encode()
    if not hmac.compare_digest(supplied, expected.encode()):
        logger.warning("Rejected identity assertion with a bad gateway key")
        raise AuthenticationError(message="Invalid identity gateway key")


def require_dev_login() -> None:
    if not settings.allow_dev_login:
        raise PermissionDeniedError(message="Dev login is disabled")


# ── Principal ─────────────────────────────────────────────────────────────

@dataclass
class Principal:
    """Who is making this request: a member, the administrator, or nobody."""
    user: Optional[User] = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.is_admin or self.user is not None


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Principal:
    if credentials is None:
        return Principal()

    payload = decode_token(credentials.credentials)
    if payload["kind"] == KIND_ADMIN:
        return Principal(is_admin=True)

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError(message="Invalid or expired session token")
    user = await identity_service.get_user(db, user_id)
    if user is None:
        logger.info("Session token for deleted user %s ignored", user_id)
        return Principal()
    return Principal(user=user)


async def require_user(principal: Principal = Depends(get_principal)) -> User:
    if principal.user is None:
        if principal.is_admin:
            raise PermissionDeniedError(message="This action needs a member session")
        raise AuthenticationError()
    return principal.user


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        if principal.user is not None:
            raise PermissionDeniedError(message="Administrator access required")
        raise AuthenticationError()
    return principal


async def require_member(principal: Principal = Depends(get_principal)) -> Principal:
    """A member or the administrator."""
    if not principal.is_authenticated:
        raise AuthenticationError()
    return principal
