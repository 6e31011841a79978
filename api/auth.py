"""
Identity tokens for accounts and guests.
HS256 JWTs signed with API_SECRET_KEY.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Header, HTTPException

from config.settings import settings
from core.entities import is_guest_id


@dataclass
class Identity:
    """Authenticated caller: an account holder or a guest."""
    identity_id: str
    is_guest: bool = False


def generate_account_token(user_id: str, expires_in: Optional[timedelta] = None) -> str:
    """Generate JWT token for an account holder."""
    payload = {"sub": user_id}
    if expires_in is not None:
        payload["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(payload, settings.API_SECRET_KEY, algorithm="HS256")


def generate_guest_token(guest_id: str) -> Tuple[str, datetime]:
    """Generate JWT token for a guest session. Returns the token and its expiry."""
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.GUEST_SESSION_MINUTES)
    payload = {
        "sub": guest_id,
        "guest": True,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.API_SECRET_KEY, algorithm="HS256"), expires_at


def verify_token(token: str) -> Identity:
    """Verify and decode an identity token."""
    try:
        payload = jwt.decode(token, settings.API_SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    identity_id = payload.get("sub")
    if not identity_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    guest = bool(payload.get("guest"))
    # A guest claim and the id shape must agree
    if guest != is_guest_id(identity_id):
        raise HTTPException(status_code=401, detail="Invalid token")
    return Identity(identity_id=identity_id, is_guest=guest)


def _bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return token.strip()


async def get_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    """Any authenticated caller."""
    return verify_token(_bearer(authorization))


async def get_account(authorization: Optional[str] = Header(default=None)) -> Identity:
    """Authenticated account holder; guest tokens are refused."""
    identity = verify_token(_bearer(authorization))
    if identity.is_guest:
        raise HTTPException(status_code=401, detail="Account required")
    return identity


async def get_guest(authorization: Optional[str] = Header(default=None)) -> Identity:
    """Authenticated guest session."""
    identity = verify_token(_bearer(authorization))
    if not identity.is_guest:
        raise HTTPException(status_code=401, detail="Guest session required")
    return identity
