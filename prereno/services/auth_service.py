"""
Authentication helpers for the PreReno backend.

Sign-up, sign-in and password handling live in the hosted identity
provider; this module only verifies the HS256 access tokens it issues
(shared ``jwt_secret``) and resolves them to a ``Profile``. It also signs
and verifies the per-offer magic links emailed to contractors, which use
the same secret with an ``action`` claim instead of a subject.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.core.config import settings
from prereno.models import Contractor, Profile

ACCESS_TOKEN_EXPIRE_MINUTES = 60
OFFER_TOKEN_ACTION = "offer"


class InvalidOfferTokenError(Exception):
    """Raised when an offer magic link is malformed, tampered or expired."""


# ---------------------------------------------------------------------------
# JWT primitives
# ---------------------------------------------------------------------------

def create_access_token(profile_id: uuid.UUID) -> tuple[str, datetime]:
    """Create an access token equivalent to the identity provider's.

    Used by local tooling and tests; production tokens come from the IdP.

    Returns:
        Tuple of (token_string, expiration_datetime).
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(profile_id),
        "type": "access",
        "exp": expires_at,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def decode_token(token: str) -> dict:
    """Decode and verify a JWT.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"verify_aud": False},
    )


# ---------------------------------------------------------------------------
# Profile lookups
# ---------------------------------------------------------------------------

async def get_profile_by_id(db: AsyncSession, profile_id: uuid.UUID) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == profile_id))
    return result.scalar_one_or_none()


async def get_contractor_for_profile(
    db: AsyncSession, profile_id: uuid.UUID
) -> Optional[Contractor]:
    result = await db.execute(
        select(Contractor).where(Contractor.profile_id == profile_id)
    )
    return result.scalar_one_or_none()


async def get_current_user(db: AsyncSession, token: str) -> Profile:
    """Decode an access token and return the corresponding profile.

    Raises:
        ValueError: If the token is invalid, expired, or the profile is unknown.
    """
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError("Access token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid access token.")

    if payload.get("action") == OFFER_TOKEN_ACTION:
        raise ValueError("Invalid token type. Expected an access token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid token: missing subject.")

    try:
        profile_id = uuid.UUID(subject)
    except (ValueError, AttributeError):
        raise ValueError("Invalid token: malformed subject.")

    profile = await get_profile_by_id(db, profile_id)
    if profile is None:
        raise ValueError("Profile not found.")
    return profile


# ---------------------------------------------------------------------------
# Offer magic links
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OfferClaims:
    job_id: uuid.UUID
    contractor_id: uuid.UUID
    expires_at: datetime


def issue_offer_token(
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
    expires_at: datetime,
) -> str:
    """Sign a magic link token that lets one contractor act on one offer."""
    payload = {
        "job_id": str(job_id),
        "contractor_id": str(contractor_id),
        "action": OFFER_TOKEN_ACTION,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_offer_token(token: str, verify_exp: bool = True) -> OfferClaims:
    """Verify an offer token and return its claims.

    ``verify_exp=False`` lets the caller report an expired offer as such
    (the dispatcher re-checks ``expires_at`` against the stored offer).

    Raises:
        InvalidOfferTokenError: Bad signature, wrong action or malformed ids.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidOfferTokenError("Offer link has expired.")
    except jwt.InvalidTokenError:
        raise InvalidOfferTokenError("Invalid offer link.")

    if payload.get("action") != OFFER_TOKEN_ACTION:
        raise InvalidOfferTokenError("Invalid offer link.")

    try:
        return OfferClaims(
            job_id=uuid.UUID(payload["job_id"]),
            contractor_id=uuid.UUID(payload["contractor_id"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError, TypeError):
        raise InvalidOfferTokenError("Invalid offer link.")
