"""
Shared FastAPI dependencies for the PreReno backend.

Provides the async database session dependency used by all route handlers,
authentication dependencies for extracting the current profile from JWT
Bearer tokens, and the injectable collaborators used by the job service.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from prereno.core.config import settings
from prereno.models import Profile, UserRole
from prereno.services.ports import ConditionDetector

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session; commit on success, roll back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    db: DBSession,
) -> Profile:
    """Resolve the Bearer token to a ``Profile``. Raises 401 otherwise."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    from prereno.services import auth_service

    try:
        profile = await auth_service.get_current_user(db, credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return profile


CurrentUser = Annotated[Profile, Depends(get_current_user)]


def require_roles(*roles: UserRole):
    """Dependency factory: 403 unless the current profile has one of ``roles``.

    Usage::

        AdminUser = Annotated[Profile, Depends(require_roles(UserRole.ADMIN))]
    """
    allowed = frozenset(roles)

    async def _check(user: CurrentUser) -> Profile:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this action.",
            )
        return user

    return _check


ClientUser = Annotated[
    Profile,
    Depends(
        require_roles(
            UserRole.CLIENT, UserRole.LANDLORD, UserRole.PROPERTY_MANAGER, UserRole.ADMIN
        )
    ),
]
ContractorUser = Annotated[Profile, Depends(require_roles(UserRole.CONTRACTOR))]
LandlordUser = Annotated[
    Profile,
    Depends(require_roles(UserRole.LANDLORD, UserRole.PROPERTY_MANAGER, UserRole.ADMIN)),
]
AdminUser = Annotated[Profile, Depends(require_roles(UserRole.ADMIN))]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

def get_condition_detector() -> ConditionDetector:
    """Photo analysis client; a no-op detector when no vision API is configured."""
    from prereno.integrations.vision import StaticConditionDetector, VisionConditionDetector

    if settings.vision_api_url:
        return VisionConditionDetector()
    return StaticConditionDetector()


Detector = Annotated[ConditionDetector, Depends(get_condition_detector)]
