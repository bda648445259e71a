import hashlib
from typing import Annotated, Optional

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.database import get_db
from abi.models.user import ROLE_RANK, Role, User

DbSession = Annotated[AsyncSession, Depends(get_db)]

# API key security scheme; registers in the OpenAPI security definition
# auto_error=False: a missing key is reported as 401 by get_current_user
api_key_header = APIKeyHeader(name=settings.api_key_header_name, auto_error=False)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


async def get_redis(request: Request) -> aioredis.Redis:
    """Inject the Redis client from app.state (set during lifespan startup)."""
    return request.app.state.redis


async def _lookup_user(db: AsyncSession, raw_key: str) -> User:
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(raw_key)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


async def get_current_user(
    raw_key: Optional[str] = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticate a request via the X-API-Key header.

    Computes the SHA-256 hash of the raw key and looks it up in
    users.api_key_hash. Missing and invalid keys both get 401.
    """
    if not raw_key:
        raise HTTPException(status_code=401, detail="Missing API key")
    return await _lookup_user(db, raw_key)


async def get_optional_user(
    raw_key: Optional[str] = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Viewer for public reads: None when no key is sent, 401 for a bad key."""
    if not raw_key:
        return None
    return await _lookup_user(db, raw_key)


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]


def require_role(minimum: Role):
    """Dependency factory: 403 unless the caller's role ranks at least ``minimum``."""

    async def _check(user: CurrentUser) -> User:
        if ROLE_RANK[Role(user.role)] < ROLE_RANK[minimum]:
            raise HTTPException(
                status_code=403, detail=f"The {minimum.value} role is required"
            )
        return user

    return _check


ApproverUser = Annotated[User, Depends(require_role(Role.approver))]
AdminUser = Annotated[User, Depends(require_role(Role.admin))]
