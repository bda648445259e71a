"""API key generation (first sign-in) and verification endpoints.

POST /api/auth/keys        -- create an account + profile and return a key (no auth)
GET  /api/auth/keys/verify -- verify an existing API key (auth required)
"""

import secrets

import structlog
from fastapi import APIRouter
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from abi.dependencies import CurrentUser, DbSession, hash_api_key
from abi.errors import Conflict
from abi.models.user import Profile, User
from abi.schemas.auth import APIKeyCreate, APIKeyResponse, VerifyResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])

log = structlog.get_logger()


@router.post("/keys", response_model=APIKeyResponse, status_code=201)
async def generate_api_key(body: APIKeyCreate, db: DbSession) -> APIKeyResponse:
    """Register a user, create their community profile, and issue an API key.

    The raw key is returned exactly once; only its SHA-256 hash is stored.
    An email that is already registered gets 409.
    """
    if body.email:
        result = await db.execute(select(User).where(User.email == body.email))
        if result.scalar_one_or_none() is not None:
            raise Conflict("Email already registered")

    raw_key = secrets.token_urlsafe(32)
    user = User(api_key_hash=hash_api_key(raw_key), email=body.email)
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Could not register this account; retry") from exc

    db.add(
        Profile(
            user_id=user.id,
            display_name=body.display_name,
            job_title=body.job_title,
            company=body.company,
        )
    )
    await db.commit()

    log.info("user_registered", user_id=str(user.id))
    return APIKeyResponse(api_key=raw_key, user_id=user.id)


@router.get("/keys/verify", response_model=VerifyResponse)
async def verify_api_key(user: CurrentUser) -> VerifyResponse:
    """Verify that the provided API key is valid."""
    return VerifyResponse(user_id=user.id, role=user.role)
