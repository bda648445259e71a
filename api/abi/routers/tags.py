"""Tags listing endpoint.

GET /api/community/tags -- all tags, most-used first.
"""

from fastapi import APIRouter

from abi.dependencies import DbSession
from abi.middleware.rate_limiter import ReadRateLimit
from abi.schemas.question import TagResponse
from abi.services.tags import list_tags as list_tags_service

router = APIRouter(prefix="/api/community", tags=["tags"])


@router.get("/tags", response_model=list[TagResponse])
async def list_tags(db: DbSession, _rate: ReadRateLimit) -> list[TagResponse]:
    tags = await list_tags_service(db)
    return [TagResponse.model_validate(tag) for tag in tags]
