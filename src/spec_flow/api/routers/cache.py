from fastapi import APIRouter, Depends

from spec_flow.api.deps import get_cache_manager
from spec_flow.api.errors import APIError
from spec_flow.api.schemas import CacheInvalidateRequest, CacheInvalidateResponse, CacheStatsResponse
from spec_flow.cache.manager import CacheManager

router = APIRouter(prefix="/cache")


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(cache: CacheManager = Depends(get_cache_manager)) -> CacheStatsResponse:
    return CacheStatsResponse(**cache.get_stats())


@router.post("/invalidate", response_model=CacheInvalidateResponse)
async def cache_invalidate(
    payload: CacheInvalidateRequest,
    cache: CacheManager = Depends(get_cache_manager),
) -> CacheInvalidateResponse:
    if not payload.agent_type and not payload.tags:
        raise APIError("agent_type or tags is required", status_code=400, code="missing_selector")
    removed = 0
    if payload.agent_type:
        removed += cache.invalidate_by_agent(payload.agent_type)
    if payload.tags:
        removed += cache.invalidate_by_tags(payload.tags)
    return CacheInvalidateResponse(removed=removed)
