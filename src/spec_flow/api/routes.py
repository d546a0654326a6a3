from fastapi import APIRouter

from spec_flow.api.routers import cache_router, health_router, workflow_router

router = APIRouter(prefix="/v1")
router.include_router(health_router)
router.include_router(workflow_router)
router.include_router(cache_router)
