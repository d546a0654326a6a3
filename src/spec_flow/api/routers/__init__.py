from spec_flow.api.routers.cache import router as cache_router
from spec_flow.api.routers.health import router as health_router
from spec_flow.api.routers.workflow import router as workflow_router

__all__ = [
    "health_router",
    "workflow_router",
    "cache_router",
]
