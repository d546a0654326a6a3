from __future__ import annotations

from contextlib import asynccontextmanager
import json
import logging
from pathlib import Path

from fastapi import FastAPI

from spec_flow.api.config import get_settings
from spec_flow.api.deps import get_cache_manager
from spec_flow.api.exception_handlers import register_exception_handlers
from spec_flow.api.middleware import setup_middlewares
from spec_flow.api.routes import router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    settings = get_settings()
    if settings.checkpoint_storage == "file":
        # fail fast, если каталог чекпоинтов недоступен на запись
        data_dir = settings.checkpoints_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        probe_path = Path(data_dir) / ".rw_check"
        probe_path.write_text("ok", encoding="utf-8")
        probe_path.unlink()

    cache = get_cache_manager().cache
    cache.start_cleanup()
    logging.info(
        json.dumps(
            {
                "event": "startup",
                "message": "Cache sweeper started",
                "cache_max_size": cache.max_size,
                "checkpoint_storage": settings.checkpoint_storage,
            },
            ensure_ascii=False,
        )
    )
    try:
        yield
    finally:
        await cache.stop_cleanup()
        logging.info(json.dumps({"event": "shutdown", "cache": cache.get_stats().as_dict()}, ensure_ascii=False))


def create_app() -> FastAPI:
    app = FastAPI(
        title="spec-flow",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    setup_middlewares(app)
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
