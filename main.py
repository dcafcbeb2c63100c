import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import settings, MODE
from core.logging import configure_logging
from db import engine, init_db
from api.auth.views import router as auth_router
from api.assets.views import router as assets_router
from api.attachments.views import router as attachments_router
from api.dashboard.views import router as dashboard_router
from ledger.sync import ChangeFeed

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    if engine is None:
        logger.warning("DATABASE_URL not set: running in cache-only mode (%s)", settings.CACHE_DIR)
    else:
        await init_db()
    logger.info("Asset ledger API started in %s mode", MODE)
    yield
    # Wake every open event stream so it releases its subscription
    app.state.change_feed.fail("Server shutting down")
    if engine is not None:
        await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Fixed Asset Ledger API",
        description="Asset ledger registration and review workflow",
        version="1.0.0",
        lifespan=lifespan,
    )
    # Writers publish here, event streams subscribe
    app.state.change_feed = ChangeFeed()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (auth_router, assets_router, attachments_router, dashboard_router):
        app.include_router(router, prefix=API_PREFIX)

    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    app.mount(settings.PUBLIC_FILES_URL, StaticFiles(directory=settings.UPLOAD_DIR), name="files")

    @app.get("/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "remote_store": "configured" if engine is not None else "cache-only",
        }

    return app


app = create_app()
