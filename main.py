"""
DropReel — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.reels import router as reels_router
from api.videos import router as videos_router
from config.settings import Settings, config
from connectors.dropbox import DropboxConnector
from connectors.prober import ConnectionProber
from connectors.routes import router as auth_router
from connectors.token_manager import TokenLifecycleManager
from connectors.token_store import TokenStore, build_token_store
from reels.store import ReelStore
from videos.adapter import VideoListingAdapter

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "aiosqlite", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    token_store: Optional[TokenStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the app and its services.

    ``token_store`` and ``transport`` exist so tests can swap in an
    in-memory store and a mocked Dropbox.
    """
    settings = settings or config
    store = token_store or build_token_store(settings)

    connector = DropboxConnector(settings, transport=transport)
    manager = TokenLifecycleManager(
        store,
        connector,
        refresh_skew_seconds=settings.token_refresh_skew_seconds,
    )

    app = FastAPI(
        title="DropReel",
        version="1.0.0",
        description="Build shareable video reels from a Dropbox folder.",
    )

    app.state.settings = settings
    app.state.token_manager = manager
    app.state.prober = ConnectionProber(
        manager,
        timeout=settings.request_timeout_seconds,
        ping_timeout=settings.ping_timeout_seconds,
        transport=transport,
    )
    app.state.video_adapter = VideoListingAdapter(manager, settings, transport=transport)
    app.state.reel_store = ReelStore(settings.reels_store_path)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    prefix = settings.api_prefix.rstrip("/")
    app.include_router(auth_router, prefix=f"{prefix}/auth")
    app.include_router(videos_router, prefix=f"{prefix}/videos")
    app.include_router(reels_router, prefix=f"{prefix}/reels")

    @app.on_event("startup")
    async def on_startup():
        if not connector.is_configured():
            logger.warning("DROPBOX_CLIENT_ID / DROPBOX_CLIENT_SECRET not set; OAuth will fail")
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await store.close()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
