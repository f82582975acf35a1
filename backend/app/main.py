"""Relay Backend Application.

This is the main entry point for the Relay backend service. Relay serves an
authenticated realtime channel (presence, private and room messages, typing
indicators) backed by a shared key-value store.

Modules:
    - realtime: WebSocket sessions, presence, addressing and history
    - store: Redis / in-memory key-value backends
    - auth: JWT bearer tokens
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.auth.router import router as auth_router
from app.config import AppConfig, get_config
from app.realtime import build_realtime
from app.realtime.router import router as realtime_router
from app.store import create_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "redis",
    "httpx",
    "httpcore",
    "websockets",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration to use. Loaded from the YAML files when
            omitted.
    """
    cfg = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        configured_level = getattr(logging, cfg.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", cfg.logging.level.upper())

        store = create_store(cfg)
        try:
            await store.ping()
            logger.info("Key-value store reachable (backend=%s)", cfg.store.backend)
        except Exception as exc:
            # Delivery does not depend on the store
            logger.warning("Key-value store not reachable at startup: %s", exc)

        app.state.realtime = build_realtime(cfg, store)
        logger.info(
            "Realtime layer ready: history_size=%d, private_room_prefix=%r",
            cfg.realtime.history_size,
            cfg.realtime.private_room_prefix,
        )

        yield  # Application runs here

        # Shutdown
        await store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Relay API",
        description="Realtime messaging backend with presence and history",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(realtime_router)
    app.include_router(auth_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _server = get_config().server
    uvicorn.run("app.main:app", host=_server.host, port=_server.port)
