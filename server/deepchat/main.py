import argparse
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import Settings, get_settings
from fastapi import APIRouter

# API routers
from .api.chats import router as chats_router
from .api.messages import router as messages_router
from .api.generate import router as generate_router
from .core.errors import register_error_handlers
from .core.logging import setup_logging
from .db.session import Database
from .gateways.mock import MockGateway
from .gateways.upstream import CompletionGateway

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    # Setup logging early
    setup_logging(settings.log_level)
    app = FastAPI(title="DeepChat Server", version=VERSION)

    app.state.settings = settings
    # Connects lazily on first use
    app.state.database = Database(settings.database_url)
    app.state.gateway = CompletionGateway(settings)
    app.state.mock_gateway = MockGateway()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o).rstrip("/") for o in settings.allowed_origins],
        # Robust local dev: allow both localhost and 127.0.0.1 on port 3000 via regex
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1):3000",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    api = APIRouter()
    api.include_router(chats_router)
    api.include_router(messages_router)
    api.include_router(generate_router)
    app.include_router(api, prefix="/api")

    @app.on_event("startup")
    async def _startup() -> None:
        # Ensure tables exist; a failure here is retried on first use
        try:
            await app.state.database.engine()
        except Exception as e:
            logger.error("database unavailable at startup: %s", e)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.database.dispose()

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {"service": "deepchat", "version": VERSION}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    parser = argparse.ArgumentParser(description="DeepChat server")
    parser.add_argument("--host", default=settings.server_host)
    parser.add_argument("--port", type=int, default=settings.server_port)
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()
    uvicorn.run("deepchat.main:app", host=args.host, port=args.port, reload=args.reload)


app = create_app()
