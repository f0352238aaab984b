import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import ConfigError, Settings, load_settings
from database import init_db
from routes import songs, stream, tokens
from services.storage import BucketClient, bucket_client_from_settings
from utils.hls_signing import TokenSigner

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, storage: Optional[BucketClient] = None) -> FastAPI:
    """
    Build the app around one immutable Settings. Raises ConfigError (and so
    refuses to start) when the signing secret or bucket config is missing.
    Run with: uvicorn main:create_app --factory
    """
    if settings is None:
        configure_logging()
        settings = load_settings()
    if not settings.secret:
        raise ConfigError("SECRET is not set")

    app = FastAPI(title="tunegate")
    app.state.settings = settings
    app.state.signer = TokenSigner(settings.secret)
    app.state.storage = storage if storage is not None else bucket_client_from_settings(settings)
    init_db(settings.database_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers.setdefault("Cache-Control", "private, max-age=600")
        return response

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Register routers
    app.include_router(tokens.router)
    app.include_router(stream.router)
    app.include_router(songs.router)

    logger.info("tunegate ready (bucket=%s, variants=%s)", settings.bucket_name,
                ",".join(v.name for v in settings.variants))
    return app
