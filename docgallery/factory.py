"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api.router import router
from .core.config import get_settings
from .core.database import close_db, init_db
from .core.flags import get_flags
from .core.redis import close_redis
from .services.llm import API_KEY_ENV, close_client, mask_key

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    flags = get_flags()

    # ── Startup ──────────────────────────────────────────────────
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Document Gallery (env=%s)", settings.env)

    await init_db()

    logger.info("Flags: s3=%s redis=%s llm=%s", flags.use_s3, flags.use_redis, flags.llm_provider)
    if settings.gemini_api_key:
        logger.info("%s configured (%s)", API_KEY_ENV, mask_key(settings.gemini_api_key))
    else:
        logger.warning("%s not set: uploads will be rejected and search runs degraded", API_KEY_ENV)

    logger.info("Document Gallery is ready")
    yield

    # ── Shutdown ─────────────────────────────────────────────────
    await close_client()
    await close_db()
    await close_redis()
    logger.info("Document Gallery shut down")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Document Gallery",
        description="Image and document gallery with AI analysis and search",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Uploaded files ───────────────────────────────────────────
    if not get_flags().use_s3:
        upload_dir = Path(settings.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
