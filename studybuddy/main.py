import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from studybuddy.core.config import get_settings
from studybuddy.core.logging import setup_logging
from studybuddy.routers import sessions, system

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Assistant de révision : sujet, support de cours, quiz généré et feedback",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(system.router)
    app.include_router(sessions.router)

    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    logger.info(
        "%s %s démarré (env=%s, completion=%s, extraction=%s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.APP_ENV,
        settings.COMPLETION_URL or ("openai" if settings.OPENAI_API_KEY else "aucune"),
        settings.EXTRACTION_URL or "pypdf local",
    )
    return app


app = create_app()
