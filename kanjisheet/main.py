import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from kanjisheet.core.config import get_settings
from kanjisheet.core.logging import setup_logging
from kanjisheet.routers import system, upload, worksheet
from kanjisheet.services.document import WorksheetState
from kanjisheet.services.relay import RelayError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Générateur de feuilles d'exercices de kanji (questions, corrigé, export PNG/JSON, upload)",
    )

    # État unique (questions chargées, JSON d'origine, champs éditables)
    app.state.worksheet = WorksheetState()

    # Middleware CORS
    origins = [o.strip() for o in (settings.CORS_ORIGINS or "").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],  # fallback si mal configuré
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Erreurs du relais → {ok: false, error, detail}
    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, exc.error, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.error, "detail": exc.detail},
        )

    # Routers
    app.include_router(system.router)
    app.include_router(worksheet.router)
    app.include_router(upload.router)

    # Redirect root → docs
    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    return app


app = create_app()
