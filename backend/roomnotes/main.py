from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional
import logging
import sys
import time
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomnotes.config import Settings
from roomnotes.errors import RoomError, StoreAuthenticationError
from roomnotes.models.base import Database
from roomnotes.api.rooms import router as rooms_router
from roomnotes.services.room_lifecycle import RoomLifecycleManager
from roomnotes.services.summarization_service import (
    SummarizationService,
    Summarizer,
    build_summarizer,
)


logger = logging.getLogger("roomnotes")
http_logger = logging.getLogger("roomnotes.http")


def configure_logging(settings: Settings) -> None:
    formatter = logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s %(message)s")
    root = logging.getLogger()
    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        handler = RotatingFileHandler(
            str(settings.logs_dir / "backend.log"), maxBytes=5_000_000, backupCount=2
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    if not any(getattr(h, "name", None) == "roomnotes_stream" for h in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        stream.name = "roomnotes_stream"
        root.addHandler(stream)
    root.setLevel(logging.INFO)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    summarizer: Optional[Summarizer] = None,
) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.ensure_dirs()
        configure_logging(settings)

        db = database or Database(settings)
        if not db.connected:
            try:
                db.connect()
            except StoreAuthenticationError as exc:
                logger.critical("Login error: %s", exc)
                raise SystemExit(1) from exc

        summarization = SummarizationService(
            summarizer or build_summarizer(settings),
            timeout=settings.llm_timeout_seconds,
        )
        app.state.database = db
        app.state.rooms = RoomLifecycleManager(
            db,
            summarization,
            append_max_attempts=settings.append_max_attempts,
            summary_max_attempts=settings.summary_max_attempts,
        )
        logger.info("%s ready", settings.app_name)
        try:
            yield
        finally:
            summarization.close()
            db.dispose()

    app = FastAPI(title="Room Notes Backend", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        http_logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(rooms_router, prefix=settings.api_prefix)

    @app.exception_handler(RoomError)
    async def _room_error_handler(request: Request, exc: RoomError):
        if exc.status_code >= 500:
            logging.getLogger("roomnotes.api").error("%s: %s", exc.message, exc.error)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"message": "Invalid request", "error": str(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        logging.getLogger("roomnotes.api").exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"message": "Internal server error", "error": str(exc)})

    return app


app = create_app()


def run(argv: Optional[list[str]] = None) -> None:
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Room Notes Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=3000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (dev only)")

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    uvicorn.run(
        "roomnotes.main:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    run()
