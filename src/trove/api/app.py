"""FastAPI application for the Trove API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .. import __version__
from ..config import Settings
from ..extraction import ItemExtractor
from .db import get_db, init_db
from .routes import create_router, error_response

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage DB connection lifecycle."""
    settings: Settings = app.state.settings
    await init_db(settings.db_path, settings.default_collection)
    app.state.db = await get_db(settings.db_path)
    logger.info(f"[API] Server ready on {settings.host}:{settings.port}")
    yield
    await app.state.db.close()
    logger.info("[API] Database connection closed")


async def _validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(422, f"{location}: {message}" if location else message)


async def _http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


def create_app(settings: Optional[Settings] = None, extractor=None) -> FastAPI:
    """Create the FastAPI application.

    ``extractor`` defaults to an ``ItemExtractor`` built from ``settings``.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Trove",
        description="Product capture and collections API",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.extractor = extractor or ItemExtractor(settings)

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.include_router(create_router())

    return app
