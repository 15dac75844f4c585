"""
FastAPI application entry point for the CRM backend.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_backend.config import Settings, get_settings
from crm_backend.dependencies import build_storage
from crm_backend.routes import router
from crm_backend.storage import StorageFacade

logger = logging.getLogger(__name__)


class SinglePageStaticFiles(StaticFiles):
    """Serve the compiled bundle, answering unknown client routes with index.html."""

    def __init__(self, *args, api_prefix: str = "/api", **kwargs):
        super().__init__(*args, **kwargs)
        self.api_prefix = "/" + api_prefix.strip("/")

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            route = "/" + path
            if exc.status_code != 404 or route == self.api_prefix:
                raise
            if route.startswith(self.api_prefix + "/"):
                raise
            return await super().get_response("index.html", scope)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return "; ".join(parts) or "Invalid request"


def create_app(
    settings: Optional[Settings] = None, storage: Optional[StorageFacade] = None
) -> FastAPI:
    settings = settings or get_settings()
    storage = storage or build_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.storage.open()
        yield

    app = FastAPI(title="CRM Backend (FastAPI)", version="0.1.0", lifespan=lifespan)
    app.state.storage = storage

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith(settings.api_prefix):
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "%s %s %d in %dms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error for %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    app.include_router(router, prefix=settings.api_prefix)

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount(
            "/",
            SinglePageStaticFiles(
                directory=static_dir, html=True, api_prefix=settings.api_prefix
            ),
            name="static",
        )
    else:
        logger.warning("Static bundle not found at %s; serving API only", static_dir)
    return app
