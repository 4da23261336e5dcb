"""
FastAPI application entry point for the salad bar backend.
"""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from saladbar.config import get_settings
from saladbar.db import RecordStore
from saladbar.dependencies import get_record_store
from saladbar.errors import SaladBarError
from saladbar.routes import router
from saladbar.schemas import HealthResponse

logger = logging.getLogger(__name__)


async def handle_saladbar_error(request: Request, exc: SaladBarError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected (%s): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    logger.info("%s %s malformed payload: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content={"detail": errors})


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(title="Salad Bar Backend (FastAPI)", version=settings.app_version)
    app.add_exception_handler(SaladBarError, handle_saladbar_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_model=HealthResponse)
    def health(store: RecordStore = Depends(get_record_store)):
        return HealthResponse(status="ok", collections=store.list_collections())

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
