# src/barmap/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance, registers the error handler and includes
the router. Business logic lives in `barmap.ratings` and `barmap.locations`.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from barmap.core.errors import BarmapError
from barmap.core.logging import configure_logging

from .routes import router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Barmap API", version="0.1.0")

# CORS for browser frontends. Configure via env:
# - BARMAP_CORS_ORIGINS="http://localhost:5173,https://barmap.example"
cors_origins = [s.strip() for s in os.getenv("BARMAP_CORS_ORIGINS", "").split(",") if s.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(BarmapError)
async def handle_barmap_error(request: Request, exc: BarmapError) -> JSONResponse:
    """Render typed core errors as `{"detail": {"code", "message", ...}}`."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


app.include_router(router)
