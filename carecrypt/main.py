"""
FastAPI application entrypoint.

Run locally:  uvicorn carecrypt.main:app --reload
"""

import logging

from fastapi import FastAPI

from carecrypt.api.routes import router
from carecrypt.config import settings
from carecrypt.models.database import init_db
from carecrypt.services.encryption import get_encryption_service

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="carecrypt",
    description=(
        "Clinical records API with field-level AES-256 encryption of "
        "diagnosis text, clinical notes and prescription notes."
    ),
    version="1.0.0",
    # no interactive docs in production
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    init_db()
    # builds the default service now so a bad key is reported at boot
    get_encryption_service()
