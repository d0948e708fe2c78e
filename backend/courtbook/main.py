# backend/courtbook/main.py
"""
FastAPI application for the court booking core.

Run locally with::

    uvicorn courtbook.main:app --reload
"""

import logging

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .core.config import settings
from .errors import register_error_handlers
from .routes.v1 import (
    availability as availability_v1,
    bookings as bookings_v1,
    payments as payments_v1,
    slots as slots_v1,
    webhooks as webhooks_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "Courtbook API"
API_DESCRIPTION = "Availability, booking and payment core for basketball court rentals"


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    # Register unified error envelope handlers
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment != "production" else [],
        allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(availability_v1.router, prefix="/venues")
    api_v1.include_router(slots_v1.router, prefix="/venues")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(payments_v1.router, prefix="/payments")
    api_v1.include_router(webhooks_v1.router, prefix="/webhooks")
    app.include_router(api_v1)

    @app.get("/health", include_in_schema=False)
    def health() -> dict:
        return {"status": "healthy", "version": __version__, "environment": settings.environment}

    logger.info("Courtbook API created (environment=%s)", settings.environment)
    return app


app = create_app()
