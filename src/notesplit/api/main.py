"""
Delivery Note Extraction API
============================

FastAPI application entry point.
Configures middleware, routes, and exception handlers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notesplit.api.config import Settings, settings
from notesplit.api.middleware.exceptions import register_exception_handlers
from notesplit.api.middleware.upload_limit import UploadSizeLimitMiddleware
from notesplit.api.routes import delivery_notes, documents, health
from notesplit.composition_root import build_services
from notesplit.core.database.session import close_database, configure_database, create_schema
from notesplit.core.extraction.resilience import ResilientExtractor
from notesplit.core.observability.logging import configure_logging
from notesplit.core.observability.middleware import RequestIDMiddleware, StructuredLoggingMiddleware

configure_logging(log_level=settings.log_level, json_format=settings.log_format.lower() != "human")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    app_settings: Settings = app.state.settings
    logger.info(f"Starting {app_settings.app_name} v{app_settings.app_version}")

    configure_database(
        database_url=app_settings.db.database_url,
        pool_size=app_settings.db.pool_size,
        max_overflow=app_settings.db.max_overflow,
    )
    if app_settings.db.auto_create:
        await create_schema()

    app.state.services = build_services(app_settings, extractor=app.state.extractor)
    logger.info("Application ready")

    try:
        yield
    finally:
        logger.info("Shutting down")
        await app.state.services.jobs.shutdown()
        await close_database()


def create_app(
    app_settings: Settings | None = None,
    extractor: ResilientExtractor | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to use instead of the process-wide ones.
        extractor: Extractor to use instead of the configured model endpoint.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Delivery Note Extraction API",
        description="""
    Split scanned PDFs into delivery notes.

    - **Upload** source PDFs and inspect their pages
    - **Batch process** PDFs with page classification, streamed as server-sent events
    - **Create, edit and delete** delivery notes over non-overlapping page sets
    - **Download** each note as its own PDF
    """,
        version=app_settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "health", "description": "Liveness check"},
            {"name": "documents", "description": "Source PDF upload, batch processing and management"},
            {"name": "delivery-notes", "description": "Delivery note CRUD and PDF download"},
        ],
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.extractor = extractor

    cors_origins = app_settings.cors_origins or ["*"]
    allow_credentials = "*" not in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Job-ID", "Content-Disposition"],
    )
    app.add_middleware(
        UploadSizeLimitMiddleware,
        max_file_mb=app_settings.uploads.max_file_size_mb,
        max_batch_mb=app_settings.uploads.max_batch_size_mb,
    )
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    api_router = APIRouter(prefix="/api")
    api_router.include_router(health.router)
    api_router.include_router(documents.router)
    api_router.include_router(delivery_notes.router)
    app.include_router(api_router)

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "notesplit.api.main:app",
        host=settings.server_ip,
        port=settings.server_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
