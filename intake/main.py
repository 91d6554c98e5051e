"""
Recruitment Intake - Main Application

FastAPI backend with:
- MongoDB as the primary store (users, applications)
- Google Sheets kept in sync by a background job
- Cached admin exports (raw + gzip)

Run: uvicorn intake.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from intake.api.routes import api_router
from intake.core.config import Settings, get_settings
from intake.core.container import ServiceContainer
from intake.core.exceptions import DuplicateRecordError, InvalidSubmissionError, RecordNotFoundError
from intake.core.logging import configure_logging
from intake.db.mongodb import close_mongo_client

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None, container: ServiceContainer = None) -> FastAPI:
    """
    Build the application. A prebuilt container (tests) skips the
    startup wiring of MongoDB and Google Sheets clients.
    """
    if settings is None:
        settings = container.settings if container is not None else get_settings()

    app = FastAPI(
        title="Recruitment Intake",
        description="""
        Applicant registration and department applications.

        ## Features
        - **Users**: Idempotent registration, profile updates
        - **Applications**: One per department, hash-gated updates
        - **Admin**: Cached user/application exports, bulk emails
        - **Sheets**: Background two-way sync with Google Sheets
        """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.container = container

    # CORS middleware (admin panel is served from another origin)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix="/api")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        fields = sorted({".".join(str(p) for p in e["loc"][1:]) for e in errors if len(e.get("loc", ())) > 1})
        if fields:
            message = f"Missing or invalid fields: {', '.join(fields)}"
        else:
            message = "; ".join(e["msg"] for e in errors) or "Invalid request body"
        return JSONResponse(status_code=400, content={"detail": message, "errors": errors})

    @app.exception_handler(DuplicateRecordError)
    async def duplicate_handler(request: Request, exc: DuplicateRecordError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(InvalidSubmissionError)
    async def invalid_submission_handler(request: Request, exc: InvalidSubmissionError):
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    # Startup event
    @app.on_event("startup")
    async def startup_event():
        """Wire backend clients and start the sync scheduler."""
        configure_logging(settings.log_level, settings.log_json)
        if app.state.container is None:
            app.state.container = ServiceContainer.build(settings)
            logger.info("Services initialized")
        scheduler = app.state.container.scheduler
        if scheduler is not None and settings.sync_enabled:
            scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        container = app.state.container
        if container is not None and container.scheduler is not None:
            container.scheduler.stop()
        close_mongo_client()

    @app.get("/", tags=["Health"])
    async def root():
        return {"status": "healthy", "app": "Recruitment Intake"}

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Detailed health check."""
        container = app.state.container
        mongo = "disconnected"
        if container is not None:
            try:
                container.db.command("ping")
                mongo = "connected"
            except PyMongoError as e:
                logger.warning("MongoDB ping failed: %s", e)
        return {
            "status": "healthy",
            "mongodb": mongo,
            "sync": {
                "configured": container is not None and container.sync_engine is not None,
                "running": bool(container and container.sync_engine and container.sync_engine.is_running),
            },
        }

    return app


app = create_app()
