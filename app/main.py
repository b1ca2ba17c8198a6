"""
Community Watch Hub - FastAPI Application Entry Point

A community-safety reporting platform: residents file vehicle alerts and
crime reports, operators move them through a lifecycle and dispatch
responders.

DESIGN PRINCIPLES:
- Every mutation is authorized by the policy evaluator before storage is touched
- Refusals carry a machine-readable code and map to a fixed HTTP status
- Writes are conditional; a lost race is reported as 409 Conflict, never retried
- Accepted mutations are audited
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.errors import ErrorCode, PolicyError
from app.core.settings import settings
from app.config.firebase import get_store, initialize_firestore
from app.routes import admin, dispatch, health, reports

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Community safety reporting, moderation and dispatch",
    debug=settings.DEBUG
)


@app.exception_handler(PolicyError)
async def policy_error_handler(request: Request, exc: PolicyError):
    """Render a refusal as {"detail", "code"} with the code's HTTP status."""
    if exc.code == ErrorCode.INTERNAL:
        logger.error(f"Internal error on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused: {exc.code.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    logger.info(f"{request.method} {request.url.path} rejected: {problems}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "; ".join(problems) or "Invalid request", "code": ErrorCode.VALIDATION_ERROR.value}
    )


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions with full traceback; the caller gets an opaque 500."""
    logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=PolicyError(ErrorCode.INTERNAL).to_dict()
    )


# CORS configuration - origins come from settings, never "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize the record store on application startup.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")

    if settings.POLICY_ALLOW_ALL:
        logger.warning("⚠️ POLICY_ALLOW_ALL is set; authorization is disabled for active principals")

    if not settings.USE_MOCK_DB:
        try:
            initialize_firestore()
        except Exception as e:
            logger.warning(f"Firestore initialization failed: {e}")
            logger.warning("The app will start but database operations may fail.")
            return

    get_store()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(dispatch.router)
app.include_router(admin.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }
