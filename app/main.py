"""
Multi-Tenant File Service - Main Application Entry Point.

FastAPI application exposing tenant-scoped upload, download, delete and
metadata operations over S3 and Azure Blob Storage.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.exceptions import FileServiceException
from app.core.responses import create_error_response
from app.api.v1.router import api_router
from app.services.metrics import MetricsMiddleware, get_metrics_collector
from app.services.storage_service import MultiTenantStorageService
from app.tenants.registry import TenantConfigRegistry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Builds the tenant registry and the routing service on startup.
    """
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"API key verification: {settings.REQUIRE_API_KEY}")

    if getattr(app.state, "storage_service", None) is None:
        registry = TenantConfigRegistry.from_settings(settings)
        app.state.storage_service = MultiTenantStorageService(
            registry,
            metrics=get_metrics_collector(),
        )

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME}")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
## Multi-Tenant File Service

Routes file operations to the storage backend configured for each
tenant environment. Identify the tenant with the `X-Tenant-ID` header.

### Backends
- AWS S3 (`s3` / `aws`)
- Azure Blob Storage (`azure`)
    """,
    version="1.0.0",
    openapi_tags=[
        {"name": "files", "description": "Tenant-scoped file operations"},
        {"name": "health", "description": "Service health checks"},
    ],
    lifespan=lifespan,
)

# CORS middleware for cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware for request tracking
app.add_middleware(MetricsMiddleware)


@app.exception_handler(FileServiceException)
async def file_service_exception_handler(request: Request, exc: FileServiceException) -> JSONResponse:
    """
    Global exception handler for file service exceptions.
    Returns standardized error responses.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests as 400 validation failures."""
    return create_error_response(
        error="validation_failed",
        message="Request validation failed",
        status_code=400,
        details={
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
                for err in exc.errors()
            ]
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all exception handler for unexpected errors.
    Logs the full error but returns a sanitized response.
    """
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
        },
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint redirects to API documentation."""
    return {
        "name": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json",
        "api": settings.API_V1_PREFIX,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
