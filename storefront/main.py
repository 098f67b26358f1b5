"""
Reverie storefront service.

Storefront API (catalog, cart, checkout) and the admin back-office API in one
FastAPI application. Configuration is resolved once in ``create_app`` and the
optional database handle and cart store hang off ``app.state``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import os
import subprocess

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from storefront.core_settings import Settings, get_settings
from storefront.infrastructure.db import build_database
from storefront.application.cart import build_store
from storefront.application.errors import StorefrontError, InvalidPayload
from storefront.api.routes import router as storefront_router
from storefront.api.admin_routes import router as admin_router

SERVICE_NAME = "storefront-service"
SERVICE_DESCRIPTION = "Reverie Revival storefront and admin back-office"

logger = get_logger(__name__)

def run_migrations():
    result = subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=os.path.join(os.path.dirname(__file__), ".."),
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        raise RuntimeError(f"alembic upgrade failed: {result.stderr}")
    logger.info("Database migrations completed")

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database = app.state.database
    logger.info(f"Starting {SERVICE_NAME} version {settings.SERVICE_VERSION}")

    if database is None:
        logger.warning("No database configured; checkout and admin routes will answer 503")
    elif settings.RUN_MIGRATIONS:
        run_migrations()
    else:
        database.init_models()
        logger.info("Database models initialized")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    if database is not None:
        database.dispose()

def _check_database(request: Request):
    database = request.app.state.database
    if database is None:
        return None
    database.ping()
    return True

def _check_cart_store(request: Request):
    if not request.app.state.settings.REDIS_URL:
        return None
    return request.app.state.cart_store.ping()

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    os.environ.setdefault("SERVICE_VERSION", settings.SERVICE_VERSION)
    os.environ.setdefault("ENVIRONMENT", settings.ENVIRONMENT)
    setup_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL)

    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.settings = settings
    app.state.database = build_database(settings)
    app.state.cart_store = build_store(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(
            f"Invalid payload on {request.url.path}",
            extra={'extra_fields': {'errors': len(exc.errors())}}
        )
        error = InvalidPayload()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    health_service = ServiceHealth(SERVICE_NAME, settings.SERVICE_VERSION, dependencies={
        "database:connectivity": _check_database,
        "cache:connectivity": _check_cart_store,
    })
    app.include_router(health_service.create_health_router())
    app.include_router(storefront_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "database": "configured" if app.state.database is not None else "not configured",
            "docs": "/api/docs"
        }

    return app

app = create_app()
