"""
Lead Router API - Main Application.

FastAPI application exposing the lead lifecycle and configuration version
control operations. `create_app()` is the composition root: it owns the single
document store and active-configuration cache for the process.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.dependencies import build_store
from api.models import ErrorResponse
from domain.errors import LeadRoutingError, UnknownError, ValidationError
from repositories.client import load_settings
from repositories.document_store import DocumentStore
from services.configuration_cache import ActiveConfigurationCache

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "not_found": 404,
    "invalid_state": 400,
    "already_recorded": 400,
    "validation": 400,
    "conflict": 409,
    "store": 500,
    "unknown": 500,
}


def _error_body(error: LeadRoutingError) -> dict:
    details = {}
    fields = getattr(error, "fields", None)
    if fields:
        details["fields"] = list(fields)
    if getattr(error, "inconsistent", False):
        details["inconsistent"] = True
    body = ErrorResponse(error=error.message, kind=error.kind, details=details or None)
    return body.model_dump(exclude_none=True)


async def handle_lead_routing_error(request: Request, error: LeadRoutingError) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_BY_KIND.get(error.kind, 500), content=_error_body(error))


async def handle_request_validation_error(request: Request, error: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in item["loc"][1:]) for item in error.errors()]
    message = error.errors()[0]["msg"] if error.errors() else "Validation failed"
    return JSONResponse(status_code=400, content=_error_body(ValidationError(message, fields=fields)))


async def handle_unexpected_error(request: Request, error: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error handling {request.method} {request.url.path}")
    wrapped = UnknownError(f"Unexpected internal error: {error}")
    return JSONResponse(status_code=500, content=_error_body(wrapped))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build the store from the environment unless one was injected.
    if app.state.store is None:
        app.state.store = build_store(load_settings())
        app.state.cache = ActiveConfigurationCache(app.state.store)
    yield


def create_app(store: Optional[DocumentStore] = None) -> FastAPI:
    app = FastAPI(
        title="Lead Router API",
        description="Lead lifecycle (send-back, reroute, self-service) and configuration version control",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.store = store
    app.state.cache = ActiveConfigurationCache(store) if store is not None else None

    # Configure CORS - Allow all origins for development
    # TODO: Restrict origins once the dashboard host is fixed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LeadRoutingError, handle_lead_routing_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "lead-router-api",
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Lead Router API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    # Import and include routers
    from api.routers import configurations, leads

    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(configurations.router, prefix="/api/v1", tags=["Configurations"])

    return app


app = create_app()
