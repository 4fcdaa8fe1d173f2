"""FastAPI application exposing the pipeline triggers."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from health_recon import __version__
from health_recon.api.deps import AppContext, GatewayFactory
from health_recon.api.errors import ApiError, api_error
from health_recon.api.routers import cron, health, pipeline
from health_recon.config import ConfigError, Settings
from health_recon.inference.base import InferenceGateway
from health_recon.inference.openai_gateway import build_inference_gateway
from health_recon.ratelimit.limiter import RateLimiter, build_rate_limiter
from health_recon.store.models import OrganizationNotFound, StoreError
from health_recon.store.repository import DocumentStore

logger = logging.getLogger(__name__)


def _default_gateway_factory(settings: Settings, limiter: RateLimiter) -> InferenceGateway:
    return build_inference_gateway(settings, limiter=limiter)


def create_app(  # noqa: PLR0913
    settings: Settings | None = None,
    *,
    store: DocumentStore | None = None,
    limiter: RateLimiter | None = None,
    gateway_factory: GatewayFactory | None = None,
    pause_seconds: float | None = None,
) -> FastAPI:
    """Build the app; trigger settings are validated here, inference settings per request."""

    resolved_settings = settings or Settings.from_env()
    resolved_settings.validate_for_triggers()
    if store is None:
        store = DocumentStore(resolved_settings.db_path)
        store.init_schema()

    app = FastAPI(title="health-recon", version=__version__)
    app.state.context = AppContext(
        settings=resolved_settings,
        store=store,
        limiter=limiter or build_rate_limiter(resolved_settings),
        gateway_factory=gateway_factory or _default_gateway_factory,
        pause_seconds=pause_seconds,
    )

    app.include_router(health.router, tags=["health"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(pipeline.router, tags=["pipeline"])
    _register_exception_handlers(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, error: ApiError) -> JSONResponse:
        return api_error(error.status_code, error.code, error.message, headers=error.headers)

    @app.exception_handler(OrganizationNotFound)
    async def handle_not_found(_: Request, error: OrganizationNotFound) -> JSONResponse:
        logger.info("Organization not found: %s", error.slug)
        return api_error(404, "system_not_found", "System not found")

    @app.exception_handler(ConfigError)
    async def handle_config_error(_: Request, error: ConfigError) -> JSONResponse:
        logger.error("Configuration error: %s", error)
        return api_error(500, "config_error", str(error))

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, error: StoreError) -> JSONResponse:
        logger.error("Store failure on %s: %s", request.url.path, error)
        return api_error(500, "storage_failed", "Storage is unavailable")

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, error: RequestValidationError) -> JSONResponse:
        return api_error(400, "invalid_request", str(error.errors()))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, _: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return api_error(500, "internal_error", "An unexpected error occurred")
