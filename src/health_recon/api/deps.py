"""Request dependencies: application context, trigger auth, rate limits."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

from fastapi import Depends, Header, Request

from health_recon.api.errors import ApiError
from health_recon.config import ConfigError, Settings
from health_recon.inference.base import InferenceGateway
from health_recon.pipeline.orchestrator import PipelineOrchestrator
from health_recon.ratelimit.limiter import RateLimiter
from health_recon.storage.common import utc_now
from health_recon.store.repository import DocumentStore

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[Settings, RateLimiter], InferenceGateway]


@dataclass(slots=True)
class AppContext:
    """Long-lived collaborators shared by all requests of one app."""

    settings: Settings
    store: DocumentStore
    limiter: RateLimiter
    gateway_factory: GatewayFactory
    pause_seconds: float | None = None


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_request_id(x_request_id: str | None = Header(None, alias="X-Request-ID")) -> str:
    """Caller-supplied correlation id, or a short generated one."""

    return x_request_id or str(uuid4())[:8]


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def require_cron_secret(request: Request, context: AppContext = Depends(get_context)) -> None:
    """Reject scheduler calls without the shared secret before any work starts."""

    settings = context.settings
    secret = settings.trigger.cron_secret
    if secret is None:
        if settings.allows_unauthenticated_triggers:
            return
        logger.error("Cron request rejected: HEALTH_RECON_CRON_SECRET is not configured")
        raise ApiError(500, "config_error", "Cron secret is not configured")

    header = request.headers.get("authorization", "")
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(header.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Unauthorized cron request to %s", request.url.path)
        raise ApiError(401, "unauthorized", "Unauthorized cron request")


def require_pipeline_config(context: AppContext = Depends(get_context)) -> Settings:
    """Reject pipeline requests up front when inference is not configured."""

    try:
        context.settings.validate_for_inference()
        context.settings.validate_for_pipeline()
    except ConfigError as error:
        logger.error("Pipeline request rejected: %s", error)
        raise ApiError(500, "config_error", str(error)) from error
    return context.settings


def rate_limit(prefix: str) -> Callable[..., None]:
    """Dependency enforcing the configured request limit per client address.

    Runs after the pipeline configuration check, so rejected requests use no quota.
    """

    def dependency(
        client_ip: str = Depends(get_client_ip),
        context: AppContext = Depends(get_context),
        _settings: Settings = Depends(require_pipeline_config),
    ) -> None:
        settings = context.settings.rate_limit
        key = f"{prefix}:{client_ip}"
        decision = context.limiter.check(key, settings.limit, settings.window_seconds * 1000)
        if decision.allowed:
            return
        retry_after = decision.retry_after_seconds(utc_now())
        logger.warning("Rate limit exceeded for %s until %s", key, decision.reset_at.isoformat())
        raise ApiError(
            429,
            "rate_limited",
            "Rate limit exceeded.",
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Reset": decision.reset_at.isoformat(),
            },
        )

    return dependency


def get_orchestrator(
    settings: Settings = Depends(require_pipeline_config),
    context: AppContext = Depends(get_context),
) -> PipelineOrchestrator:
    """Build the orchestrator for one request."""

    return PipelineOrchestrator(
        settings=settings,
        store=context.store,
        gateway=context.gateway_factory(settings, context.limiter),
        pause_seconds=context.pause_seconds,
    )
