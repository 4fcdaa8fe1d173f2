"""Fixed-window rate limiting for paid inference calls and on-demand triggers."""

from health_recon.ratelimit.limiter import RateLimiter, build_rate_limiter
from health_recon.ratelimit.models import RateLimitDecision

__all__ = ["RateLimitDecision", "RateLimiter", "build_rate_limiter"]
