"""Middleware package."""

from segscribe.middleware.rate_limit import RateLimitMiddleware, RateLimiter, rate_limiter

__all__ = ["RateLimitMiddleware", "RateLimiter", "rate_limiter"]
