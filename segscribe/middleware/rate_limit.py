import os
import time
from typing import Dict, Optional, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from segscribe.config import settings

DEFAULT_LIMIT = {"max_tokens": 100, "refill_rate": 100 / 60}


def build_special_limits(speech_segments_per_minute: int) -> Dict[Tuple[str, str], Dict[str, float]]:
    return {
        ("POST", "/speech-segments"): {
            "max_tokens": speech_segments_per_minute,
            "refill_rate": speech_segments_per_minute / 60,
        },
    }


class RateLimiter:
    """Token bucket per client key."""

    def __init__(self):
        self._buckets: Dict[str, Dict[str, float]] = {}

    def is_allowed(self, key: str, *, max_tokens: int, refill_rate: float) -> bool:
        now = time.time()
        bucket = self._buckets.get(key, {"tokens": float(max_tokens), "last_refill": now})

        # Refill tokens based on elapsed time
        elapsed = now - bucket["last_refill"]
        bucket["tokens"] = min(float(max_tokens), bucket["tokens"] + elapsed * refill_rate)
        bucket["last_refill"] = now

        allowed = bucket["tokens"] >= 1.0
        if allowed:
            bucket["tokens"] -= 1.0

        self._buckets[key] = bucket
        return allowed

    def reset(self) -> None:
        self._buckets.clear()


rate_limiter = RateLimiter()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        exclude_paths=None,
        limiter: Optional[RateLimiter] = None,
        special_limits: Optional[Dict[Tuple[str, str], Dict[str, float]]] = None,
    ):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or [])
        self.limiter = limiter or rate_limiter
        self.special_limits = (
            special_limits
            if special_limits is not None
            else build_special_limits(settings.speech_segment_rate_limit)
        )

    def _get_client_key(self, request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"
        client_ip = request.client[0] if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_limit_config(self, path: str, method: str) -> Dict[str, float]:
        return self.special_limits.get((method.upper(), path), DEFAULT_LIMIT)

    async def dispatch(self, request: Request, call_next) -> Response:
        if os.getenv("DISABLE_RATE_LIMIT") == "1" or request.url.path in self.exclude_paths:
            return await call_next(request)

        config = self._get_limit_config(request.url.path, request.method)
        key = f"{self._get_client_key(request)}:{request.url.path}:{request.method.upper()}"

        if not self.limiter.is_allowed(
            key, max_tokens=int(config["max_tokens"]), refill_rate=float(config["refill_rate"])
        ):
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Too many requests. Please try again later.",
                },
            )

        return await call_next(request)
