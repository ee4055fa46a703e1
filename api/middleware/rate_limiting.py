"""Rate limiting middleware using Redis."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config import get_settings
from shared.redis_client import get_redis_client

logger = logging.getLogger(__name__)

PUBLIC_PATH_PREFIX = "/api/public/"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to enforce rate limiting on the unauthenticated public API.

    Public endpoints resolve customer tokens, so they are limited per source
    IP (PUBLIC_RATE_LIMIT_MAX_REQUESTS per PUBLIC_RATE_LIMIT_WINDOW_SECONDS).
    Business endpoints and /health are not limited here.
    Returns 429 Too Many Requests if limit is exceeded.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request with rate limiting.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/route handler

        Returns:
            Response with rate limit headers
            429 if rate limit exceeded
        """
        if not request.url.path.startswith(PUBLIC_PATH_PREFIX):
            return await call_next(request)

        # Extract client IP (consider X-Forwarded-For for proxied requests)
        client_ip = request.client.host if request.client else "unknown"
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # Take first IP in chain (original client)
            client_ip = forwarded_for.split(",")[0].strip()

        try:
            redis_client = get_redis_client()
            request_count, window_seconds, max_requests = await self._count_request(
                redis_client, client_ip
            )
        except Exception as e:
            # Log error but don't block request if Redis fails
            logger.error(f"Rate limit check failed for IP {client_ip}: {e}")
            fallback_response: Response = await call_next(request)
            return fallback_response

        if request_count > max_requests:
            logger.warning(
                f"Public rate limit exceeded for IP {client_ip}: {request_count} requests"
            )
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded"},
                headers={
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(window_seconds),
                },
            )

        response: Response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(max(0, max_requests - request_count))
        return response

    async def _count_request(self, redis_client, client_ip: str) -> tuple[int, int, int]:
        """Increment the fixed-window counter for this IP."""
        settings = get_settings()
        window_seconds = settings.PUBLIC_RATE_LIMIT_WINDOW_SECONDS
        window = int(datetime.now(UTC).timestamp()) // window_seconds
        redis_key = f"rate_limit:public:{client_ip}:{window}"

        request_count = await redis_client.incr(redis_key)

        # Set TTL on first request (key creation)
        if request_count == 1:
            await redis_client.expire(redis_key, window_seconds)

        return request_count, window_seconds, settings.PUBLIC_RATE_LIMIT_MAX_REQUESTS
