# app/middlewares/rate_limit.py
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.platform.exceptions import RateLimited
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.services.rate_limiter import (
    RateLimitPolicy,
    get_client_identifier,
    rate_limit_headers,
)
from app.platform.utils.debug_bypass import is_debug_bypass

logger = get_logger("rate_limit")

ROUTE_POLICIES = {
    ("POST", "/api/waitlist"): RateLimitPolicy.EMAIL_SUBMISSION,
    ("GET", "/api/waitlist"): RateLimitPolicy.GENERAL_API,
    ("GET", "/api/waitlist/stats"): RateLimitPolicy.GENERAL_API,
    ("GET", "/api/waitlist/verify"): RateLimitPolicy.EMAIL_VERIFICATION,
    ("POST", "/api/waitlist/verify"): RateLimitPolicy.EMAIL_VERIFICATION,
    ("GET", "/api/waitlist/unsubscribe"): RateLimitPolicy.GENERAL_API,
    ("POST", "/api/waitlist/unsubscribe"): RateLimitPolicy.GENERAL_API,
    ("POST", "/api/waitlist/resend"): RateLimitPolicy.ADMIN_API,
    ("GET", "/api/email/status"): RateLimitPolicy.ADMIN_API,
}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Consults the app's RateLimiter before the route runs and stamps the
    X-RateLimit-* headers on whatever the route returns, unexpected 500s
    included.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"
        policy = ROUTE_POLICIES.get((request.method, path))

        # If endpoint is not rate-limited, continue
        if policy is None:
            return await call_next(request)

        if is_debug_bypass(request.headers, request.app.state.settings):
            policy = RateLimitPolicy.DEBUG_BYPASS

        limiter = request.app.state.rate_limiter
        result = await limiter.check(get_client_identifier(request), policy)
        headers = rate_limit_headers(result)
        request.state.rate_limit = result

        if not result.success:
            exc = RateLimited(result.reset_at)
            headers["Retry-After"] = str(result.retry_after)
            return api_response(
                message=exc.message,
                error=exc.error,
                status_code=exc.status_code,
                headers=headers,
            )

        try:
            response = await call_next(request)
        except Exception:
            # The app-level Exception handler runs outside this middleware
            logger.exception(f"Unhandled exception on {request.method} {path}")
            return api_response(
                message="Something went wrong. Please try again later.",
                error="Internal server error",
                status_code=500,
                headers=headers,
            )
        response.headers.update(headers)
        return response
