import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..core.errors import AuthErrorKind, error_response
from .limiter import PathMatcher, RateLimiter
from .store import seconds_until

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Enforce one rate-limit policy on the requests selected by `applies_to`
    (every request when it is None). Over the limit the route handler is not
    executed and a 429 is returned.
    """

    def __init__(self, app, limiter: RateLimiter, applies_to: PathMatcher | None = None):
        super().__init__(app)
        self.limiter = limiter
        self.applies_to = applies_to

    async def dispatch(self, request: Request, call_next):
        policy = self.limiter.policy
        path = request.url.path
        if path in policy.skip_paths:
            return await call_next(request)
        if self.applies_to is not None and not self.applies_to(request.method, path):
            return await call_next(request)

        identity = request.client.host if request.client else "unknown"
        decision = self.limiter.hit(identity)
        headers = self._headers(decision) if policy.standard_headers else {}

        if not decision.allowed:
            logger.warning("Rate limit '%s' exceeded by %s on %s %s", policy.name, identity, request.method, path)
            headers["Retry-After"] = str(seconds_until(decision.reset_at))
            return error_response(AuthErrorKind.RATE_LIMITED, policy.message, headers)

        response = await call_next(request)
        self.limiter.record_outcome(decision, response.status_code)
        # A more specific policy further in sets its own headers first
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response

    @staticmethod
    def _headers(decision) -> dict[str, str]:
        return {
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": str(decision.remaining),
            "RateLimit-Reset": str(seconds_until(decision.reset_at)),
        }
