import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("aura.audit")


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    One structured log line per request, written once the status is known.
    Responses with status >= 400 are logged at WARNING, the rest at INFO.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, started)
            raise
        self._log(request, response.status_code, started)
        return response

    def _log(self, request: Request, status_code: int, started: float) -> None:
        principal = getattr(request.state, "principal", None)
        record = {
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent"),
            "user_id": principal.subject_id if principal is not None else "anonymous",
        }
        level = logging.WARNING if status_code >= 400 else logging.INFO
        try:
            logger.log(
                level,
                "%(method)s %(path)s %(status)s %(duration_ms)sms ip=%(ip)s user=%(user_id)s",
                record,
                extra={"audit": record},
            )
        except Exception:
            # Logging failures never fail the request
            logging.getLogger(__name__).debug("Audit log emission failed", exc_info=True)
