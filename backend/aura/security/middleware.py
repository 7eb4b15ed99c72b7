import asyncio
import json
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.errors import AuthErrorKind, error_response, unhandled_exception_handler
from ..core.sanitizer import sanitize

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

DEFAULT_PORTS = {"http": 80, "https": 443}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; "
        "img-src 'self' data: https:; connect-src 'self'; font-src 'self' data:; "
        "object-src 'none'; media-src 'self'; frame-src 'none'"
    ),
}

# Headers that advertise the server stack
STACK_HEADERS = ("X-Powered-By", "Server")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Set the security header policy on every response, including the 500s
    rendered for errors no inner layer handled.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_exception_handler(request, exc)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        for name in STACK_HEADERS:
            if name in response.headers:
                del response.headers[name]
        return response


def origin_key(url: str) -> tuple[str, str, int] | None:
    """
    Reduce an Origin or Referer value to (scheme, host, port), or None when
    it is not an absolute http(s) URL.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        return None
    return scheme, parts.hostname.lower(), port or DEFAULT_PORTS[scheme]


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Origin check for state-changing requests.

    Only blocks when `enforce` is set (production); otherwise a mismatch is
    logged and the request continues. Requests without Origin/Referer cannot
    be checked and are let through.
    """

    def __init__(self, app: ASGIApp, allowed_origins: list[str], enforce: bool):
        super().__init__(app)
        self.allowed_origins = {key for key in map(origin_key, allowed_origins) if key is not None}
        self.enforce = enforce

    def is_allowed(self, origin: str) -> bool:
        return origin_key(origin) in self.allowed_origins

    async def dispatch(self, request: Request, call_next):
        if request.method.upper() in SAFE_METHODS:
            return await call_next(request)

        origin = request.headers.get("origin") or request.headers.get("referer")
        if origin and not self.is_allowed(origin):
            if self.enforce:
                logger.warning("CSRF rejection: origin %s on %s %s", origin, request.method, request.url.path)
                return error_response(AuthErrorKind.CSRF_REJECTED)
            logger.warning("Origin %s not in allow-list for %s %s (not enforced)", origin, request.method, request.url.path)

        return await call_next(request)


def _drop_outcome(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Request abandoned after timeout later failed", exc_info=task.exception())


class RequestTimeoutMiddleware:
    """
    Answer 408 once a request has run for `timeout` seconds.

    The reply goes out at the deadline. Handling is cancelled but not awaited:
    a sync route keeps its worker thread until it returns, and anything it
    sends afterwards is discarded.
    """

    def __init__(self, app: ASGIApp, timeout: float):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.timeout:
            await self.app(scope, receive, send)
            return

        response_started = False
        timed_out = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if timed_out:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        task = asyncio.ensure_future(self.app(scope, receive, send_wrapper))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            task.result()
            return

        timed_out = True
        task.cancel()
        task.add_done_callback(_drop_outcome)
        logger.error("Request timed out after %ss: %s %s", self.timeout, scope.get("method"), scope.get("path"))
        if response_started:
            # Status line already sent; nothing else can be reported
            return
        response = error_response(AuthErrorKind.REQUEST_TIMEOUT)
        await response(scope, receive, send)


class SanitizeInputMiddleware:
    """
    Rewrite JSON bodies and query strings with their sanitized form before
    routing. Path parameters are handled by `sanitize_path_params`, since they
    only exist once a route has matched.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_string = scope.get("query_string", b"")
        if query_string:
            pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
            cleaned = [(key, sanitize(value)) for key, value in pairs]
            if cleaned != pairs:
                scope["query_string"] = urlencode(cleaned).encode("latin-1")

        if not self._is_json(scope):
            await self.app(scope, receive, send)
            return

        body, disconnected = await self._read_body(receive)
        body = self._sanitize_body(body)
        scope["headers"] = [
            (name, str(len(body)).encode("latin-1") if name == b"content-length" else value)
            for name, value in scope["headers"]
        ]

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            if disconnected:
                return {"type": "http.disconnect"}
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    def _is_json(scope: Scope) -> bool:
        for name, value in scope.get("headers", []):
            if name == b"content-type":
                return value.split(b";")[0].strip().lower().endswith(b"json")
        return False

    @staticmethod
    async def _read_body(receive: Receive) -> tuple[bytes, bool]:
        chunks = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return b"".join(chunks), True
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                return b"".join(chunks), False

    @staticmethod
    def _sanitize_body(body: bytes) -> bytes:
        if not body:
            return body
        try:
            payload = json.loads(body)
        except ValueError:
            # Let request validation report malformed JSON
            return body
        cleaned = sanitize(payload)
        if cleaned == payload:
            return body
        return json.dumps(cleaned).encode("utf-8")
