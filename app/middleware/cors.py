"""
CORS Middleware - lets the browser UI call the API with its session cookie.

Only origins from ALLOWED_ORIGINS receive CORS headers, and credentials are
allowed so the `rollout.sid` cookie travels with cross-origin requests.

Usage:
    app.add_middleware(CORSMiddleware, allowed_origins=settings.allowed_origins())
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
DEFAULT_HEADERS = ["Accept", "Content-Type", "Authorization", "X-Request-ID"]


class CORSMiddleware(BaseHTTPMiddleware):
    """Allow-list CORS with credentials."""

    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        max_age: int = 600,
    ):
        super().__init__(app)
        self.allowed_origins = allowed_origins or []
        self.allow_methods = allow_methods or DEFAULT_METHODS
        self.allow_headers = allow_headers or DEFAULT_HEADERS
        self.max_age = max_age

    def is_allowed(self, origin: str | None) -> bool:
        return bool(origin) and origin in self.allowed_origins

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = self.is_allowed(origin)

        # Preflight
        if request.method == "OPTIONS" and request.headers.get("access-control-request-method"):
            if not allowed:
                logger.warning("CORS preflight rejected", origin=origin)
                return Response(status_code=403, content="Not allowed by CORS")
            return Response(
                status_code=204,
                headers={
                    "Access-Control-Allow-Origin": origin,
                    "Access-Control-Allow-Credentials": "true",
                    "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
                    "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
                    "Access-Control-Max-Age": str(self.max_age),
                    "Vary": "Origin",
                },
            )

        response = await call_next(request)

        if allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        elif origin:
            logger.warning("CORS request from disallowed origin", origin=origin, path=request.url.path)

        return response
