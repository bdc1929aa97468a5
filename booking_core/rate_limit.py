"""SlowAPI rate limiting keyed by requester where a bearer token is present."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .auth import peek_requester_id
from .config import get_settings

settings = get_settings()

BOOKING_WRITE_LIMIT = "20/minute"
BOOKING_READ_LIMIT = "60/minute"


def requester_key(request: Request) -> str:
    """Bucket authenticated calls per requester id and anonymous ones per client address."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        requester_id = peek_requester_id(token)
        if requester_id is not None:
            return f"requester:{requester_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=requester_key,
    default_limits=[settings.default_rate_limit],
    enabled=settings.rate_limiting_enabled,
)


def rate_limit_handler(_: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}", "code": "rate_limited"},
    )


def apply_rate_limiter(app: FastAPI) -> None:
    """Attach the limiter middleware and exception handler to an app."""

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
