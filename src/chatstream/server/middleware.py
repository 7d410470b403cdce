"""Authentication middleware for the fixture server."""

import base64
import binascii
import hmac
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing HTTP basic authentication.

    Public paths (e.g. /health) are served without credentials.
    """

    def __init__(
        self,
        app: Any,
        username: str,
        password: str,
        public_paths: list[str] | None = None,
    ) -> None:
        """Initialize basic auth middleware.

        Args:
            app: The ASGI application
            username: Expected username
            password: Expected password
            public_paths: Paths that don't require authentication
        """
        super().__init__(app)
        self.username = username.encode()
        self.password = password.encode()
        self.public_paths = set(public_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        """Reject requests without matching credentials."""
        if request.url.path in self.public_paths:
            return await call_next(request)

        credentials = _parse_basic_auth(request.headers.get("Authorization", ""))
        if credentials is None:
            return _unauthorized()

        user, password = credentials
        # Compare both halves so timing does not reveal which one failed
        user_ok = hmac.compare_digest(user, self.username)
        password_ok = hmac.compare_digest(password, self.password)
        if not (user_ok and password_ok):
            return _unauthorized()

        return await call_next(request)


def _parse_basic_auth(header: str) -> tuple[bytes, bytes] | None:
    if not header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(header[6:], validate=True)
    except (binascii.Error, ValueError):
        return None
    user, sep, password = decoded.partition(b":")
    if not sep:
        return None
    return user, password


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        {"error": "Unauthorized", "details": "Invalid credentials"},
        status_code=401,
        headers={"WWW-Authenticate": 'Basic realm="Authorization Required"'},
    )
