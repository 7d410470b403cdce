"""ASGI application serving the chat wire contract."""

from starlette.applications import Starlette
from starlette.middleware import Middleware

from chatstream.server.middleware import BasicAuthMiddleware
from chatstream.server.responders import Responder


def create_app(
    responder: Responder,
    username: str | None = None,
    password: str | None = None,
) -> Starlette:
    """Create the ASGI application.

    Args:
        responder: Produces the events answering each chat request
        username: Require basic auth with this username (with ``password``)
        password: Password paired with ``username``

    Returns:
        Starlette application
    """
    from chatstream.server.routes import create_routes

    middleware = []
    if username is not None and password is not None:
        middleware.append(
            Middleware(
                BasicAuthMiddleware,
                username=username,
                password=password,
                public_paths=["/health"],
            )
        )

    return Starlette(routes=create_routes(responder), middleware=middleware)
