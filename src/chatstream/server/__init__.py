"""Fixture HTTP server speaking the agent chat wire contract."""

from chatstream.server.app import create_app
from chatstream.server.middleware import BasicAuthMiddleware
from chatstream.server.responders import EchoResponder, Responder, ScriptedResponder
from chatstream.server.routes import SSEResponse, create_routes, format_sse

__all__ = [
    "BasicAuthMiddleware",
    "EchoResponder",
    "Responder",
    "SSEResponse",
    "ScriptedResponder",
    "create_app",
    "create_routes",
    "format_sse",
]
