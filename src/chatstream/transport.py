"""HTTP transport for the agent service, built on httpx."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from chatstream.config import ClientConfig
from chatstream.exceptions import TransportError
from chatstream.observability import get_logger

logger = get_logger(__name__)


class HTTPTransport:
    """Issues requests against the agent service.

    Credentials and timeouts are fixed at construction and attached to every
    request. A caller-supplied ``httpx.AsyncClient`` is used as-is and left
    open by :meth:`close`.

    Example:
        transport = HTTPTransport("http://localhost:8080", auth=("admin", "secret"))
        async with transport.stream("/api/agent/chat/stream", {"message": "hi"}) as chunks:
            async for chunk in chunks:
                ...
    """

    def __init__(
        self,
        base_url: str,
        auth: tuple[str, str] | None = None,
        timeout: httpx.Timeout | float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize transport.

        Args:
            base_url: Service root, e.g. "http://localhost:8080"
            auth: Basic-auth username and password
            timeout: Request timeout; 10 seconds when None
            client: Shared client to send requests with
        """
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(*auth) if auth else None
        self.timeout = timeout if timeout is not None else httpx.Timeout(10.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        client: httpx.AsyncClient | None = None,
    ) -> "HTTPTransport":
        """Create a transport from client configuration."""
        auth = (config.auth.username, config.auth.password) if config.auth else None
        timeout = httpx.Timeout(config.timeout.read, connect=config.timeout.connect)
        return cls(config.base_url, auth=auth, timeout=timeout, client=client)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        try:
            return await self._client.send(request, auth=self.auth, stream=stream)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {request.url} failed: {e}") from e

    @asynccontextmanager
    async def stream(
        self,
        path: str,
        payload: dict[str, Any],
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """POST ``payload`` and expose the response body as chunks.

        The response is closed when the context exits, on every path.

        Raises:
            TransportError: Connection failure or a non-success status. Raised
                on entry, before any chunk is read.
        """
        request = self._client.build_request(
            "POST",
            self.url(path),
            json=payload,
            headers={"Accept": "text/event-stream"},
            timeout=self.timeout,
        )
        response = await self._send(request, stream=True)
        try:
            if not response.is_success:
                raise TransportError(
                    f"HTTP error! status: {response.status_code}",
                    status_code=response.status_code,
                )
            logger.debug("Stream opened", context={"status": response.status_code})
            yield self._iter_chunks(response)
        finally:
            await response.aclose()

    async def _iter_chunks(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Reading response body failed: {e}") from e

    async def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        """POST ``payload`` and return the decoded JSON response."""
        request = self._client.build_request(
            "POST", self.url(path), json=payload, timeout=self.timeout,
        )
        response = await self._send(request)
        if not response.is_success:
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Response from {path} is not JSON: {e}") from e

    async def get(self, path: str) -> httpx.Response:
        request = self._client.build_request("GET", self.url(path), timeout=self.timeout)
        return await self._send(request)

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
