"""Async HTTP client wrapper with per-attempt timeout configuration."""

from typing import Any, Dict, List, Optional, Tuple

import httpx


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - A fixed timeout applied to every individual attempt
    - Connection pooling via httpx
    - Context manager for proper lifecycle management
    - An injectable transport for tests (MockTransport / ASGITransport)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        follow_redirects: bool = True
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Timeout in seconds for a single request attempt
            transport: Optional custom transport
            follow_redirects: Whether to follow 3xx responses
        """
        self.timeout = timeout
        self.transport = transport
        self.follow_redirects = follow_redirects
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Enter async context manager."""
        await self.open()
        return self

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
                follow_redirects=self.follow_redirects
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, str]]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> httpx.Response:
        """
        Perform a single request attempt.

        Args:
            method: HTTP method
            url: URL to request
            params: Query parameters as ordered pairs
            headers: Request headers
            **kwargs: Additional arguments for httpx

        Returns:
            HTTP response
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        return await self._client.request(
            method,
            url,
            params=params,
            headers=headers,
            timeout=self.timeout,
            **kwargs
        )
