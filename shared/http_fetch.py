"""HTTP collaborator for fetching external payloads and pushing snapshots."""

import logging
from typing import Any, Optional

import httpx

from shared.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


class ExternalFetch:
    """Thin JSON GET/POST wrapper around httpx.AsyncClient."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0):
        """
        Initialize the fetcher.

        Args:
            client: Optional preconfigured client (tests pass one with a mock transport)
            timeout: Request timeout in seconds when a client is created here
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @retry_with_exponential_backoff(max_retries=2, exceptions=(httpx.TransportError,))
    async def get_json(self, url: str) -> Any:
        """
        GET a URL and decode its JSON body.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
            ValueError: If the body is not JSON
        """
        logger.info(f"Fetching {url}")
        response = await self.client.get(url)
        response.raise_for_status()
        return response.json()

    async def post_json(self, url: str, payload: Any) -> str:
        """
        POST a JSON body and return the response text.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
        """
        logger.info(f"Posting to {url}")
        response = await self.client.post(url, json=payload)
        response.raise_for_status()
        return response.text

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> 'ExternalFetch':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
