"""
HTTP client for token metadata documents.
"""

import json
from typing import Optional, Any

import httpx


class RemoteFetchError(Exception):
    """Metadata document could not be retrieved or decoded."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteFetcher:
    """
    Fetches JSON documents over HTTP.

    One AsyncClient is shared by all requests and closed with close().
    """

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize fetcher.

        Args:
            timeout: Request timeout in seconds
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    def _get_headers(self) -> dict:
        return {
            "accept": "application/json, */*;q=0.8",
            "user-agent": "nftmeta/0.1",
        }

    async def fetch_json(self, url: str) -> Any:
        """
        GET url and decode the body as JSON.

        Args:
            url: HTTP(S) URL

        Returns:
            Decoded JSON value

        Raises:
            RemoteFetchError: On non-2xx status, transport error or invalid JSON
        """
        try:
            response = await self.client.get(url, headers=self._get_headers())
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            raise RemoteFetchError(
                f"HTTP error! status: {e.response.status_code}",
                status_code=e.response.status_code
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise RemoteFetchError(f"Request error: {str(e)}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RemoteFetchError(f"Invalid JSON from {url}: {str(e)}", status_code=response.status_code)
