"""REST client for the chat backend."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import quote

import aiohttp

from ..chat.errors import RemoteFetchFailure

logger = logging.getLogger(__name__)

# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
REQUEST_TIMEOUT = 15  # seconds

T = TypeVar("T")


async def safe_json(resp: aiohttp.ClientResponse) -> Any:
    """Parse JSON from a response, returning None for HTML error pages or undecodable bodies."""
    try:
        return await resp.json()
    except (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class ChatApiClient:
    """Request/response calls against the chat backend.

    Every failure is raised as RemoteFetchFailure; callers decide how to
    degrade.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers={"Content-Type": "application/json"}
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            try:
                await self._session.close()
            finally:
                self._session = None

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def get_channel(self, channel_id: str) -> dict:
        data = await self._get_json(f"/channels/{quote(channel_id, safe='')}")
        return data if isinstance(data, dict) else {}

    async def get_moderators(self, channel_id: str) -> list[dict]:
        data = await self._get_json(f"/chat/moderators/{quote(channel_id, safe='')}")
        return _as_list(data)

    async def get_messages(self, channel_id: str, limit: int = 50) -> list[dict]:
        data = await self._get_json(
            f"/chat/messages/{quote(channel_id, safe='')}", params={"limit": str(limit)}
        )
        return _as_list(data)

    async def get_user(self, user_id: str) -> dict:
        data = await self._get_json(f"/users/{quote(user_id, safe='')}")
        return data if isinstance(data, dict) else {}

    async def get_global_emotes(self) -> list[dict]:
        return _as_list(await self._get_json("/emotes/global"))

    async def get_channel_emotes(self, channel_id: str) -> list[dict]:
        return _as_list(await self._get_json(f"/emotes/channel/{quote(channel_id, safe='')}"))

    async def get_tier_emotes(self, tier: str) -> list[dict]:
        return _as_list(await self._get_json(f"/emotes/tier/{quote(tier, safe='')}"))

    async def search_emotes(self, query: str) -> list[dict]:
        return _as_list(await self._get_json("/emotes/search", params={"q": query}))

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self.base_url}{path}"

        async def attempt() -> Any:
            async with self.session.get(url, params=params, headers=self._headers()) as resp:
                if self._is_retryable_status(resp.status):
                    resp.raise_for_status()
                if not 200 <= resp.status < 300:
                    raise RemoteFetchFailure(f"GET {path} failed: {resp.status}", resp.status)
                data = await safe_json(resp)
                if data is None:
                    raise RemoteFetchFailure(f"GET {path} returned an unreadable body")
                return data

        try:
            return await self._retry_with_backoff(attempt)
        except aiohttp.ClientResponseError as e:
            raise RemoteFetchFailure(f"GET {path} failed: {e.status}", e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteFetchFailure(f"GET {path} failed: {e}") from e

    async def _retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        max_delay: float = DEFAULT_MAX_DELAY,
        retryable_exceptions: tuple[type[Exception], ...] = (
            aiohttp.ClientError,
            asyncio.TimeoutError,
        ),
    ) -> T:
        """Execute an operation with exponential backoff retry.

        Raises:
            The last exception if all retries fail.
        """
        last_exception: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                return await operation()
            except retryable_exceptions as e:
                last_exception = e

                if attempt < self._max_retries:
                    delay = min(self._base_delay * (2**attempt), max_delay)
                    logger.warning(
                        f"Attempt {attempt + 1}/{self._max_retries + 1} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"All {self._max_retries + 1} attempts failed. Last error: {e}"
                    )

        raise last_exception  # type: ignore[misc]

    def _is_retryable_status(self, status: int) -> bool:
        """Server errors (5xx) and rate limiting (429) are worth retrying."""
        return status >= 500 or status == 429


def _as_list(data: Any) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []
