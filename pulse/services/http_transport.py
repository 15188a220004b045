"""
Thin aiohttp wrapper shared by the search, feed and Wikipedia clients.

Clients depend only on ``get(url, params, headers)`` returning an
``HttpResponse``, so tests can swap in a fake transport.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import aiohttp

from pulse.utils.error_monitoring import TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; PulseRetrieval/1.0; +https://github.com/pulse-retrieval)",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class HttpResponse:
    status: int
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport:
    """
    Issues GET requests over one reused aiohttp ClientSession.

    The session is created on first use unless one is supplied, and
    ``close()`` releases it. A closed session is replaced on the next request.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 30.0):
        self._session = session
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            logger.debug(f"🌐 Opened HTTP session (timeout {self.timeout}s)")
        return self._session

    async def get(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        merged_headers: Dict[str, str] = {**DEFAULT_HEADERS, **(headers or {})}
        session = await self._get_session()
        try:
            return await self._get(session, url, params, merged_headers)
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"GET {url} failed: {e}") from e

    @staticmethod
    async def _get(session, url, params, headers) -> HttpResponse:
        async with session.get(url, params=params, headers=headers) as resp:
            text = await resp.text(errors='replace')
            return HttpResponse(status=resp.status, text=text, url=str(resp.url))

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
