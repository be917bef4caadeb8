import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from errors import ConfigError, FetchError
from models import FetchResponse

LOGGER = logging.getLogger(__name__)


def validate_proxy(proxy: Optional[str]) -> Optional[str]:
    if not proxy:
        return None
    try:
        p = urlparse(proxy)
    except ValueError as e:
        raise ConfigError(f"invalid proxy url {proxy!r}: {e}") from e
    if p.scheme not in ("http", "https") or not p.hostname:
        raise ConfigError(f"invalid proxy url {proxy!r}")
    return proxy


class DomainLimiter:
    """Per-domain concurrency cap plus a minimum spacing between request starts."""

    def __init__(self, per_domain: int, delay_s: float = 0.0):
        self.per_domain = per_domain
        self.delay_s = delay_s
        self._locks: dict[str, asyncio.Semaphore] = {}
        self._next_start: dict[str, float] = {}

    def sem(self, domain: str) -> asyncio.Semaphore:
        if domain not in self._locks:
            self._locks[domain] = asyncio.Semaphore(self.per_domain)
        return self._locks[domain]

    async def wait_turn(self, domain: str):
        if self.delay_s <= 0:
            return
        now = asyncio.get_running_loop().time()
        start = max(now, self._next_start.get(domain, now))
        self._next_start[domain] = start + self.delay_s
        if start > now:
            await asyncio.sleep(start - now)


class HttpFetcher:
    """
    One shared aiohttp session. Constructed once and handed to both the
    precrawl walker and the crawl engine, so the proxy lives here and
    nowhere else.
    """

    def __init__(
        self,
        timeout_s: float = 20,
        per_domain: int = 3,
        delay_s: float = 0.2,
        user_agent: str = "MoldWeb_crawler",
        proxy: Optional[str] = None,
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None
        self._ua = user_agent
        self._proxy = validate_proxy(proxy)
        self._limiter = DomainLimiter(per_domain, delay_s)

    async def open(self):
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self._ua}
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def fetch(self, url: str, domain: Optional[str] = None) -> FetchResponse:
        """
        GET ``url`` following redirects. Any HTTP status is returned as a
        response; transport failures raise FetchError.
        If domain is provided, limits concurrency and spacing per-domain.
        """
        await self.open()
        assert self._session is not None

        key = domain or "_"
        async with self._limiter.sem(key):
            await self._limiter.wait_turn(key)
            try:
                async with self._session.get(url, allow_redirects=True, proxy=self._proxy) as resp:
                    body = await resp.read()
                    return FetchResponse(
                        url=str(resp.url),
                        status=resp.status,
                        content_type=resp.headers.get("Content-Type", "") or "",
                        body=body,
                        charset=resp.charset,
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                raise FetchError(url, str(e) or type(e).__name__) from e
