import asyncio
import logging
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from errors import FetchError
from models import FetchResponse, PolicyLists, TokenKind, UrlContext, WebringLink
from utils import contains_any, get_domain
from .content_extractor import ContentExtractor
from .http_fetcher import HttpFetcher
from .link_extractor import LinkExtractor, document_base, resolve_link
from .record_writer import RecordWriter

LOGGER = logging.getLogger(__name__)

TRIVIAL_PATHS = ("", "/", "/index.html")


def decode_html(resp: FetchResponse) -> str:
    if resp.charset:
        try:
            return resp.body.decode(resp.charset)
        except (LookupError, UnicodeDecodeError):
            pass
    return resp.body.decode("utf-8", errors="replace")


def precrawl_depths(links: List[WebringLink]) -> Dict[str, int]:
    """hostname -> depth; the first member listed for a hostname wins."""
    depths: Dict[str, int] = {}
    for link in links:
        host = get_domain(link.url)
        if host and host not in depths:
            depths[host] = link.depth
    return depths


def find_pathsites(links: List[WebringLink]) -> List[str]:
    """
    Members listed with a path (e.g. https://example.com/site/lupin) share
    their host with others; only descendants of that path are crawled.
    """
    out = []
    for link in links:
        try:
            path = urlparse(link.url).path
        except ValueError:
            continue
        if path not in TRIVIAL_PATHS:
            out.append(link.url)
    return out


def is_usable_status(status: int) -> bool:
    # 100 itself is rejected too.
    return 100 < status < 400


class Crawler:
    def __init__(
        self,
        links: List[WebringLink],
        lists: PolicyLists,
        fetcher: HttpFetcher,
        writer: Optional[RecordWriter] = None,
        *,
        root_url: str = "",
        concurrency: int = 5,
        max_depth: int = 3,
        queue_size: int = 100_000,
    ):
        self.links = links
        self.lists = lists
        self.fetcher = fetcher
        self.writer = writer or RecordWriter()
        self.concurrency = concurrency
        self.max_depth = max_depth
        self.queue_size = queue_size

        self.depths = precrawl_depths(links)
        self.domains: Set[str] = set(self.depths)
        self.pathsites = find_pathsites(links)
        self.banned: Set[str] = set(lists.banned_domains)
        self.root_domain = get_domain(root_url)

        self.extractor = ContentExtractor(lists.preview_queries, lists.heuristics)
        self.link_extractor = LinkExtractor()

        self.enqueued: Set[str] = set()
        self.visited: Set[str] = set()
        self.dropped = 0
        self._queue: Optional[asyncio.Queue] = None

    # -------------------- queueing layer --------------------

    def _allowed(self, url: str) -> bool:
        host = get_domain(url)
        if not host or host in self.banned:
            return False
        if self.domains and host not in self.domains:
            return False
        return True

    def enqueue(self, url: str, depth: int) -> bool:
        assert self._queue is not None
        if depth > self.max_depth:
            return False
        if url in self.enqueued or url in self.visited or not self._allowed(url):
            return False
        try:
            self._queue.put_nowait(UrlContext(url, depth))
        except asyncio.QueueFull:
            self.dropped += 1
            LOGGER.warning("queue full, dropping %s", url)
            return False
        self.enqueued.add(url)
        return True

    def in_pathsite(self, url: str) -> bool:
        """A host listed with paths is crawled only below one of those paths."""
        host = get_domain(url)
        sites = [site for site in self.pathsites if get_domain(site) == host]
        return not sites or any(url.startswith(site) for site in sites)

    # -------------------- page handling --------------------

    def _log_link(self, link: str, outgoing: str, current: str, page_url: str, depth: int):
        if contains_any(self.lists.boring_words, link) or contains_any(self.lists.boring_domains, link):
            return
        if outgoing not in self.domains:
            self.writer.record(TokenKind.NON_WEBRING_LINK, link, page_url, depth)
        elif outgoing != current and outgoing != self.root_domain and current != self.root_domain:
            # someone in the webring linked to someone else in it
            self.writer.record(TokenKind.WEBRING_LINK, link, page_url, depth)

    def handle_page(self, ctx: UrlContext, resp: FetchResponse):
        page_url = resp.url
        soup = BeautifulSoup(decode_html(resp), "html.parser")
        current = get_domain(page_url)
        depth = self.depths.get(current, 0)
        base = document_base(soup, page_url)

        for href in self.link_extractor.extract(soup):
            link = resolve_link(href, base, self.lists.banned_suffixes)
            if link is None:
                continue
            outgoing = get_domain(link)
            self._log_link(link, outgoing, current, page_url, depth)

            if self.in_pathsite(link):
                self.enqueue(link, ctx.depth + 1)

        for kind, text in self.extractor.extract(soup):
            self.writer.record(kind, text, page_url, depth)

    async def _worker(self, wid: int, queue: "asyncio.Queue[UrlContext]"):
        try:
            while True:
                ctx = await queue.get()
                try:
                    await self._visit(wid, ctx)
                except Exception:
                    LOGGER.exception("[w%d] failed processing %s", wid, ctx.url)
                finally:
                    queue.task_done()
        except asyncio.CancelledError:
            return

    async def _visit(self, wid: int, ctx: UrlContext):
        if ctx.url in self.visited:
            return
        self.visited.add(ctx.url)
        LOGGER.debug("[w%d] FETCH depth=%d %s", wid, ctx.depth, ctx.url)

        try:
            resp = await self.fetcher.fetch(ctx.url, domain=get_domain(ctx.url))
        except FetchError as e:
            LOGGER.warning("[w%d] fetch failed %s", wid, e)
            return

        if resp.url != ctx.url:
            if resp.url in self.visited:
                return
            self.visited.add(resp.url)
            # a redirect must not escape the domain or pathsite policy
            if not self._allowed(resp.url):
                return
            if not self.in_pathsite(resp.url):
                return

        if not is_usable_status(resp.status):
            LOGGER.info("[w%d] status %d for %s", wid, resp.status, ctx.url)
            return
        if "text/html" not in resp.content_type.lower():
            return

        self.handle_page(ctx, resp)

    async def run(self):
        queue: asyncio.Queue[UrlContext] = asyncio.Queue(maxsize=self.queue_size)
        self._queue = queue
        workers: List[asyncio.Task] = []
        try:
            await self.fetcher.open()
            for link in self.links:
                self.enqueue(link.url, 1)

            workers = [asyncio.create_task(self._worker(i + 1, queue)) for i in range(self.concurrency)]
            await queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            await self.fetcher.close()
            self.writer.flush()

        LOGGER.info(
            "crawl finished: %d pages visited, %d lines written, %d urls dropped",
            len(self.visited), self.writer.lines, self.dropped,
        )
