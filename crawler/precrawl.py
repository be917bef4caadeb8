"""
Precrawl: discover webring members by walking a federated link graph.

Each graph document lists ``spores`` (candidate member sites) and ``hyphae``
(further graph documents). Hyphae are walked breadth-first, one level at a
time; every new spore is written as ``<url> | <depth>`` where depth is the
level it was found on (the bootstrap document is level 1).
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Set

from pydantic import ValidationError

from errors import ConfigError, FetchError
from models import LinkGraphNode
from utils import get_domain, get_link, normalize_domain, with_scheme
from .http_fetcher import HttpFetcher
from .record_writer import RecordWriter

LOGGER = logging.getLogger(__name__)


class LinkGraphWalker:
    def __init__(self, fetcher: HttpFetcher, banned_domains: Iterable[str], writer: Optional[RecordWriter] = None):
        self.fetcher = fetcher
        self.banned: Set[str] = set(banned_domains)
        self.writer = writer or RecordWriter()

        self.already_crawled: Set[str] = set()
        self.seen_domains: Set[str] = set()
        self.explored: Set[str] = set()
        self.depth = 1

    async def _bootstrap(self, url: str) -> Optional[LinkGraphNode]:
        try:
            resp = await self.fetcher.fetch(url)
        except FetchError as e:
            raise ConfigError(f"cannot fetch bootstrap document {url}: {e.reason}") from e
        if resp.status != 200:
            raise ConfigError(f"bootstrap document {url} returned status {resp.status}")
        try:
            return LinkGraphNode.model_validate_json(resp.body)
        except ValidationError as e:
            LOGGER.error("Error decoding JSON from %s: %s", url, e)
            return None

    async def _fetch_node(self, url: str) -> Optional[LinkGraphNode]:
        try:
            resp = await self.fetcher.fetch(url)
        except FetchError as e:
            LOGGER.warning("Error fetching %s: %s", url, e.reason)
            return None
        if resp.status != 200:
            LOGGER.warning("Error fetching %s: status %d", url, resp.status)
            return None
        try:
            return LinkGraphNode.model_validate_json(resp.body)
        except ValidationError as e:
            LOGGER.warning("Error decoding JSON from %s: %s", url, e)
            return None

    def _take_spores(self, spores: List[str]):
        for item in spores:
            link = get_link(item)
            if not link:
                continue
            link = with_scheme(link)
            domain = get_domain(link)
            if not domain:
                LOGGER.warning("skipping spore without a hostname: %r", item)
                continue
            normalized = normalize_domain(link)
            if domain in self.banned or link in self.already_crawled or normalized in self.seen_domains:
                continue
            self.writer.webring_member(link, self.depth)
            self.already_crawled.add(link)
            self.seen_domains.add(normalized)

    def _new_hyphae(self, hyphae: List[str], pending: List[str]):
        for item in hyphae:
            link = get_link(item)
            if link and link not in self.explored and link not in pending:
                pending.append(link)

    async def walk(self, root_url: str) -> int:
        """Run the whole precrawl; returns the number of members written."""
        await self.fetcher.open()
        try:
            root = await self._bootstrap(root_url)
            if root is None:
                return 0

            self.explored.add(get_link(root_url))
            self._take_spores(root.spores)
            level: List[str] = []
            self._new_hyphae(root.hyphae, level)

            while level:
                self.depth += 1
                self.explored.update(level)
                nodes = await asyncio.gather(*(self._fetch_node(u) for u in level))

                next_level: List[str] = []
                for node in nodes:
                    if node is None:
                        continue
                    self._take_spores(node.spores)
                    self._new_hyphae(node.hyphae, next_level)
                LOGGER.info("precrawl level %d: %d documents", self.depth, len(level))
                level = next_level
        finally:
            await self.fetcher.close()
            self.writer.flush()

        return len(self.already_crawled)
