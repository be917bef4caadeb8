"""
Ingestion of the crawl line stream.

Each line is ``<token> <payload...> <url> <depth>``. Records for the same URL
are folded into one PageData; the page's "About" text is elected record by
record, in arrival order, by the guards in the ``_on_*`` handlers below.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterable, Callable, Collection, Dict, Iterable, List, Optional

import aiofiles

from errors import MalformedRecordError
from models import CrawlRecord, PageData, SearchFragment, TokenKind
from .batch import BatchCommitter
from .tokenizer import extract_path_segments, filter_common_words, partition_sentence

LOGGER = logging.getLogger(__name__)

PROGRESS_EVERY = 100_000
MIN_ABOUT_PARA_LEN = 20
PATH_SEGMENT_SCORE = 2


def parse_line(line: str) -> CrawlRecord:
    parts = line.rstrip("\r\n").split(" ")
    if len(parts) < 3:
        raise MalformedRecordError(f"too few fields: {line!r}")

    try:
        kind = TokenKind(parts[0])
    except ValueError:
        raise MalformedRecordError(f"unknown token {parts[0]!r}") from None

    try:
        depth = int(parts[-1])
    except ValueError:
        depth = 0
    url = parts[-2].removesuffix("/")
    if not url.startswith("http"):
        raise MalformedRecordError(f"not a page url: {url!r}")

    return CrawlRecord(kind=kind, payload=" ".join(parts[1:-2]), url=url, depth=depth)


@dataclass
class Contribution:
    """Words a single record adds to the index, at one score."""

    score: int
    words: List[str]


class AboutHeuristic:
    def __init__(self, disallowed: Iterable[str]):
        self.disallowed = {d.lower() for d in disallowed}

    def accepts(self, phrase: str) -> bool:
        return phrase not in self.disallowed and len(phrase) > MIN_ABOUT_PARA_LEN


class PageIngester:
    def __init__(self, committer: BatchCommitter, stopwords: Collection[str], heuristics: Iterable[str]):
        self.committer = committer
        self.stopwords = set(stopwords)
        self.heuristic = AboutHeuristic(heuristics)

        self.lines = 0
        self.skipped = 0
        self.words = 0

        self._handlers: Dict[TokenKind, Callable[[PageData, CrawlRecord], Optional[Contribution]]] = {
            TokenKind.TITLE: self._on_title,
            TokenKind.H1: self._on_h1,
            TokenKind.H2: self._on_subheading,
            TokenKind.H3: self._on_subheading,
            TokenKind.DESC: self._on_desc,
            TokenKind.OG_DESC: self._on_og_desc,
            TokenKind.PARA: self._on_para,
            TokenKind.LANG: self._on_lang,
            TokenKind.KEYWORDS: self._on_keywords,
            TokenKind.NON_WEBRING_LINK: self._on_external_link,
        }

    # -------------------- handlers --------------------

    @staticmethod
    def _set_about(page: PageData, record: CrawlRecord):
        page.about = record.payload
        page.about_source = record.kind.value

    def _words(self, record: CrawlRecord) -> List[str]:
        return partition_sentence(record.payload.lower())

    def _on_title(self, page, record):
        if not page.about:
            self._set_about(page, record)
        page.title = record.payload
        return Contribution(5, self._words(record))

    def _on_h1(self, page, record):
        if not page.about:
            self._set_about(page, record)
        return Contribution(15, self._words(record))

    def _on_subheading(self, page, record):
        return Contribution(15, self._words(record))

    def _on_desc(self, page, record):
        new = record.payload
        if len(page.about) < 30 and len(new) < 100 and len(new) > len(page.about):
            self._set_about(page, record)
        return Contribution(1, self._words(record))

    def _on_og_desc(self, page, record):
        self._set_about(page, record)
        return Contribution(1, self._words(record))

    def _on_para(self, page, record):
        new = record.payload
        long_enough = len(new) * 10 > len(page.about) * 7
        if page.about_source != TokenKind.OG_DESC.value or long_enough:
            if self.heuristic.accepts(new.lower()):
                self._set_about(page, record)
        return Contribution(1, self._words(record))

    def _on_lang(self, page, record):
        page.lang = record.payload
        return None

    def _on_keywords(self, page, record):
        payload = record.payload.lower().replace(", ", ",")
        return Contribution(1, payload.split(","))

    def _on_external_link(self, page, record):
        self.committer.add_external_link(record.payload)
        return None

    # -------------------- stream --------------------

    def _page_for(self, record: CrawlRecord) -> PageData:
        page = self.committer.pages.get(record.url)
        if page is None:
            page = PageData(url=record.url, depth=record.depth)
        return page

    async def feed(self, line: str):
        self.lines += 1
        if self.lines % PROGRESS_EVERY == 0:
            LOGGER.info("processed %d lines", self.lines)

        try:
            record = parse_line(line)
        except MalformedRecordError as e:
            self.skipped += 1
            LOGGER.warning("skipping malformed line %d: %s", self.lines, e)
            return

        handler = self._handlers.get(record.kind)
        if handler is None:
            return

        page = self._page_for(record)
        contribution = handler(page, record)
        self.committer.pages[record.url] = page

        fragments: List[SearchFragment] = []
        if contribution is not None:
            for word in filter_common_words(contribution.words, self.stopwords):
                fragments.append(SearchFragment(word=word, url=record.url, score=contribution.score))
            self.words += len(fragments)

        if record.kind is TokenKind.TITLE and not page.path_indexed:
            page.path_indexed = True
            for word in extract_path_segments(record.url.lower()):
                fragments.append(SearchFragment(word=word, url=record.url, score=PATH_SEGMENT_SCORE))

        self.committer.add_fragments(fragments)
        await self.committer.maybe_flush()

    async def feed_all(self, lines: AsyncIterable[str]):
        async for line in lines:
            await self.feed(line)
        await self.committer.flush()
        LOGGER.info("ingested %d words (%d lines, %d skipped)", self.words, self.lines, self.skipped)


async def _read_lines(source: str):
    if source == "-":
        async for line in aiofiles.stdin:
            yield line
        return
    async with aiofiles.open(source, "r", encoding="utf-8", errors="replace") as f:
        async for line in f:
            yield line


async def ingest(store, source: str, stopwords: Collection[str], heuristics: Iterable[str], *,
                 batch_size: int = 100, word_batch_size: int = 3000, atomic: bool = False) -> PageIngester:
    """Rebuild the index in ``store`` from the crawl output at ``source``."""
    await store.init_db()
    await store.update_crawl_date(datetime.now().strftime("%Y-%m-%d"))

    LOGGER.info("opening source file: %s", source)
    committer = BatchCommitter(store, batch_size=batch_size, word_batch_size=word_batch_size, atomic=atomic)
    ingester = PageIngester(committer, stopwords, heuristics)
    await ingester.feed_all(_read_lines(source))
    return ingester
