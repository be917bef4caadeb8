import contextlib
import logging
from typing import Dict, List, Protocol

from models import PageData, SearchFragment

LOGGER = logging.getLogger(__name__)


class IndexStore(Protocol):
    async def insert_many_domains(self, pages: List[PageData]): ...
    async def insert_many_pages(self, pages: List[PageData]): ...
    async def insert_many_words(self, fragments: List[SearchFragment]): ...
    async def insert_many_external_links(self, links: List[str]): ...
    def transaction(self) -> contextlib.AbstractAsyncContextManager: ...


class BatchCommitter:
    """
    Buffers pages, word fragments and external links and writes them in
    batches. A flush writes domains, then pages, then words, then links.

    With ``atomic=False`` a flush is best effort: if a later insert fails the
    earlier ones of the same flush stay committed. ``atomic=True`` runs each
    flush inside one store transaction.
    """

    def __init__(self, store: IndexStore, batch_size: int = 100, word_batch_size: int = 3000, atomic: bool = False):
        self.store = store
        self.batch_size = batch_size
        self.word_batch_size = word_batch_size
        self.atomic = atomic

        self.pages: Dict[str, PageData] = {}
        self.fragments: List[SearchFragment] = []
        self.external_links: List[str] = []
        self.flushes = 0

    def add_fragments(self, fragments: List[SearchFragment]):
        self.fragments.extend(fragments)

    def add_external_link(self, link: str):
        self.external_links.append(link)

    def is_full(self) -> bool:
        return len(self.pages) > self.batch_size

    async def maybe_flush(self):
        if self.is_full():
            await self.flush()

    async def flush(self):
        pages = list(self.pages.values())
        LOGGER.info(
            "starting to ingest batch (pages: %d, words: %d, links: %d)",
            len(pages), len(self.fragments), len(self.external_links),
        )
        ctx = self.store.transaction() if self.atomic else contextlib.nullcontext()
        try:
            async with ctx:
                await self._write(pages)
        except Exception:
            LOGGER.exception("batch insert failed (pages: %d)", len(pages))
            raise

        self.pages = {}
        self.fragments = []
        self.external_links = []
        self.flushes += 1
        LOGGER.info("finished ingesting batch")

    async def _write(self, pages: List[PageData]):
        await self.store.insert_many_domains(pages)
        await self.store.insert_many_pages(pages)
        for i in range(0, len(self.fragments), self.word_batch_size):
            await self.store.insert_many_words(self.fragments[i:i + self.word_batch_size])
        await self.store.insert_many_external_links(self.external_links)
