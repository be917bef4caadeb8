import contextlib
import os
from typing import List, Optional
from urllib.parse import urlparse

import asyncpg
from dotenv import load_dotenv

from models import PageData, SearchFragment

load_dotenv()


SCHEMA = """
DROP TABLE IF EXISTS inverted_index, external_links, pages, domains, crawl;

CREATE TABLE domains (
    id     SERIAL PRIMARY KEY,
    domain TEXT NOT NULL UNIQUE
);

CREATE TABLE pages (
    id           SERIAL PRIMARY KEY,
    url          TEXT NOT NULL UNIQUE,
    title        TEXT NOT NULL DEFAULT '',
    about        TEXT NOT NULL DEFAULT '',
    about_source TEXT NOT NULL DEFAULT '',
    lang         TEXT NOT NULL DEFAULT '',
    depth        INTEGER NOT NULL DEFAULT 0,
    domain       TEXT NOT NULL REFERENCES domains (domain)
);

CREATE TABLE inverted_index (
    id    SERIAL PRIMARY KEY,
    word  TEXT NOT NULL,
    score INTEGER NOT NULL,
    url   TEXT NOT NULL REFERENCES pages (url)
);
CREATE INDEX inverted_index_word_idx ON inverted_index (word);

CREATE TABLE external_links (
    id  SERIAL PRIMARY KEY,
    url TEXT NOT NULL UNIQUE
);

CREATE TABLE crawl (
    id   SERIAL PRIMARY KEY,
    date TEXT NOT NULL
);
"""


def page_domain(url: str) -> str:
    return urlparse(url).netloc


class PostgresStore:
    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or os.environ["DATABASE_URL"]
        self.pool = None
        self._tx_con = None

    # -------------------- CONNECTION --------------------

    async def connect(self):
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.dsn)

    async def close(self):
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    @contextlib.asynccontextmanager
    async def _connection(self):
        # inside transaction() every statement shares the transaction's connection
        if self._tx_con is not None:
            yield self._tx_con
            return
        async with self.pool.acquire() as con:
            yield con

    @contextlib.asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as con:
            async with con.transaction():
                self._tx_con = con
                try:
                    yield con
                finally:
                    self._tx_con = None

    # -------------------- SCHEMA --------------------

    async def init_db(self):
        """Drop and recreate the index tables; every ingest starts from empty."""
        await self.connect()
        async with self._connection() as con:
            await con.execute(SCHEMA)

    async def update_crawl_date(self, date: str):
        async with self._connection() as con:
            await con.execute("INSERT INTO crawl (date) VALUES ($1)", date)

    # -------------------- INDEX --------------------

    async def insert_many_domains(self, pages: List[PageData]):
        q = "INSERT INTO domains (domain) VALUES ($1) ON CONFLICT (domain) DO NOTHING"
        domains = sorted({page_domain(p.url) for p in pages})
        if not domains:
            return
        async with self._connection() as con:
            await con.executemany(q, [(d,) for d in domains])

    async def insert_many_pages(self, pages: List[PageData]):
        q = """
        INSERT INTO pages (url, title, about, about_source, lang, depth, domain)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (url) DO NOTHING
        """
        if not pages:
            return
        rows = [(p.url, p.title, p.about, p.about_source, p.lang, p.depth, page_domain(p.url)) for p in pages]
        async with self._connection() as con:
            await con.executemany(q, rows)

    async def insert_many_words(self, fragments: List[SearchFragment]):
        q = "INSERT INTO inverted_index (word, score, url) VALUES ($1, $2, $3)"
        if not fragments:
            return
        async with self._connection() as con:
            await con.executemany(q, [(f.word, f.score, f.url) for f in fragments])

    async def insert_many_external_links(self, links: List[str]):
        q = "INSERT INTO external_links (url) VALUES ($1) ON CONFLICT (url) DO NOTHING"
        if not links:
            return
        async with self._connection() as con:
            await con.executemany(q, [(link,) for link in links])
