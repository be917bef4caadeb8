"""Tests for ingest.parser and ingest.batch."""

from __future__ import annotations

import contextlib
from typing import List
from unittest.mock import AsyncMock

import pytest

from errors import MalformedRecordError
from ingest.batch import BatchCommitter
from ingest.parser import PageIngester, ingest, parse_line
from models import TokenKind


class FakeStore:
    def __init__(self):
        self.calls: List[tuple] = []
        self.transactions = 0
        self.fail_on = None

    async def init_db(self):
        self.calls.append(("init_db",))

    async def update_crawl_date(self, date):
        self.calls.append(("date", date))

    async def insert_many_domains(self, pages):
        self.calls.append(("domains", list(pages)))

    async def insert_many_pages(self, pages):
        self.calls.append(("pages", list(pages)))

    async def insert_many_words(self, fragments):
        if self.fail_on == "words":
            raise RuntimeError("disk full")
        self.calls.append(("words", list(fragments)))

    async def insert_many_external_links(self, links):
        self.calls.append(("links", list(links)))

    @contextlib.asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self

    def kinds(self):
        return [c[0] for c in self.calls]

    def stored_pages(self):
        return {p.url: p for c in self.calls if c[0] == "pages" for p in c[1]}

    def stored_words(self):
        return [f for c in self.calls if c[0] == "words" for f in c[1]]


async def feed(lines, stopwords=(), heuristics=(), batch_size=100):
    store = FakeStore()
    committer = BatchCommitter(store, batch_size=batch_size)
    ingester = PageIngester(committer, stopwords, heuristics)

    async def source():
        for line in lines:
            yield line

    await ingester.feed_all(source())
    return store, committer, ingester


class TestParseLine:
    def test_fields(self):
        rec = parse_line("title My Home Page https://a.com/ 2\n")
        assert rec.kind is TokenKind.TITLE
        assert rec.payload == "My Home Page"
        assert rec.url == "https://a.com"
        assert rec.depth == 2

    def test_bad_depth_is_zero(self):
        assert parse_line("h1 hi https://a.com x").depth == 0

    def test_empty_payload(self):
        rec = parse_line("keywords  https://a.com 1")
        assert rec.payload == ""

    @pytest.mark.parametrize("line", ["title https://a.com", "", "title hi notaurl 1", "bogus x https://a.com 1"])
    def test_malformed(self, line):
        with pytest.raises(MalformedRecordError):
            parse_line(line)


class TestAboutPrecedence:
    @pytest.mark.asyncio
    async def test_og_desc_beats_later_para(self):
        store, _, _ = await feed([
            "desc short https://a.com 1",
            "og-desc long desc https://a.com 1",
            "para whatever https://a.com 1",
        ])
        page = store.stored_pages()["https://a.com"]
        assert page.about == "long desc"
        assert page.about_source == "og-desc"

    @pytest.mark.asyncio
    async def test_para_replaces_og_desc_when_long_enough(self):
        para = "a considerably longer paragraph describing this site"
        store, _, _ = await feed([
            "og-desc short summary here https://a.com 1",
            f"para {para} https://a.com 1",
        ])
        page = store.stored_pages()["https://a.com"]
        assert page.about == para
        assert page.about_source == "para"

    @pytest.mark.asyncio
    async def test_para_heuristic_rejects(self):
        blocked = "this site uses cookies to work properly"
        store, _, _ = await feed(
            ["title Home https://a.com 1", f"para {blocked.title()} https://a.com 1", "para too short https://a.com 1"],
            heuristics=[blocked],
        )
        page = store.stored_pages()["https://a.com"]
        assert page.about == "Home"
        assert page.about_source == "title"

    @pytest.mark.asyncio
    async def test_title_and_h1_only_fill_empty(self):
        store, _, _ = await feed([
            "h1 Welcome https://a.com 1",
            "title Site Title https://a.com 1",
        ])
        page = store.stored_pages()["https://a.com"]
        assert page.about == "Welcome"
        assert page.about_source == "h1"
        assert page.title == "Site Title"

    @pytest.mark.asyncio
    async def test_desc_guard(self):
        store, _, _ = await feed([
            "title Hi https://a.com 1",
            "desc A short description https://a.com 1",
            "desc An even longer but still short description https://a.com 1",
        ])
        page = store.stored_pages()["https://a.com"]
        # About is 19 chars after the first desc (<30), so the longer one still wins
        assert page.about == "An even longer but still short description"

    @pytest.mark.asyncio
    async def test_lang_and_first_depth(self):
        store, _, _ = await feed([
            "lang en-GB https://a.com/page 2",
            "title Page https://a.com/page/ 5",
        ])
        page = store.stored_pages()["https://a.com/page"]
        assert page.lang == "en-GB"
        assert page.depth == 2


class TestFragments:
    @pytest.mark.asyncio
    async def test_scores(self):
        store, _, ingester = await feed(
            [
                "title The Gardens https://a.com/notes/plant-care.html 1",
                "h2 Watering https://a.com/notes/plant-care.html 1",
                "keywords Ferns, moss,the https://a.com/notes/plant-care.html 1",
            ],
            stopwords={"the"},
        )
        got = {(f.word, f.score) for f in store.stored_words()}
        assert ("garden", 5) in got
        assert ("watering", 15) in got
        assert ("fern", 1) in got
        assert ("moss", 1) in got
        assert {("notes", 2), ("plant", 2), ("care", 2)} <= got
        assert not any(w == "the" for w, _ in got)
        assert ingester.words == 4

    @pytest.mark.asyncio
    async def test_path_segments_once_per_url(self):
        store, _, _ = await feed([
            "title One https://a.com/about 1",
            "title Two https://a.com/about 1",
        ])
        path_words = [f for f in store.stored_words() if f.score == 2]
        assert [f.word for f in path_words] == ["about"]

    @pytest.mark.asyncio
    async def test_path_index_state_released_on_flush(self):
        store = FakeStore()
        committer = BatchCommitter(store, batch_size=1)
        ingester = PageIngester(committer, (), ())

        await ingester.feed("title One https://a.com/about 1")
        assert committer.pages["https://a.com/about"].path_indexed
        await ingester.feed("title Two https://b.com/blog 1")
        assert committer.flushes == 1
        assert committer.pages == {}
        assert [f.word for f in store.stored_words() if f.score == 2] == ["about", "blog"]

    @pytest.mark.asyncio
    async def test_external_links(self):
        store, _, _ = await feed(["non-webring-link https://other.net/x https://a.com 1"])
        links = [c[1] for c in store.calls if c[0] == "links"]
        assert links == [["https://other.net/x"]]

    @pytest.mark.asyncio
    async def test_ignored_tokens(self):
        store, _, _ = await feed([
            "para-just-p Some paragraph https://a.com 1",
            "webring-link https://b.com https://a.com 1",
        ])
        assert store.stored_pages() == {}
        assert store.stored_words() == []


class TestMalformedLines:
    @pytest.mark.asyncio
    async def test_short_line_skipped(self):
        store, _, ingester = await feed([
            "title https://a.com",
            "title Real https://b.com 1",
        ])
        assert set(store.stored_pages()) == {"https://b.com"}
        assert ingester.skipped == 1
        assert ingester.lines == 2


class TestBatchBoundary:
    @pytest.mark.asyncio
    async def test_250_pages_three_flushes(self):
        lines = [f"title Page {i} https://a.com/p{i} 1" for i in range(250)]
        store, committer, _ = await feed(lines, batch_size=100)
        assert committer.flushes == 3
        page_batches = [len(c[1]) for c in store.calls if c[0] == "pages"]
        assert page_batches == [101, 101, 48]
        assert len(store.stored_pages()) == 250

    @pytest.mark.asyncio
    async def test_final_flush_always_runs(self):
        store, committer, _ = await feed([])
        assert committer.flushes == 1
        assert store.kinds() == ["domains", "pages", "links"]

    @pytest.mark.asyncio
    async def test_flush_order_and_word_sub_batches(self):
        store = FakeStore()
        committer = BatchCommitter(store, word_batch_size=3000)
        ingester = PageIngester(committer, (), ())
        words = " ".join(f"word{i}" for i in range(7000))
        await ingester.feed(f"h2 {words} https://a.com 1")
        await committer.flush()
        assert store.kinds() == ["domains", "pages", "words", "words", "words", "links"]
        assert [len(c[1]) for c in store.calls if c[0] == "words"] == [3000, 3000, 1000]

    @pytest.mark.asyncio
    async def test_best_effort_flush_keeps_earlier_inserts(self):
        store = FakeStore()
        store.fail_on = "words"
        committer = BatchCommitter(store)
        committer.pages["https://a.com"] = object()
        committer.add_fragments([object()])
        with pytest.raises(RuntimeError):
            await committer.flush()
        assert store.kinds() == ["domains", "pages"]
        assert committer.flushes == 0
        assert store.transactions == 0

    @pytest.mark.asyncio
    async def test_atomic_flush_uses_transaction(self):
        store = FakeStore()
        committer = BatchCommitter(store, atomic=True)
        await committer.flush()
        await committer.flush()
        assert store.transactions == 2


class TestIngestRun:
    @pytest.mark.asyncio
    async def test_ingest_from_file(self, tmp_path):
        src = tmp_path / "crawled.txt"
        src.write_text(
            "title Hello World https://a.com/ 1\n"
            "og-desc A page about things https://a.com 1\n"
            "bad\n",
            encoding="utf-8",
        )
        store = FakeStore()
        ingester = await ingest(store, str(src), ["the"], [])
        assert store.kinds()[:2] == ["init_db", "date"]
        page = store.stored_pages()["https://a.com"]
        assert page.about == "A page about things"
        assert ingester.skipped == 1

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, tmp_path):
        src = tmp_path / "crawled.txt"
        src.write_text("title Hello https://a.com 1\n", encoding="utf-8")
        store = FakeStore()
        store.insert_many_pages = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await ingest(store, str(src), [], [])
