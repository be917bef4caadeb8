import argparse
import asyncio
import logging
import sys
from typing import Optional

from config import Config, load_config, load_policy_lists, load_webring
from crawler.crawler_core import Crawler
from crawler.http_fetcher import HttpFetcher
from crawler.precrawl import LinkGraphWalker
from db.postgres_store import PostgresStore
from errors import ConfigError
from ingest.parser import ingest
from utils import load_list

LOGGER = logging.getLogger("launcher")


def build_fetcher(cfg: Config) -> HttpFetcher:
    c = cfg.crawler
    return HttpFetcher(
        timeout_s=c.timeout_s,
        per_domain=c.per_domain_parallelism,
        delay_s=c.delay_ms / 1000,
        user_agent=c.user_agent,
        proxy=cfg.general.proxy,
    )


async def run_precrawl(cfg: Config) -> int:
    if not cfg.general.url:
        raise ConfigError("general.url is required for precrawl")
    walker = LinkGraphWalker(build_fetcher(cfg), load_list(cfg.crawler.banned_domains))
    found = await walker.walk(cfg.general.url)
    LOGGER.info("precrawl found %d webring members", found)
    return 0


async def run_crawl(cfg: Config) -> int:
    lists = load_policy_lists(cfg)
    links = load_webring(cfg.crawler.webring)
    if not links:
        raise ConfigError(f"no webring members in {cfg.crawler.webring}")
    c = cfg.crawler
    crawler = Crawler(
        links,
        lists,
        build_fetcher(cfg),
        root_url=cfg.general.url,
        concurrency=c.parallelism,
        max_depth=c.max_depth,
        queue_size=c.queue_size,
    )
    await crawler.run()
    return 0


async def run_ingest(cfg: Config, source: Optional[str]) -> int:
    lists = load_policy_lists(cfg)
    if not cfg.data.database:
        raise ConfigError("data.database (or DATABASE_URL) is required for ingest")
    store = PostgresStore(cfg.data.database)
    try:
        await store.connect()
        await ingest(
            store,
            source or cfg.data.source,
            lists.stopwords,
            lists.heuristics,
            batch_size=cfg.data.batch_size,
            word_batch_size=cfg.data.word_batch_size,
            atomic=cfg.data.atomic_batches,
        )
    finally:
        await store.close()
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Webring crawler and search index builder")
    p.add_argument("--config", default="config.toml", help="Path to the TOML config file.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("precrawl", help="Walk the link graph and print 'url | depth' webring members")
    sub.add_parser("crawl", help="Crawl the webring and print one record line per extracted fact")
    ing = sub.add_parser("ingest", help="Build the search index from crawl output")
    ing.add_argument("--source", help="Crawl output file, or '-' for stdin (default: data.source).")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(args.config)
        if args.cmd == "precrawl":
            return asyncio.run(run_precrawl(cfg))
        if args.cmd == "crawl":
            return asyncio.run(run_crawl(cfg))
        return asyncio.run(run_ingest(cfg, args.source))
    except ConfigError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\ninterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
