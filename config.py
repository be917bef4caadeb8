"""
Run configuration.

A TOML file with three tables::

    [general]   url, proxy
    [data]      source, database, heuristics, wordlist
    [crawler]   webring, banned_domains, banned_suffixes, boring_words,
                boring_domains, preview_queries, plus crawl tunables

Unknown keys are ignored. ``DATABASE_URL`` from the environment (or ``.env``)
is used when ``data.database`` is empty.
"""

import os
import tomllib
from dataclasses import dataclass, field, fields
from typing import List

from dotenv import load_dotenv

from errors import ConfigError
from models import PolicyLists, WebringLink
from utils import NEWLINE_LIST, PIPE_LIST, ListOptions, load_list, with_scheme

DEFAULT_PREVIEW_QUERIES = ("main p", "article p", "section p", "p")


@dataclass
class GeneralConfig:
    url: str = ""
    proxy: str = ""


@dataclass
class DataConfig:
    source: str = "data/crawled.txt"
    database: str = ""
    heuristics: str = ""
    wordlist: str = ""

    batch_size: int = 100
    word_batch_size: int = 3000
    atomic_batches: bool = False


@dataclass
class CrawlerConfig:
    webring: str = "data/webring.txt"
    banned_domains: str = ""
    banned_suffixes: str = ""
    boring_words: str = ""
    boring_domains: str = ""
    preview_queries: str = ""

    user_agent: str = "MoldWeb_crawler"
    parallelism: int = 5
    per_domain_parallelism: int = 3
    delay_ms: int = 200
    max_depth: int = 3
    queue_size: int = 100_000
    timeout_s: float = 20.0


@dataclass
class Config:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    data: DataConfig = field(default_factory=DataConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)


def _filter_for(cls, raw) -> dict:
    allowed = {f.name for f in fields(cls)}
    return {k: v for k, v in (raw or {}).items() if k in allowed}


def load_config(path: str) -> Config:
    load_dotenv()
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    try:
        cfg = Config(
            general=GeneralConfig(**_filter_for(GeneralConfig, raw.get("general"))),
            data=DataConfig(**_filter_for(DataConfig, raw.get("data"))),
            crawler=CrawlerConfig(**_filter_for(CrawlerConfig, raw.get("crawler"))),
        )
    except TypeError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    if not cfg.data.database:
        cfg.data.database = os.environ.get("DATABASE_URL", "")
    return cfg


def load_policy_lists(cfg: Config) -> PolicyLists:
    c = cfg.crawler
    return PolicyLists(
        banned_domains=load_list(c.banned_domains),
        banned_suffixes=[s.lower() for s in load_list(c.banned_suffixes)],
        boring_domains=load_list(c.boring_domains),
        boring_words=load_list(c.boring_words),
        heuristics=load_list(cfg.data.heuristics),
        preview_queries=load_list(c.preview_queries, ListOptions(default=DEFAULT_PREVIEW_QUERIES)),
        stopwords=load_list(cfg.data.wordlist, PIPE_LIST),
    )


def parse_webring_line(line: str):
    parts = line.split(" | ")
    if len(parts) != 2:
        return None
    url = parts[0].strip()
    if not url:
        return None
    url = with_scheme(url)
    try:
        depth = int(parts[1].strip())
    except ValueError:
        depth = 1
    return WebringLink(url=url, depth=depth)


def load_webring(path: str) -> List[WebringLink]:
    links = []
    for line in load_list(path, NEWLINE_LIST):
        link = parse_webring_line(line)
        if link is not None:
            links.append(link)
    return links
