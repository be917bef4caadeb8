import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple
from urllib.parse import urlparse

from errors import ConfigError


def get_domain(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def normalize_domain(url: str) -> str:
    """Hostname with a leading ``www.`` removed, used for domain dedup."""
    d = get_domain(url)
    if d.startswith("www."):
        d = d[len("www."):]
    return d


def get_link(target: str) -> str:
    """Drop fragment and query, trim, and strip one trailing slash."""
    target = target.split("#", 1)[0]
    target = target.split("?", 1)[0]
    target = target.strip()
    return target[:-1] if target.endswith("/") else target


def with_scheme(url: str) -> str:
    return url if "://" in url else "https://" + url


_ws = re.compile(r"\s+")


def clean_text(text: str) -> str:
    return _ws.sub(" ", (text or "").strip())


def contains_any(needles: Iterable[str], haystack: str) -> bool:
    return any(n in haystack for n in needles)


def has_suffix(suffixes: Iterable[str], url: str) -> bool:
    low = url.lower()
    return any(low.endswith(s) for s in suffixes)


@dataclass(frozen=True)
class ListOptions:
    delimiter: str = "\n"
    default: Tuple[str, ...] = ()


NEWLINE_LIST = ListOptions()
PIPE_LIST = ListOptions(delimiter="|")


def load_list(path: str, options: ListOptions = NEWLINE_LIST) -> List[str]:
    """
    Read a delimited list file. Entries are trimmed and blanks dropped.
    An empty path (or an empty list) yields ``options.default``.
    """
    if not path:
        return list(options.default)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read list file {path}: {e}") from e

    items = [x.strip() for x in raw.split(options.delimiter)]
    items = [x for x in items if x]
    return items or list(options.default)
