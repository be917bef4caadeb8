from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from utils import get_link, has_suffix

NON_NAVIGABLE = ("javascript:", "mailto:", "tel:", "data:")


def document_base(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is None:
        return page_url
    return urljoin(page_url, base["href"].strip())


def resolve_link(href: str, base_url: str, banned_suffixes: List[str]) -> Optional[str]:
    """
    Canonicalize an anchor target the way the crawl policy compares links:
    fragment, query and trailing slash removed, then made absolute.
    Returns None for links the crawl never follows.
    """
    link = get_link(href or "")
    if not link or link.lower().startswith(NON_NAVIGABLE):
        return None
    if has_suffix(banned_suffixes, link):
        return None
    try:
        absolute = urljoin(base_url, link)
    except ValueError:
        return None
    if not absolute.startswith(("http://", "https://")):
        return None
    return absolute


class LinkExtractor:
    def extract(self, soup: BeautifulSoup) -> List[str]:
        links = []
        for a in soup.select("a[href]"):
            href = a.get("href")
            if not href:
                continue
            links.append(href)
        return links
