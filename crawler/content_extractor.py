from typing import Iterable, List, Optional, Tuple

import soupsieve
from bs4 import BeautifulSoup
from bs4.element import Tag

from errors import ConfigError
from models import TokenKind
from utils import clean_text

MAX_META_LEN = 1500
MAX_LANG_LEN = 100
MAX_PARA_LEN = 1500
MIN_PARA_LEN = 20
MAX_HEADING_LEN = 500
# After the fourth match a selector is too deep into the page for a preview.
PREVIEW_CANDIDATES = 4

Fact = Tuple[TokenKind, str]


def compile_selector(query: str) -> soupsieve.SoupSieve:
    try:
        return soupsieve.compile(query)
    except soupsieve.SelectorSyntaxError as e:
        raise ConfigError(f"invalid preview selector {query!r}: {e}") from e


class ContentExtractor:
    """
    Pulls the indexable facts out of one HTML page. Holds only the run's
    preview selectors and about-heuristic phrases; nothing carries across pages.
    """

    def __init__(self, preview_queries: Iterable[str], heuristics: Iterable[str]):
        self.preview_queries = list(preview_queries)
        self._preview_selectors = [compile_selector(q) for q in self.preview_queries]
        self.heuristics = {h.lower() for h in heuristics}

    def extract(self, soup: BeautifulSoup) -> List[Fact]:
        facts: List[Fact] = []

        for meta in soup.select('meta[name="keywords"]'):
            keywords = clean_text(meta.get("content", ""))
            if keywords:
                facts.append((TokenKind.KEYWORDS, keywords))

        facts.extend(self._meta(soup, 'meta[name="description"]', TokenKind.DESC))
        facts.extend(self._meta(soup, 'meta[property="og:description"]', TokenKind.OG_DESC))

        for html in soup.select("html[lang]"):
            lang = clean_text(html.get("lang", ""))
            if 0 < len(lang) < MAX_LANG_LEN:
                facts.append((TokenKind.LANG, lang))

        for title in soup.select("title"):
            facts.append((TokenKind.TITLE, clean_text(title.get_text())))

        body = soup.body or soup
        preview = self.preview_paragraph(body)
        if preview:
            facts.append((TokenKind.PARA, preview))

        first_p = body.find("p")
        if first_p is not None:
            paragraph = clean_text(first_p.get_text())
            if 0 < len(paragraph) < MAX_PARA_LEN:
                facts.append((TokenKind.PARA_JUST_P, paragraph))

        for kind in (TokenKind.H1, TokenKind.H2, TokenKind.H3):
            for heading in body.find_all(kind.value):
                text = clean_text(heading.get_text())
                if text and len(text) < MAX_HEADING_LEN:
                    facts.append((kind, text))

        return facts

    def preview_paragraph(self, body: Tag) -> Optional[str]:
        for selector in self._preview_selectors:
            for element in selector.select(body, limit=PREVIEW_CANDIDATES):
                paragraph = clean_text(element.get_text())
                if MIN_PARA_LEN < len(paragraph) < MAX_PARA_LEN and paragraph.lower() not in self.heuristics:
                    return paragraph
        return None

    @staticmethod
    def _meta(soup: BeautifulSoup, selector: str, kind: TokenKind) -> List[Fact]:
        out = []
        for meta in soup.select(selector):
            content = clean_text(meta.get("content", ""))
            if 0 < len(content) < MAX_META_LEN:
                out.append((kind, content))
        return out
