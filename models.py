from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class TokenKind(str, Enum):
    KEYWORDS = "keywords"
    DESC = "desc"
    OG_DESC = "og-desc"
    LANG = "lang"
    TITLE = "title"
    PARA = "para"
    PARA_JUST_P = "para-just-p"
    H1 = "h1"
    H2 = "h2"
    H3 = "h3"
    NON_WEBRING_LINK = "non-webring-link"
    WEBRING_LINK = "webring-link"


@dataclass(frozen=True)
class WebringLink:
    url: str
    depth: int = 1


class LinkGraphNode(BaseModel):
    """One link-graph document ("mushroom"): spores are sites, hyphae are more documents."""

    spores: List[str] = Field(default_factory=list)
    hyphae: List[str] = Field(default_factory=list)
    id: str = ""
    location: str = ""

    @field_validator("spores", "hyphae", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return [] if v is None else v

    @field_validator("id", "location", mode="before")
    @classmethod
    def _none_as_blank(cls, v):
        return "" if v is None else v


@dataclass
class UrlContext:
    url: str
    depth: int


@dataclass(frozen=True)
class CrawlRecord:
    kind: TokenKind
    payload: str
    url: str
    depth: int


@dataclass
class PageData:
    url: str
    depth: int = 0
    title: str = ""
    about: str = ""
    about_source: str = ""
    lang: str = ""
    path_indexed: bool = False


@dataclass(frozen=True)
class SearchFragment:
    word: str
    url: str
    score: int


@dataclass(frozen=True)
class PolicyLists:
    banned_domains: List[str] = field(default_factory=list)
    banned_suffixes: List[str] = field(default_factory=list)
    boring_domains: List[str] = field(default_factory=list)
    boring_words: List[str] = field(default_factory=list)
    heuristics: List[str] = field(default_factory=list)
    preview_queries: List[str] = field(default_factory=list)
    stopwords: List[str] = field(default_factory=list)


@dataclass
class FetchResponse:
    url: str
    status: int
    content_type: str
    body: bytes
    charset: Optional[str] = None
