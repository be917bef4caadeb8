import unicodedata
from typing import Collection, List
from urllib.parse import urlparse

import inflection

# punctuation, separators, control/format/invisible, symbols
_SPLIT_CATEGORIES = frozenset("PZCS")


def _as_space(ch: str) -> str:
    if ch in "|/" or unicodedata.category(ch)[0] in _SPLIT_CATEGORIES:
        return " "
    return ch


def partition_sentence(text: str) -> List[str]:
    return "".join(_as_space(ch) for ch in text).split()


def filter_common_words(words: List[str], stopwords: Collection[str]) -> List[str]:
    """Drop one-letter words and stopwords, singularize the rest."""
    return [inflection.singularize(w) for w in words if len(w) > 1 and w not in stopwords]


def tokenize(text: str, stopwords: Collection[str]) -> List[str]:
    return filter_common_words(partition_sentence(text.lower()), stopwords)


def extract_path_segments(url: str) -> List[str]:
    path = urlparse(url).path
    if not path:
        return []
    path = path.removesuffix(".html").removesuffix(".htm")
    for sep in "/-_":
        path = path.replace(sep, " ")
    return path.lower().split()
