import sys
from typing import Optional, TextIO

from models import TokenKind


class RecordWriter:
    """
    Writes the crawl line protocol: ``<token> <payload...> <url> <depth>``
    for crawl facts and ``<url> | <depth>`` for precrawl discoveries.
    """

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out if out is not None else sys.stdout
        self.lines = 0

    def record(self, kind: TokenKind, payload: str, url: str, depth: int):
        print(kind.value, payload, url, depth, file=self.out)
        self.lines += 1

    def webring_member(self, url: str, depth: int):
        print(f"{url} | {depth}", file=self.out)
        self.lines += 1

    def flush(self):
        self.out.flush()
