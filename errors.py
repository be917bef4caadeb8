class ConfigError(Exception):
    """Unusable configuration: the run cannot start or continue."""


class FetchError(Exception):
    """Transport failure (DNS, connect, timeout) for a single URL."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class MalformedRecordError(ValueError):
    """A crawl output line that cannot be decoded into a record."""
