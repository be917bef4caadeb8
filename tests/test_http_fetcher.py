"""Tests for crawler.http_fetcher."""

from __future__ import annotations

import asyncio

import pytest

from crawler.http_fetcher import DomainLimiter, HttpFetcher, validate_proxy
from errors import ConfigError


class TestProxy:
    def test_none(self):
        assert validate_proxy("") is None
        assert validate_proxy(None) is None

    def test_valid(self):
        assert validate_proxy("http://127.0.0.1:3128") == "http://127.0.0.1:3128"

    @pytest.mark.parametrize("proxy", ["socks5://127.0.0.1:9050", "not a url", "http://"])
    def test_invalid(self, proxy):
        with pytest.raises(ConfigError):
            validate_proxy(proxy)

    def test_fetcher_rejects_bad_proxy(self):
        with pytest.raises(ConfigError):
            HttpFetcher(proxy="ftp://proxy")


class TestDomainLimiter:
    @pytest.mark.asyncio
    async def test_spacing_per_domain(self):
        limiter = DomainLimiter(per_domain=3, delay_s=0.05)
        loop = asyncio.get_running_loop()
        starts = {}

        async def go(key, domain):
            await limiter.wait_turn(domain)
            starts[key] = loop.time()

        t0 = loop.time()
        await asyncio.gather(go("a1", "a.com"), go("a2", "a.com"), go("b1", "b.com"))
        assert starts["a2"] - starts["a1"] >= 0.045
        assert starts["b1"] - t0 < 0.04

    def test_semaphore_shared_per_domain(self):
        limiter = DomainLimiter(per_domain=2)
        assert limiter.sem("a.com") is limiter.sem("a.com")
        assert limiter.sem("a.com") is not limiter.sem("b.com")

    @pytest.mark.asyncio
    async def test_no_delay(self):
        limiter = DomainLimiter(per_domain=1, delay_s=0)
        await limiter.wait_turn("a.com")
        await limiter.wait_turn("a.com")
