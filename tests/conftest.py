#!/usr/bin/env python3
"""
Shared fixtures: an in-memory fetcher that serves canned feed bodies.
"""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from feedwarden.feeds.errors import FeedError, TransportError
from feedwarden.feeds.fetcher import FetchResult, SourceFetcher


class FakeFetcher(SourceFetcher):
    """
    SourceFetcher stand-in mapping URL -> body bytes or FeedError.

    Unknown URLs answer with HTTP 404. Every call is recorded.
    """

    def __init__(self, bodies=None, delay=0.0):
        super().__init__(host_validator=lambda host: False)
        self.bodies = dict(bodies or {})
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def fetch(self, url):
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

        outcome = self.bodies.get(url)
        if isinstance(outcome, FeedError):
            return FetchResult(url=url, error=outcome)
        if outcome is None:
            return FetchResult(url=url, status=404, error=TransportError("HTTP status 404", url, 404))
        return FetchResult(url=url, body=outcome, status=200, size=len(outcome))


@pytest.fixture
def fake_fetcher():
    """Factory for FakeFetcher instances."""
    return FakeFetcher


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def no_config(tmp_path):
    """Config path that does not exist, so no user config is picked up."""
    return str(tmp_path / "absent.yaml")
