#!/usr/bin/env python3
"""
feedwarden Threat Intelligence Feeds

Ingests third-party IP/CIDR blocklists:
- SSRF-safe fetching with size, time and redirect limits
- Defensive parsing of text, CSV and JSON-ish feeds
- Per-feed file cache with time-based expiry
- Merged, allowlisted suspicious set for log analysis
"""

from .allowlist import ALLOW_RANGES, Allowlist
from .cache import FeedCache, RefreshResult
from .engine import (
    AggregationEngine,
    AggregationResult,
    get_engine,
    get_suspicious_addresses,
)
from .errors import FeedError, TransportError, ValidationError
from .fetcher import FetchResult, SourceFetcher
from .parser import FeedParser, ParseResult
from .sources import DEFAULT_SOURCES, FeedSource, load_sources

__all__ = [
    'ALLOW_RANGES',
    'Allowlist',
    'FeedCache',
    'RefreshResult',
    'AggregationEngine',
    'AggregationResult',
    'get_engine',
    'get_suspicious_addresses',
    'FeedError',
    'TransportError',
    'ValidationError',
    'FetchResult',
    'SourceFetcher',
    'FeedParser',
    'ParseResult',
    'DEFAULT_SOURCES',
    'FeedSource',
    'load_sources',
]
