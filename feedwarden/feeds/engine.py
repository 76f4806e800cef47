#!/usr/bin/env python3
"""
Aggregation Engine - Merges all cached threat feeds into one suspicious set.

Refreshes stale cache slots (in parallel, bounded), unions every slot,
removes allowlisted CDN ranges, and returns a mapping of address/CIDR to
the feed that listed it. A failing feed never aborts aggregation; its
error is reported alongside the result.

Usage:
    from feedwarden.feeds.engine import AggregationEngine

    engine = AggregationEngine(cache_dir='/var/lib/feedwarden/cache')
    suspicious = engine.get_suspicious_addresses()
    if '45.33.32.156' in suspicious:
        print('listed by', suspicious['45.33.32.156'])
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from ..utils.addresses import is_valid_entry
from ..utils.validation import redact_url, sanitize_for_log
from .allowlist import Allowlist
from .cache import DEFAULT_EXPIRY, FeedCache, RefreshResult
from .fetcher import SourceFetcher
from .parser import FeedParser
from .sources import DEFAULT_SOURCES, FeedSource, load_sources

logger = logging.getLogger('feedwarden.feeds.engine')

DEFAULT_MAX_CONCURRENCY = 4

FETCHER_OPTIONS = ('connect_timeout', 'timeout', 'max_redirects', 'max_bytes')
PARSER_OPTIONS = ('max_lines', 'max_line_length', 'max_entries', 'expand_min_prefix')

# Expected types of config values; anything else is logged and dropped
INT_OPTIONS = (
    'cache_expiry', 'max_concurrency', 'max_redirects', 'max_bytes',
    'max_lines', 'max_line_length', 'max_entries', 'expand_min_prefix',
)
FLOAT_OPTIONS = ('connect_timeout', 'timeout')
LIST_OPTIONS = ('sources', 'allowlist')


def default_cache_dir() -> str:
    return os.environ.get(
        'FEEDWARDEN_CACHE_DIR',
        str(Path.home() / '.feedwarden' / 'cache'),
    )


@dataclass
class AggregationResult:
    """Merged suspicious set plus diagnostics from one aggregation run"""
    addresses: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    refreshed: int = 0
    failed: int = 0
    allowlisted: int = 0
    sources: int = 0
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def count(self) -> int:
        return len(self.addresses)

    def to_dict(self, include_addresses: bool = False) -> Dict[str, Any]:
        data = {
            'timestamp': self.timestamp,
            'sources': self.sources,
            'refreshed': self.refreshed,
            'failed': self.failed,
            'suspicious_count': self.count,
            'allowlisted': self.allowlisted,
            'errors': self.errors,
        }
        if include_addresses:
            data['suspicious'] = dict(sorted(self.addresses.items()))
        return data


class AggregationEngine:
    """
    Public entry point for consumers of the threat feed set.
    """

    def __init__(
        self,
        sources: Optional[Iterable[str]] = None,
        cache_dir: Optional[str] = None,
        cache_expiry: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        config_path: Optional[str] = None,
        fetcher: Optional[SourceFetcher] = None,
        parser: Optional[FeedParser] = None,
        allowlist: Optional[Allowlist] = None,
    ):
        """
        Initialize the aggregation engine.

        Args:
            sources: Ordered feed URLs (defaults to config, then DEFAULT_SOURCES)
            cache_dir: Directory for cache slots
            cache_expiry: Slot expiry in seconds (default: 24 hours)
            max_concurrency: Maximum feeds fetched at once
            config_path: Path to YAML config file
            fetcher: Custom SourceFetcher
            parser: Custom FeedParser
            allowlist: Custom Allowlist
        """
        config = self._load_config(config_path)

        # Explicit args take precedence over the config file
        if sources is None:
            sources = config.get('sources') or DEFAULT_SOURCES
        cache_dir = cache_dir or config.get('cache_dir') or default_cache_dir()
        if cache_expiry is None:
            cache_expiry = config.get('cache_expiry', DEFAULT_EXPIRY)
        if max_concurrency is None:
            max_concurrency = config.get('max_concurrency', DEFAULT_MAX_CONCURRENCY)

        self.sources: List[FeedSource] = load_sources(sources)
        self.max_concurrency = max(1, max_concurrency)

        self.fetcher = fetcher or SourceFetcher(
            **{k: config[k] for k in FETCHER_OPTIONS if k in config}
        )
        self.parser = parser or FeedParser(
            **{k: config[k] for k in PARSER_OPTIONS if k in config}
        )
        self.allowlist = allowlist or Allowlist(config.get('allowlist'))
        self.cache = FeedCache(
            cache_dir,
            fetcher=self.fetcher,
            parser=self.parser,
            expiry=cache_expiry,
        )

    def _load_config(self, config_path: Optional[str]) -> Dict[str, Any]:
        """Load the ``feeds`` section of a YAML config file"""
        if config_path is None:
            default_paths = [
                Path('feedwarden.yaml'),
                Path('config/feedwarden.yaml'),
                Path.home() / '.feedwarden' / 'config.yaml',
            ]
            for path in default_paths:
                if path.exists():
                    config_path = str(path)
                    break

        if config_path and Path(config_path).exists():
            try:
                with open(config_path) as f:
                    full_config = yaml.safe_load(f) or {}
                section = full_config.get('feeds', {}) if isinstance(full_config, dict) else {}
                return self._check_config(section if isinstance(section, dict) else {})
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable config {config_path}: {e}")

        return {}

    def _check_config(self, section: Dict[str, Any]) -> Dict[str, Any]:
        """Drop config values of the wrong type, coercing numbers where possible"""
        config = {}
        for key, value in section.items():
            if key in LIST_OPTIONS and not isinstance(value, list):
                logger.warning(f"Ignoring config key '{key}': expected a list")
                continue
            if key == 'cache_dir' and not isinstance(value, str):
                logger.warning("Ignoring config key 'cache_dir': expected a path")
                continue
            if key in INT_OPTIONS or key in FLOAT_OPTIONS:
                cast = int if key in INT_OPTIONS else float
                try:
                    if isinstance(value, bool):
                        raise TypeError(value)
                    value = cast(value)
                except (TypeError, ValueError):
                    logger.warning(
                        f"Ignoring config key '{key}': {sanitize_for_log(str(value), 64)} "
                        f"is not a number"
                    )
                    continue
            config[key] = value

        if 'allowlist' in config:
            ranges = []
            for entry in config['allowlist']:
                if isinstance(entry, str) and is_valid_entry(entry.strip()):
                    ranges.append(entry.strip())
                else:
                    logger.warning(
                        f"Ignoring invalid allowlist range: {sanitize_for_log(str(entry), 64)}"
                    )
            config['allowlist'] = ranges

        return config

    @property
    def source_count(self) -> int:
        return len(self.sources)

    async def refresh(self, force: bool = False) -> List[RefreshResult]:
        """
        Refresh every stale slot, at most ``max_concurrency`` at a time.

        Args:
            force: Refresh all slots regardless of age
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(source: FeedSource) -> RefreshResult:
            async with semaphore:
                return await self.cache.refresh_if_stale(source, force=force)

        async with self.fetcher:
            outcomes = await asyncio.gather(
                *(_bounded(source) for source in self.sources),
                return_exceptions=True,
            )

        results = []
        for source, outcome in zip(self.sources, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Unexpected error refreshing {redact_url(source.url)}: {outcome!r}")
                outcome = RefreshResult(source=source, error=f"Unexpected error: {outcome}")
            results.append(outcome)
        return results

    async def aggregate(self, force: bool = False) -> AggregationResult:
        """
        Refresh stale feeds and merge all cached entries.

        Returns:
            AggregationResult with the suspicious mapping and any
            per-feed error messages
        """
        result = AggregationResult(sources=len(self.sources))

        for refresh in await self.refresh(force=force):
            if refresh.refreshed:
                result.refreshed += 1
            if refresh.error:
                result.failed += 1
                result.errors.append(
                    f"{redact_url(refresh.source.url)}: {refresh.error}"
                )

        # Sources are merged in configured order; later sources win provenance
        addresses = result.addresses
        for source in self.sources:
            for entry in self.cache.read_slot(source):
                if self.allowlist.contains(entry):
                    result.allowlisted += 1
                    continue
                addresses[entry] = source.label

        return result

    def run(self, force: bool = False) -> AggregationResult:
        """Synchronous wrapper for aggregate()"""
        return asyncio.run(self.aggregate(force=force))

    def get_suspicious_addresses(self) -> Dict[str, str]:
        """
        Get the merged suspicious set as a mapping of entry to source URL.

        Feed failures are logged, not raised.
        """
        result = self.run()
        for error in result.errors:
            logger.warning(f"Feed error: {error}")
        return result.addresses

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        stats = self.cache.get_stats(self.sources)
        stats['sources'] = len(self.sources)
        return stats

    def clear_cache(self) -> int:
        """Delete all cached slots. Returns the number of files deleted."""
        return self.cache.clear()


# Module-level singleton and convenience functions
_default_engine: Optional[AggregationEngine] = None


def get_engine(**kwargs) -> AggregationEngine:
    """Get or create the default aggregation engine"""
    global _default_engine
    if _default_engine is None or kwargs:
        _default_engine = AggregationEngine(**kwargs)
    return _default_engine


def get_suspicious_addresses(**kwargs) -> Dict[str, str]:
    """Convenience function returning the default engine's suspicious set"""
    return get_engine(**kwargs).get_suspicious_addresses()
