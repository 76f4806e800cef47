#!/usr/bin/env python3
"""
Feed Cache - One file-backed slot per configured feed source.

Slots are refreshed only when missing or older than the expiry window,
so repeated aggregation calls do not hit the network. A slot file is
always either absent or a complete newline-delimited entry list: writes
go to a temp file in the same directory and are renamed into place.
"""

import asyncio
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

from ..utils.addresses import is_valid_entry
from ..utils.validation import redact_url, sanitize_for_log
from .fetcher import SourceFetcher
from .parser import FeedParser
from .sources import FeedSource

logger = logging.getLogger('feedwarden.feeds.cache')

DEFAULT_EXPIRY = 86400  # 24 hours
SLOT_EXTENSION = '.txt'
TEMP_PREFIX = '.slot-'


@dataclass
class RefreshResult:
    """Outcome of refreshing one cache slot"""
    source: FeedSource
    refreshed: bool = False
    cached: bool = False
    entries: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source.index,
            'url': redact_url(self.source.url),
            'refreshed': self.refreshed,
            'cached': self.cached,
            'entries': self.entries,
            'error': self.error,
        }


class FeedCache:
    """
    File-backed cache of normalized feed entries, keyed by source position.
    """

    def __init__(
        self,
        cache_dir: str,
        fetcher: Optional[SourceFetcher] = None,
        parser: Optional[FeedParser] = None,
        expiry: int = DEFAULT_EXPIRY,
        extension: str = SLOT_EXTENSION,
    ):
        """
        Initialize the feed cache.

        Args:
            cache_dir: Directory holding slot files (created if missing)
            fetcher: SourceFetcher used for stale slots
            parser: FeedParser applied to fetched bodies
            expiry: Slot age in seconds after which it is refreshed
            extension: Slot file extension
        """
        self.cache_dir = Path(cache_dir)
        self.fetcher = fetcher or SourceFetcher()
        self.parser = parser or FeedParser()
        self.expiry = expiry
        self.extension = extension
        self._locks: Dict[int, asyncio.Lock] = {}
        self._locks_loop: Optional[asyncio.AbstractEventLoop] = None

    def slot_path(self, source: FeedSource) -> Path:
        return self.cache_dir / f"{source.index}{self.extension}"

    def slot_age(self, source: FeedSource, now: Optional[float] = None) -> Optional[float]:
        """Seconds since the slot was written, or None if it does not exist."""
        try:
            mtime = self.slot_path(source).stat().st_mtime
        except OSError:
            return None
        return (now if now is not None else time.time()) - mtime

    def is_stale(self, source: FeedSource, now: Optional[float] = None) -> bool:
        """A slot is stale when missing or at least ``expiry`` seconds old."""
        age = self.slot_age(source, now)
        return age is None or age >= self.expiry

    def _lock_for(self, source: FeedSource) -> asyncio.Lock:
        # Locks belong to one event loop; each asyncio.run() starts a new one
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            self._locks = {}
            self._locks_loop = loop
        lock = self._locks.get(source.index)
        if lock is None:
            lock = self._locks[source.index] = asyncio.Lock()
        return lock

    async def refresh_if_stale(self, source: FeedSource, force: bool = False) -> RefreshResult:
        """
        Fetch and store a source if its slot is stale.

        The slot is only overwritten when the new body yields at least one
        entry; failures and empty results leave existing data in place.

        Args:
            source: Feed source to refresh
            force: Refresh even if the slot is fresh

        Returns:
            RefreshResult describing what happened
        """
        async with self._lock_for(source):
            if not force and not self.is_stale(source):
                return RefreshResult(source=source, cached=True)

            fetched = await self.fetcher.fetch(source.url)
            if not fetched.success:
                return RefreshResult(
                    source=source,
                    error=sanitize_for_log(fetched.error.message),
                )

            parsed = self.parser.parse(fetched.body)
            if not parsed.entries:
                reason = "binary content" if parsed.binary else "no valid entries"
                logger.warning(
                    f"Feed {redact_url(source.url)} yielded {reason}; keeping cached slot"
                )
                return RefreshResult(source=source, error=f"Feed yielded {reason}")

            try:
                self.write_slot(source, parsed.entries)
            except OSError as e:
                logger.error(f"Failed to write cache slot {source.index}: {e}")
                return RefreshResult(source=source, error=f"Cache write failed: {e}")

            logger.info(
                f"Fetched feed {redact_url(source.url)} | Entries: {len(parsed.entries)} "
                f"| Size: {fetched.size}B | Time: {fetched.elapsed:.2f}s"
            )
            return RefreshResult(source=source, refreshed=True, entries=len(parsed.entries))

    def write_slot(self, source: FeedSource, entries: Iterable[str]) -> None:
        """Atomically replace a slot file with the given entries."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        target = self.slot_path(source)
        data = '\n'.join(sorted(entries))

        fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=str(self.cache_dir))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def read_slot(self, source: FeedSource) -> Set[str]:
        """
        Read a slot, re-validating every line.

        Missing or unreadable slots read as empty.
        """
        path = self.slot_path(source)
        try:
            with open(path, encoding='utf-8', errors='ignore') as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return set()
        except OSError as e:
            logger.warning(f"Cannot read cache slot {source.index}: {e}")
            return set()

        entries = set()
        dropped = 0
        for line in lines:
            entry = line.strip()
            if not entry:
                continue
            if is_valid_entry(entry):
                entries.add(entry)
            else:
                dropped += 1

        if dropped:
            logger.warning(f"Dropped {dropped} invalid lines from cache slot {source.index}")
        return entries

    def clear(self) -> int:
        """
        Delete all slot files.

        Returns:
            Number of slot files deleted
        """
        if not self.cache_dir.is_dir():
            return 0

        deleted = 0
        for path in self.cache_dir.glob(f"*{self.extension}"):
            try:
                if path.is_file():
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning(f"Could not delete cache file {path.name}: {e}")

        # Leftovers from interrupted writes
        for path in self.cache_dir.glob(f"{TEMP_PREFIX}*"):
            try:
                path.unlink()
            except OSError:
                pass

        logger.info(f"Cache cleared: deleted {deleted} cached feed files")
        return deleted

    def get_stats(self, sources: Iterable[FeedSource]) -> Dict[str, Any]:
        """Get cache statistics for the given sources"""
        now = time.time()
        fresh = stale = missing = total = 0
        for source in sources:
            age = self.slot_age(source, now)
            if age is None:
                missing += 1
                continue
            if age >= self.expiry:
                stale += 1
            else:
                fresh += 1
            total += len(self.read_slot(source))

        return {
            'cache_dir': str(self.cache_dir),
            'expiry_seconds': self.expiry,
            'fresh_slots': fresh,
            'stale_slots': stale,
            'missing_slots': missing,
            'total_entries': total,
        }
