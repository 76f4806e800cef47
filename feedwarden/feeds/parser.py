#!/usr/bin/env python3
"""
Feed Parser - Turns raw threat feed bodies into validated IP/CIDR entries.

Feeds are published by third parties in loosely defined formats and must
be treated as hostile input. The parser:
- Rejects binary payloads (images, archives, executables)
- Strips control characters and bounds line count, line length and output size
- Sniffs the per-line format (CSV/TSV, "ip - description", JSON-ish)
- Whitelists address characters and validates every token
- Expands small IPv4 CIDR blocks, keeps larger ones and IPv6 blocks intact

Malformed content is never an error: bad lines are dropped and the feed
contributes whatever valid entries it has.

Usage:
    from feedwarden.feeds.parser import FeedParser

    parser = FeedParser()
    entries = parser.extract(b"1.2.3.4\\n5.6.7.8,scanner\\n")
"""

import ipaddress
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Union

from ..utils.addresses import is_valid_address, is_valid_entry

logger = logging.getLogger('feedwarden.feeds.parser')

# === Limits ===
MAX_LINES = 500000
MAX_LINE_LENGTH = 1024
MAX_ENTRIES = 100000
EXPAND_MIN_PREFIX = 24
BINARY_SAMPLE_SIZE = 8192
MIN_PRINTABLE_RATIO = 0.85

BINARY_SIGNATURES = (
    b'\x89PNG',       # PNG
    b'\xff\xd8\xff',  # JPEG
    b'GIF8',          # GIF
    b'PK\x03\x04',    # ZIP
    b'\x1f\x8b',      # GZIP
    b'%PDF',          # PDF
    b'\x7fELF',       # ELF
    b'MZ',            # EXE
)

_CONTROL_CHARS_RE = re.compile(rb'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')
_PRINTABLE_RE = re.compile(rb'[\x20-\x7e\t\n\r]')
_LINE_SPLIT_RE = re.compile(r'\r\n|\r|\n')
_COMMENT_PREFIXES = ('#', ';', '//')
_INLINE_COMMENT_RE = re.compile(r'\s*[#;].*$')
_ADDRESS_CHARS_RE = re.compile(r'[^0-9a-fA-F.:/]')


def is_binary_content(raw: bytes, sample_size: int = BINARY_SAMPLE_SIZE,
                      min_printable: float = MIN_PRINTABLE_RATIO) -> bool:
    """
    Check whether a payload looks like a binary file rather than a text feed.

    Looks for a known magic number at the start of the sample, then for a
    low share of printable ASCII/whitespace bytes.
    """
    sample = raw[:sample_size]
    if sample.startswith(BINARY_SIGNATURES):
        return True

    if not sample:
        return False

    printable = len(_PRINTABLE_RE.findall(sample))
    return (printable / len(sample)) < min_printable


class LineExtractor(ABC):
    """
    One format-sniffing step of the per-line cascade.

    If ``applies`` is true for a line, ``extract`` must return the narrowed
    candidate, or None to reject the whole line.
    """

    name: str = "base"

    @abstractmethod
    def applies(self, line: str) -> bool:
        pass

    @abstractmethod
    def extract(self, line: str) -> Optional[str]:
        pass


class DelimitedExtractor(LineExtractor):
    """
    CSV/TSV/semicolon/pipe separated rows: first field, optional quotes.

    Object-shaped lines are left to the JSON step even though they contain
    commas.
    """

    name = "delimited"

    _SIGNAL = re.compile(r'[,\t;|]')
    _FIRST_FIELD = re.compile(r'^"?([^",\t;|]+)"?')

    def applies(self, line: str) -> bool:
        if line.startswith('{'):
            return False
        return self._SIGNAL.search(line) is not None

    def extract(self, line: str) -> Optional[str]:
        match = self._FIRST_FIELD.match(line)
        if not match:
            return None
        return match.group(1).strip()


class DashDescriptionExtractor(LineExtractor):
    """Lines like "1.2.3.4 - bad actor"."""

    name = "dash-description"

    _PATTERN = re.compile(r'^(\S+)\s+-\s+')

    def applies(self, line: str) -> bool:
        return self._PATTERN.match(line) is not None

    def extract(self, line: str) -> Optional[str]:
        match = self._PATTERN.match(line)
        return match.group(1) if match else None


class JsonIpExtractor(LineExtractor):
    """JSON-ish objects carrying an "ip" key."""

    name = "json-ip"

    _PATTERN = re.compile(r'"ip"\s*:\s*"([^"]+)"')

    def applies(self, line: str) -> bool:
        return '{' in line

    def extract(self, line: str) -> Optional[str]:
        match = self._PATTERN.search(line)
        return match.group(1) if match else None


DEFAULT_EXTRACTORS = (
    DelimitedExtractor(),
    DashDescriptionExtractor(),
    JsonIpExtractor(),
)


@dataclass
class ParseResult:
    """Outcome of parsing one feed body"""
    entries: Set[str] = field(default_factory=set)
    lines_total: int = 0
    lines_rejected: int = 0
    binary: bool = False
    truncated: bool = False

    def to_dict(self):
        return {
            'entries': len(self.entries),
            'lines_total': self.lines_total,
            'lines_rejected': self.lines_rejected,
            'binary': self.binary,
            'truncated': self.truncated,
        }


class FeedParser:
    """
    Defensive parser for IP/CIDR threat feeds.

    Stateless apart from configuration; safe to share between concurrent
    fetches.
    """

    def __init__(
        self,
        max_lines: int = MAX_LINES,
        max_line_length: int = MAX_LINE_LENGTH,
        max_entries: int = MAX_ENTRIES,
        expand_min_prefix: int = EXPAND_MIN_PREFIX,
        extractors: Optional[Iterable[LineExtractor]] = None,
    ):
        """
        Initialize the parser.

        Args:
            max_lines: Lines beyond this count are ignored
            max_line_length: Longer lines are rejected outright
            max_entries: Stop once this many entries have been produced
            expand_min_prefix: IPv4 CIDR blocks with at least this prefix
                length are expanded to individual addresses
            extractors: Ordered format-sniffing steps (defaults to
                delimited, "ip - description", JSON)
        """
        self.max_lines = max_lines
        self.max_line_length = max_line_length
        self.max_entries = max_entries
        self.expand_min_prefix = expand_min_prefix
        self.extractors: List[LineExtractor] = list(
            extractors if extractors is not None else DEFAULT_EXTRACTORS
        )

    def extract(self, raw: Union[bytes, str]) -> Set[str]:
        """Return the deduplicated set of valid entries in a feed body."""
        return self.parse(raw).entries

    def parse(self, raw: Union[bytes, str]) -> ParseResult:
        """Parse a feed body and report what was kept and dropped."""
        result = ParseResult()

        if isinstance(raw, str):
            raw = raw.encode('utf-8', errors='ignore')
        if not raw:
            return result

        # Magic numbers are checked before control characters are stripped,
        # since several signatures start with one
        if raw[:BINARY_SAMPLE_SIZE].startswith(BINARY_SIGNATURES):
            result.binary = True
            return result

        content = _CONTROL_CHARS_RE.sub(b'', raw)
        if is_binary_content(content):
            result.binary = True
            return result

        text = content.decode('utf-8', errors='ignore')
        lines = _LINE_SPLIT_RE.split(text, maxsplit=self.max_lines)
        if lines and not lines[-1]:
            lines.pop()
        if len(lines) > self.max_lines:
            lines = lines[:self.max_lines]
            result.truncated = True

        entries = result.entries
        full = False
        for line in lines:
            result.lines_total += 1

            if len(line) > self.max_line_length:
                result.lines_rejected += 1
                continue

            token = self.extract_token(line)
            if token is None:
                stripped = line.strip()
                if stripped and not stripped.startswith(_COMMENT_PREFIXES):
                    result.lines_rejected += 1
                continue

            for entry in self.expand(token):
                if len(entries) >= self.max_entries:
                    full = True
                    break
                entries.add(entry)

            if full:
                result.truncated = True
                break

        if result.truncated:
            logger.debug(
                f"Feed truncated after {result.lines_total} lines, "
                f"{len(entries)} entries"
            )
        return result

    def extract_token(self, line: str) -> Optional[str]:
        """
        Reduce one feed line to a validated IP or CIDR token.

        Returns None for blank lines, comments and anything that does not
        yield a valid address.
        """
        line = line.strip()
        if not line or line.startswith(_COMMENT_PREFIXES):
            return None

        line = _INLINE_COMMENT_RE.sub('', line).strip()
        if not line:
            return None

        for extractor in self.extractors:
            if extractor.applies(line):
                line = extractor.extract(line)
                if line is None:
                    return None

        token = _ADDRESS_CHARS_RE.sub('', line)
        if not token or not is_valid_entry(token):
            return None
        return token

    def expand(self, token: str) -> List[str]:
        """
        Expand a small IPv4 CIDR block into its addresses.

        Bare addresses, IPv6 blocks and IPv4 blocks broader than
        ``expand_min_prefix`` are returned unchanged.
        """
        if '/' not in token or ':' in token:
            return [token]

        network = ipaddress.ip_network(token, strict=False)
        if network.prefixlen < self.expand_min_prefix:
            return [token]

        return [
            str(address) for address in network
            if is_valid_address(str(address))
        ]
