#!/usr/bin/env python3
"""
feedwarden - Log Sanitization Utilities

Feed URLs, HTTP error text and feed content are attacker-influenced.
Anything derived from them must be sanitized before it reaches a log line
or a diagnostic message.
"""

import string
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

MAX_RAW_LOG_LENGTH = 1024
MAX_URL_LOG_LENGTH = 512

PRINTABLE_SAFE = set(string.printable) - set('\t\n\r\x0b\x0c')


def sanitize_for_log(text: Optional[str], max_length: int = MAX_RAW_LOG_LENGTH) -> str:
    """
    Sanitize arbitrary text for safe logging.
    Escapes control characters and truncates.
    """
    if text is None:
        return "<null>"

    if isinstance(text, bytes):
        text = text.decode('utf-8', errors='replace')
    elif not isinstance(text, str):
        text = str(text)

    # Truncate first to limit processing
    text = text[:max_length]

    result = []
    for c in text:
        if c in PRINTABLE_SAFE:
            result.append(c)
        elif c == '\n':
            result.append('\\n')
        elif c == '\r':
            result.append('\\r')
        elif c == '\t':
            result.append('\\t')
        else:
            result.append(f'\\x{ord(c):02x}' if ord(c) < 0x100 else f'\\u{ord(c):04x}')

    sanitized = ''.join(result)

    # Escaping can grow the string past the limit
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + '...'

    return sanitized


def redact_url(url: Optional[str], max_length: int = MAX_URL_LOG_LENGTH) -> str:
    """
    Reduce a URL to scheme, host and path for logging.

    Query strings, fragments and userinfo can carry tokens, so they are dropped.
    """
    if url is None:
        return "<null>"

    try:
        parts = urlsplit(str(url))
        netloc = parts.hostname or ''
        if ':' in netloc:
            netloc = f"[{netloc}]"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        redacted = urlunsplit((parts.scheme, netloc, parts.path, '', ''))
    except ValueError:
        redacted = str(url)

    return sanitize_for_log(redacted or str(url), max_length=max_length)
