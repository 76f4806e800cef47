#!/usr/bin/env python3
"""
Feed error taxonomy.

Neither error is retried within an aggregation run. Both are caught at the
fetch boundary and reported as diagnostics, never raised to the consumer.
"""


class FeedError(Exception):
    """Base class for feed ingestion failures"""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.message = message
        self.url = url


class ValidationError(FeedError):
    """Malformed or disallowed feed URL, including SSRF-blocked hosts"""


class TransportError(FeedError):
    """Timeout, connection failure, size cap, bad status or empty body"""

    def __init__(self, message: str, url: str = "", status: int = 0):
        super().__init__(message, url)
        self.status = status
