"""
feedwarden utilities: address classification and log sanitization.
"""

from .addresses import (
    AddressClass,
    classify_address,
    is_private_host,
    is_private_or_reserved,
    is_valid_address,
    is_valid_cidr,
    is_valid_entry,
    resolve_host,
)
from .validation import redact_url, sanitize_for_log

__all__ = [
    'AddressClass',
    'classify_address',
    'is_private_host',
    'is_private_or_reserved',
    'is_valid_address',
    'is_valid_cidr',
    'is_valid_entry',
    'resolve_host',
    'redact_url',
    'sanitize_for_log',
]
