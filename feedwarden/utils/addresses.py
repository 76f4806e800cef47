#!/usr/bin/env python3
"""
Address Classification - validity and reachability checks for IPs and hosts.

Used on both sides of the feed pipeline:
- Feed content: decide whether a token is a usable IP or CIDR entry
- Feed URLs: decide whether a host is safe to connect to (SSRF boundary)

Everything here fails closed. A value that cannot be parsed or resolved
is treated as private and therefore blocked.
"""

import ipaddress
import re
import socket
from enum import Enum
from typing import Callable, List, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Carrier-grade NAT and "this network" are not flagged by the stdlib properties
_CGNAT = ipaddress.ip_network('100.64.0.0/10')
_CURRENT_NETWORK = ipaddress.ip_network('0.0.0.0/8')

BLOCKED_HOSTNAMES = frozenset({
    'localhost',
    'localhost.localdomain',
    '127.0.0.1',
    '::1',
    '0.0.0.0',
    '0',
    '[::1]',
    '[::ffff:127.0.0.1]',
})

BLOCKED_SUFFIXES = (
    '.local',
    '.internal',
    '.localhost',
    '.localdomain',
    '.home',
    '.lan',
    '.corp',
)

_PREFIX_RE = re.compile(r'[0-9]{1,3}', re.ASCII)
_NUMERIC_HOST_RE = re.compile(
    r'(?:0x[0-9a-f]*|[0-9]+)(?:\.(?:0x[0-9a-f]*|[0-9]+))*',
    re.ASCII,
)


class AddressClass(Enum):
    """Reachability class of an address"""
    PUBLIC = "public"
    PRIVATE = "private"
    INVALID = "invalid"


def _parse(text: str) -> IPAddress:
    return ipaddress.ip_address(text.strip())


def classify_address(text: str) -> AddressClass:
    """
    Classify an address as public, private/reserved, or invalid.

    IPv4-mapped IPv6 addresses are classified by the IPv4 address they carry.
    """
    try:
        addr = _parse(text)
    except (ValueError, TypeError, AttributeError):
        return AddressClass.INVALID
    return _classify(addr)


def _classify(addr: IPAddress) -> AddressClass:
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return _classify(addr.ipv4_mapped)

    if (addr.is_loopback or addr.is_link_local or addr.is_private
            or addr.is_unspecified or addr.is_reserved or addr.is_multicast):
        return AddressClass.PRIVATE

    if isinstance(addr, ipaddress.IPv4Address) and (addr in _CGNAT or addr in _CURRENT_NETWORK):
        return AddressClass.PRIVATE

    return AddressClass.PUBLIC


def is_private_or_reserved(address: str) -> bool:
    """True unless the address is a parseable, globally routable address."""
    return classify_address(address) is not AddressClass.PUBLIC


def is_valid_address(token: str) -> bool:
    """Check for a syntactically valid IPv4 or IPv6 address (0.0.0.0 excluded)."""
    if not isinstance(token, str) or not token:
        return False
    if token == '0.0.0.0' or '%' in token:
        return False
    try:
        ipaddress.ip_address(token)
    except ValueError:
        return False
    return True


def is_valid_cidr(token: str) -> bool:
    """Check for "address/prefix" with a prefix length in range for the family."""
    if not isinstance(token, str):
        return False

    parts = token.split('/')
    if len(parts) != 2:
        return False

    address, bits = parts
    if not is_valid_address(address):
        return False
    if not _PREFIX_RE.fullmatch(bits):
        return False

    max_bits = 128 if ':' in address else 32
    return 0 <= int(bits) <= max_bits


def is_valid_entry(token: str) -> bool:
    """Validate a feed entry as CIDR when it contains a slash, else as an address."""
    if not isinstance(token, str):
        return False
    if '/' in token:
        return is_valid_cidr(token)
    return is_valid_address(token)


def resolve_host(hostname: str) -> List[str]:
    """
    Resolve a hostname to every address it maps to.

    Returns an empty list when resolution fails.
    """
    try:
        infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError, OSError):
        return []

    addresses = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        address = str(sockaddr[0]).split('%', 1)[0]
        if address not in addresses:
            addresses.append(address)
    return addresses


def is_private_host(
    hostname: str,
    resolver: Callable[[str], List[str]] = resolve_host,
) -> bool:
    """
    Decide whether a URL host must not be contacted.

    Literal addresses are classified directly. Names are resolved and the
    host is rejected if resolution fails or if any resolved address is
    not public.
    """
    if not isinstance(hostname, str):
        return True

    host = hostname.strip().lower()
    if not host:
        return True

    if host in BLOCKED_HOSTNAMES:
        return True

    host = host.rstrip('.')
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    if not host or host in BLOCKED_HOSTNAMES:
        return True

    if host.endswith(BLOCKED_SUFFIXES):
        return True

    try:
        literal = ipaddress.ip_address(host.split('%', 1)[0])
    except ValueError:
        literal = None
    if literal is not None:
        return _classify(literal) is not AddressClass.PUBLIC

    # Octal, hex and shortened forms like 0177.1, 0x7f.1 or 2130706433
    if _NUMERIC_HOST_RE.fullmatch(host):
        return True

    addresses = resolver(host)
    if not addresses:
        return True

    return any(is_private_or_reserved(address) for address in addresses)
