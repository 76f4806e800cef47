#!/usr/bin/env python3
"""
Allowlist of CDN edge ranges.

Traffic proxied through the CDN shows up with the CDN's edge addresses as
the client IP, and some feeds list those addresses. Blocking them would
block the proxy itself, so they are removed from every result.
"""

import ipaddress
from typing import Iterable, Optional, Tuple, Union

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

# Cloudflare edge ranges
ALLOW_RANGES: Tuple[str, ...] = (
    '199.27.128.0/21',
    '173.245.48.0/20',
    '103.21.244.0/22',
    '103.22.200.0/22',
    '103.31.4.0/22',
    '141.101.64.0/18',
    '108.162.192.0/18',
    '190.93.240.0/20',
    '188.114.96.0/20',
    '197.234.240.0/22',
    '198.41.128.0/17',
    '162.158.0.0/15',
    '104.16.0.0/12',
    '2400:cb00::/32',
    '2606:4700::/32',
    '2803:f800::/32',
    '2405:b500::/32',
    '2405:8100::/32',
    '2a06:98c0::/29',
    '2c0f:f248::/32',
)


class Allowlist:
    """Containment check of feed entries against fixed allow ranges."""

    def __init__(self, extra_ranges: Optional[Iterable[str]] = None):
        """
        Args:
            extra_ranges: Additional CIDR blocks to exempt on top of
                ALLOW_RANGES. The built-in ranges cannot be removed.
        """
        ranges = list(ALLOW_RANGES) + list(extra_ranges or [])
        self.networks: Tuple[Network, ...] = tuple(
            ipaddress.ip_network(r, strict=False) for r in ranges
        )

    def __len__(self) -> int:
        return len(self.networks)

    def contains(self, entry: str) -> bool:
        """
        Check whether an address, or a whole CIDR block, lies inside an
        allow range.
        """
        try:
            if '/' in entry:
                block = ipaddress.ip_network(entry, strict=False)
                return any(
                    block.version == net.version and block.subnet_of(net)
                    for net in self.networks
                )
            address = ipaddress.ip_address(entry)
        except ValueError:
            return False
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
            address = address.ipv4_mapped
        return any(address in net for net in self.networks)
