#!/usr/bin/env python3
"""
Tests for address classification and SSRF host checks.
"""

import socket
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from feedwarden.utils.addresses import (
    AddressClass,
    classify_address,
    is_private_host,
    is_private_or_reserved,
    is_valid_address,
    is_valid_cidr,
    is_valid_entry,
    resolve_host,
)


PRIVATE_ADDRESSES = [
    "127.0.0.1",
    "127.255.255.254",
    "10.1.2.3",
    "172.16.0.1",
    "172.31.255.255",
    "192.168.1.1",
    "169.254.169.254",
    "100.64.0.1",
    "100.127.255.255",
    "0.0.0.0",
    "0.1.2.3",
    "::1",
    "::",
    "fe80::1",
    "fc00::1",
    "fd12:3456::1",
    "::ffff:127.0.0.1",
    "::ffff:10.0.0.1",
    "::ffff:192.168.0.1",
]

PUBLIC_ADDRESSES = [
    "8.8.8.8",
    "1.1.1.1",
    "45.33.32.156",
    "185.220.101.1",
    "100.63.255.255",
    "100.128.0.1",
    "2001:4860:4860::8888",
    "2606:4700:4700::1111",
    "::ffff:8.8.8.8",
]


class TestClassifyAddress:
    """Tests for the tri-state classifier."""

    @pytest.mark.parametrize("address", PRIVATE_ADDRESSES)
    def test_private_addresses(self, address):
        assert classify_address(address) is AddressClass.PRIVATE
        assert is_private_or_reserved(address)

    @pytest.mark.parametrize("address", PUBLIC_ADDRESSES)
    def test_public_addresses(self, address):
        assert classify_address(address) is AddressClass.PUBLIC
        assert not is_private_or_reserved(address)

    @pytest.mark.parametrize("text", ["", "not-an-ip", "256.1.1.1", "1.2.3", "01.2.3.4", None])
    def test_invalid_is_blocked(self, text):
        """Unparsable input is invalid and counts as private (fail closed)."""
        assert classify_address(text) is AddressClass.INVALID
        assert is_private_or_reserved(text)


class TestAddressValidation:
    """Tests for feed token validation."""

    def test_valid_ipv4(self):
        assert is_valid_address("1.2.3.4")
        assert is_valid_address("255.255.255.255")

    def test_valid_ipv6(self):
        assert is_valid_address("2001:db8::1")
        assert is_valid_address("::1")

    def test_zero_address_rejected(self):
        """0.0.0.0 is a placeholder value in feeds, not an attacker."""
        assert not is_valid_address("0.0.0.0")

    @pytest.mark.parametrize("token", ["", "1.2.3.4.5", "1.2.3.256", "abc", "1.2.3.4 ", "fe80::1%eth0"])
    def test_invalid_addresses(self, token):
        assert not is_valid_address(token)

    def test_non_string_rejected(self):
        assert not is_valid_address(None)
        assert not is_valid_address(16909060)

    def test_valid_cidr(self):
        assert is_valid_cidr("10.0.0.0/8")
        assert is_valid_cidr("1.2.3.4/32")
        assert is_valid_cidr("1.2.3.4/0")
        assert is_valid_cidr("2001:db8::/32")
        assert is_valid_cidr("2001:db8::/128")

    def test_cidr_host_bits_allowed(self):
        assert is_valid_cidr("1.2.3.4/24")

    @pytest.mark.parametrize("token", [
        "1.2.3.4/33",
        "2001:db8::/129",
        "1.2.3.4/",
        "1.2.3.4/a",
        "1.2.3.4/-1",
        "1.2.3.4/24/8",
        "/24",
        "0.0.0.0/8",
        "1.2.3/24",
    ])
    def test_invalid_cidr(self, token):
        assert not is_valid_cidr(token)

    def test_entry_dispatch(self):
        assert is_valid_entry("1.2.3.4")
        assert is_valid_entry("1.2.3.0/24")
        assert not is_valid_entry("1.2.3.0/40")
        assert not is_valid_entry(None)


def _resolver(mapping):
    def resolve(host):
        return mapping.get(host, [])
    return resolve


class TestPrivateHost:
    """Tests for SSRF host classification."""

    @pytest.mark.parametrize("host", [
        "localhost",
        "LOCALHOST",
        "localhost.localdomain",
        "127.0.0.1",
        "::1",
        "[::1]",
        "0.0.0.0",
        "0",
        "10.0.0.5",
        "169.254.169.254",
        "::ffff:127.0.0.1",
    ])
    def test_blocked_literals(self, host):
        assert is_private_host(host, resolver=_resolver({}))

    @pytest.mark.parametrize("host", [
        "printer.local",
        "internal.corp",
        "db.internal",
        "router.home",
        "nas.lan",
        "app.localhost",
        "box.localdomain",
    ])
    def test_blocked_suffixes(self, host):
        """Internal suffixes are blocked even if they resolve publicly."""
        resolver = _resolver({host: ["93.184.216.34"]})
        assert is_private_host(host, resolver=resolver)

    @pytest.mark.parametrize("host", ["0177.0.0.1", "2130706433", "127.1", "0x7f.1"])
    def test_numeric_bypass_forms(self, host):
        assert is_private_host(host, resolver=_resolver({host: ["93.184.216.34"]}))

    def test_public_literal_allowed(self):
        assert not is_private_host("8.8.8.8", resolver=_resolver({}))

    def test_public_hostname_allowed(self):
        resolver = _resolver({"feeds.example.com": ["93.184.216.34", "93.184.216.35"]})
        assert not is_private_host("feeds.example.com", resolver=resolver)

    def test_any_private_answer_blocks(self):
        """A single private address in the answer set blocks the host."""
        resolver = _resolver({"rebind.example.com": ["93.184.216.34", "127.0.0.1"]})
        assert is_private_host("rebind.example.com", resolver=resolver)

    def test_unresolvable_blocked(self):
        assert is_private_host("nxdomain.example.com", resolver=_resolver({}))

    def test_empty_host_blocked(self):
        assert is_private_host("")
        assert is_private_host(None)

    def test_trailing_dot_normalized(self):
        assert is_private_host("printer.local.", resolver=_resolver({}))


class TestResolveHost:
    """Tests for DNS resolution."""

    def test_returns_all_unique_addresses(self, monkeypatch):
        def fake_getaddrinfo(host, port, *args, **kwargs):
            return [
                (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0)),
                (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.35", 0)),
                (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0)),
                (socket.AF_INET6, socket.SOCK_STREAM, 6, "", ("2606:2800:220:1::1", 0, 0, 0)),
            ]

        monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
        assert resolve_host("example.com") == [
            "93.184.216.34",
            "93.184.216.35",
            "2606:2800:220:1::1",
        ]

    def test_failure_returns_empty(self, monkeypatch):
        def fake_getaddrinfo(*args, **kwargs):
            raise socket.gaierror("no such host")

        monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
        assert resolve_host("nxdomain.example.com") == []

    def test_default_resolver_used(self, monkeypatch):
        """is_private_host resolves through socket.getaddrinfo by default."""
        def fake_getaddrinfo(host, port, *args, **kwargs):
            return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.7", 0))]

        monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
        assert is_private_host("sneaky.example.com")
