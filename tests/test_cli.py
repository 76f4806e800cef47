#!/usr/bin/env python3
"""
Tests for the feedwarden command line interface.

Sources in these tests point at blocked hosts, so no network is touched.
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from feedwarden.feeds.cache import FeedCache
from feedwarden.feeds.cli import main
from feedwarden.feeds.sources import FeedSource


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "feedwarden.yaml"
    path.write_text(
        "feeds:\n"
        "  sources:\n"
        "    - http://127.0.0.1/feed.txt\n"
        "    - http://internal.corp/feed.txt?token=abc\n"
        f"  cache_dir: {tmp_path / 'cache'}\n"
    )
    return str(path)


class TestCli:
    def test_no_command_prints_help(self, config, capsys):
        assert main(["--config", config]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_sources(self, config, capsys):
        assert main(["--config", config, "sources"]) == 0
        out = capsys.readouterr().out
        assert "http://127.0.0.1/feed.txt" in out
        assert "token=abc" not in out

    def test_refresh_all_failed(self, config, capsys):
        """Every source is SSRF-blocked, so the run fails without any connection."""
        assert main(["--config", config, "refresh", "--json"]) == 1
        data = json.loads(capsys.readouterr().out)
        assert data['sources'] == 2
        assert data['failed'] == 2
        assert data['suspicious_count'] == 0

    def test_list_serves_cached_slots(self, config, tmp_path, capsys):
        cache = FeedCache(str(tmp_path / "cache"))
        cache.write_slot(FeedSource(index=0, url="http://127.0.0.1/feed.txt"), {"1.2.3.4"})

        assert main(["--config", config, "list", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data == {"1.2.3.4": "http://127.0.0.1/feed.txt"}

    def test_status(self, config, capsys):
        assert main(["--config", config, "status"]) == 0
        out = capsys.readouterr().out
        assert "Missing slots:   2" in out

    def test_clear_cache(self, config, tmp_path, capsys):
        cache = FeedCache(str(tmp_path / "cache"))
        cache.write_slot(FeedSource(index=0, url="http://127.0.0.1/feed.txt"), {"1.2.3.4"})

        assert main(["--config", config, "clear-cache"]) == 0
        assert "Deleted 1 cached feed files" in capsys.readouterr().out

    def test_cache_dir_override(self, config, tmp_path, capsys):
        other = tmp_path / "other"
        assert main(["--config", config, "--cache-dir", str(other), "status"]) == 0
        assert str(other) in capsys.readouterr().out
