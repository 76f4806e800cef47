#!/usr/bin/env python3
"""
feedwarden CLI - Refresh and inspect cached threat feeds.

Usage:
    feedwarden refresh
    feedwarden refresh --force --json
    feedwarden list
    feedwarden status
    feedwarden sources
    feedwarden clear-cache
"""

import argparse
import json
import logging
import sys

from ..utils.validation import redact_url
from .engine import AggregationEngine, AggregationResult


def format_summary(result: AggregationResult) -> str:
    """Format an aggregation run for human-readable output"""
    lines = []
    lines.append(f"\n{'='*60}")
    lines.append("  Threat Feed Aggregation")
    lines.append(f"{'='*60}")
    lines.append(f"  Sources:         {result.sources}")
    lines.append(f"  Refreshed:       {result.refreshed}")
    lines.append(f"  Failed:          {result.failed}")
    lines.append(f"  Suspicious:      {result.count}")
    lines.append(f"  Allowlisted:     {result.allowlisted}")

    if result.errors:
        lines.append("\n  Errors:")
        for err in result.errors:
            lines.append(f"     - {err}")

    lines.append(f"\n  Timestamp: {result.timestamp}")
    lines.append("")
    return "\n".join(lines)


def format_cache_stats(engine: AggregationEngine) -> str:
    """Format cache statistics for display"""
    stats = engine.get_cache_stats()

    lines = ["\n  Cache Statistics:"]
    lines.append("  " + "-" * 40)
    lines.append(f"  Sources:         {stats['sources']}")
    lines.append(f"  Fresh slots:     {stats['fresh_slots']}")
    lines.append(f"  Stale slots:     {stats['stale_slots']}")
    lines.append(f"  Missing slots:   {stats['missing_slots']}")
    lines.append(f"  Total entries:   {stats['total_entries']}")
    lines.append(f"  Expiry:          {stats['expiry_seconds']} seconds")
    lines.append(f"  Directory:       {stats['cache_dir']}")
    lines.append("")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedwarden",
        description="Threat intelligence feed aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  feedwarden refresh
  feedwarden refresh --force
  feedwarden list --json
  feedwarden clear-cache

Environment Variables:
  FEEDWARDEN_CACHE_DIR  - Cache directory (default: ~/.feedwarden/cache)
        """
    )
    parser.add_argument("-c", "--config", help="Path to YAML config file")
    parser.add_argument("--cache-dir", help="Cache directory override")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command")

    refresh = sub.add_parser("refresh", help="Refresh stale feeds and summarize")
    refresh.add_argument("--force", action="store_true", help="Refetch all feeds")
    refresh.add_argument("-j", "--json", action="store_true", help="Output JSON")

    listing = sub.add_parser("list", help="Print suspicious addresses")
    listing.add_argument("-j", "--json", action="store_true", help="Output JSON")

    sub.add_parser("status", help="Show cache statistics")
    sub.add_parser("sources", help="List configured feed sources")
    sub.add_parser("clear-cache", help="Delete all cached feed slots")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    engine = AggregationEngine(config_path=args.config, cache_dir=args.cache_dir)

    try:
        if args.command == "status":
            print(format_cache_stats(engine))
            return 0

        if args.command == "sources":
            for source in engine.sources:
                print(f"  {source.index:3}  {redact_url(source.url)}")
            return 0

        if args.command == "clear-cache":
            deleted = engine.clear_cache()
            print(f"Deleted {deleted} cached feed files. Feeds will be re-downloaded on next refresh.")
            return 0

        result = engine.run(force=getattr(args, "force", False))

        if args.command == "list":
            if args.json:
                print(json.dumps(dict(sorted(result.addresses.items())), indent=2))
            else:
                for entry, source in sorted(result.addresses.items()):
                    print(f"{entry}\t{redact_url(source)}")
        elif args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(format_summary(result))

        if result.sources and result.failed == result.sources:
            return 1
        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
