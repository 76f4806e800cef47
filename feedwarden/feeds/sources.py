#!/usr/bin/env python3
"""
Feed source definitions.

A source is identified by its position in the configured list; the
position also names its cache slot, so reordering the list invalidates
the mapping between slots and URLs.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List

logger = logging.getLogger('feedwarden.feeds.sources')


@dataclass(frozen=True)
class FeedSource:
    """One configured threat feed"""
    index: int
    url: str

    @property
    def label(self) -> str:
        return self.url


DEFAULT_SOURCES = (
    'https://www.neblink.net/blocklist/KnownScanners.txt',
    'https://lists.blocklist.de/lists/bruteforcelogin.txt',
    'https://lists.blocklist.de/lists/strongips.txt',
    'https://cinsscore.com/list/ci-badguys.txt',
    'https://feodotracker.abuse.ch/downloads/ipblocklist.csv',
    'https://report.cs.rutgers.edu/DROP/attackers',
    'https://mirai.security.gives/data/ip_list.txt',
    'https://rules.emergingthreats.net/blockrules/compromised-ips.txt',
    'https://rescure.me/rescure_blacklist.txt',
    'https://gist.githubusercontent.com/gnremy/c546c7911d5f876f263309d7161a7217/raw/eac647ffb2e2cc1193be7e8b2f9cf96080278a04/CVE-2021-44228_IPs.csv',
    'https://feodotracker.abuse.ch/downloads/ipblocklist_recommended.txt',
    'https://raw.githubusercontent.com/scriptzteam/IP-BlockList-v4/master/ips.txt',
    'https://blocklist.greensnow.co/greensnow.txt',
    'https://www.neblink.net/blocklist/IP-Blocklist-clean.txt',
    'https://raw.githubusercontent.com/stamparm/ipsum/master/ipsum.txt',
    'https://raw.githubusercontent.com/tg12/bad_packets_blocklist/master/bad_packets_list.txt',
    'https://www.matthewroberts.io/api/threatlist/latest',
    'https://reputation.alienvault.com/reputation.generic',
    'https://raw.githubusercontent.com/m-holler/BAD-RDP-IP/master/ABUSEIPDB_1.txt',
    'https://raw.githubusercontent.com/m-holler/BAD-RDP-IP/master/ABUSEIPDB_2.txt',
    'https://raw.githubusercontent.com/m-holler/BAD-RDP-IP/master/ABUSEIPDB.txt',
    'https://raw.githubusercontent.com/m-holler/BAD-RDP-IP/master/ROFA_BLOCK_IP.txt',
    'https://cdn.jsdelivr.net/gh/LittleJake/ip-blacklist/all_blacklist.txt',
    'https://cdn.jsdelivr.net/gh/LittleJake/ip-blacklist/abuseipdb_blacklist_ip_score_75.txt',
    'https://cdn.jsdelivr.net/gh/LittleJake/ip-blacklist/abuseipdb_blacklist_ip_score_100.txt',
    'https://cdn.jsdelivr.net/gh/LittleJake/ip-blacklist/ustc_blacklist_ip.txt',
    'https://rjmblocklist.com/sizzling/freships.txt',
    'https://rjmblocklist.com/sizzling/worst.txt',
    'https://rjmblocklist.com/free/badips.txt',
    'https://lists.blocklist.de/lists/all.txt',
    'https://lists.blocklist.de/lists/bots.txt',
    'https://sslbl.abuse.ch/blacklist/sslipblacklist.txt',
)


def load_sources(urls: Iterable[str]) -> List[FeedSource]:
    """
    Build FeedSource objects from an ordered URL list.

    Non-string or blank entries are skipped but still consume their
    position, so later sources keep stable slot names.
    """
    sources = []
    for index, url in enumerate(urls):
        if not isinstance(url, str) or not url.strip():
            logger.warning(f"Skipping invalid feed source at position {index}")
            continue
        sources.append(FeedSource(index=index, url=url.strip()))
    return sources
