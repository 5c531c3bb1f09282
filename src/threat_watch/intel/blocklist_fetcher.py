# Intel Module - Line-list Blocklist Adapters
#
# Many free feeds publish nothing but a list of IPs or URLs, one per
# line (or one per CSV row).  Presence on the list is the only signal,
# so each feed carries a fixed severity.  One BlocklistFetcher class
# handles them all; what differs per feed is captured in a LineListFeed
# descriptor.
#
#   Feed              Kind  Severity  Type
#   blocklist.de      ip    Medium    malicious-ip
#   Emerging Threats  ip    High      compromised-ip
#   OpenPhish         url   High      phishing
#   Feodo Tracker     ip    Critical  c2-server
#   GreenSnow         ip    High      malicious-ip
#   CINSscore         ip    Medium    malicious-ip
#   SSLBL (CSV)       ip    High      ssl-blacklist
#   Tor exit nodes    ip    Low       anonymity

import base64
import csv
import io
import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlparse

from .fetcher import FeedFetcher
from .models import Threat, TransportKind
from .severity import FixedSeverity, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineListFeed:
    """Everything that distinguishes one line-list feed from another."""

    name: str               # registry / config name
    source: str             # display name on the Threat
    url: str
    id_prefix: str
    kind: str               # "ip" or "url"
    severity: Severity
    threat_type: str
    title: str              # format string, {value} / {host}
    description: str
    tags: Tuple[str, ...]
    transport: TransportKind = TransportKind.LINE_TEXT
    value_column: int = 0   # CSV only
    timestamp_column: Optional[int] = None  # CSV only


LINE_LIST_FEEDS: Dict[str, LineListFeed] = {
    feed.name: feed
    for feed in (
        LineListFeed(
            name="blocklist_de",
            source="Blocklist.de",
            url="https://lists.blocklist.de/lists/all.txt",
            id_prefix="blocklistde",
            kind="ip",
            severity=Severity.MEDIUM,
            threat_type="malicious-ip",
            title="Malicious IP - {value}",
            description="IP address reported for malicious activity",
            tags=("abuse", "malicious-ip"),
        ),
        LineListFeed(
            name="emerging_threats",
            source="Emerging Threats",
            url="https://rules.emergingthreats.net/blockrules/compromised-ips.txt",
            id_prefix="et",
            kind="ip",
            severity=Severity.HIGH,
            threat_type="compromised-ip",
            title="Compromised IP - {value}",
            description="IP identified in malicious activity by Emerging Threats",
            tags=("compromised", "emerging-threats"),
        ),
        LineListFeed(
            name="openphish",
            source="OpenPhish",
            url="https://openphish.com/feed.txt",
            id_prefix="openphish",
            kind="url",
            severity=Severity.HIGH,
            threat_type="phishing",
            title="Phishing URL - {host}",
            description="Active phishing site identified by OpenPhish",
            tags=("phishing", "openphish"),
        ),
        LineListFeed(
            name="feodo",
            source="Feodo Tracker",
            url="https://feodotracker.abuse.ch/downloads/ipblocklist.txt",
            id_prefix="feodo",
            kind="ip",
            severity=Severity.CRITICAL,
            threat_type="c2-server",
            title="Botnet C2 - {value}",
            description="IP associated with Feodo/Emotet/Dridex botnet C2 server",
            tags=("botnet", "c2", "feodo"),
        ),
        LineListFeed(
            name="greensnow",
            source="GreenSnow",
            url="https://blocklist.greensnow.co/greensnow.txt",
            id_prefix="greensnow",
            kind="ip",
            severity=Severity.HIGH,
            threat_type="malicious-ip",
            title="Malicious IP - {value}",
            description="IP address identified in malicious activities by GreenSnow",
            tags=("malicious", "greensnow"),
        ),
        LineListFeed(
            name="cinsscore",
            source="CINSscore",
            url="https://cinsscore.com/list/ci-badguys.txt",
            id_prefix="cinsscore",
            kind="ip",
            severity=Severity.MEDIUM,
            threat_type="malicious-ip",
            title="Malicious IP - {value}",
            description="IP address identified in malicious activities by CINSscore",
            tags=("malicious", "cinsscore"),
        ),
        LineListFeed(
            name="sslbl",
            source="SSL Blacklist",
            url="https://sslbl.abuse.ch/blacklist/sslipblacklist.csv",
            id_prefix="sslbl",
            kind="ip",
            severity=Severity.HIGH,
            threat_type="ssl-blacklist",
            title="SSL Blacklisted IP - {value}",
            description="IP associated with malicious SSL certificates",
            tags=("ssl", "blacklist"),
            transport=TransportKind.CSV,
            value_column=1,
            timestamp_column=0,
        ),
        LineListFeed(
            name="tor_exit_nodes",
            source="Tor Project",
            url="https://check.torproject.org/torbulkexitlist",
            id_prefix="tor",
            kind="ip",
            severity=Severity.LOW,
            threat_type="anonymity",
            title="Tor Exit Node - {value}",
            description="Active Tor exit node",
            tags=("tor", "anonymity"),
        ),
    )
}


def _valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _url_host(value: str) -> Optional[str]:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return parsed.hostname


class BlocklistFetcher(FeedFetcher):
    """Plain-text or CSV blocklist with a fixed severity."""

    def __init__(self, feed: LineListFeed):
        super().__init__(feed.name, feed.url)
        self.feed = feed
        self.transport = feed.transport
        self.severity_table = FixedSeverity(feed.severity)

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        text = self._get_text(self._base_url)

        records: List[Threat] = []
        seen = set()
        skipped = 0
        for value, timestamp in self._iter_entries(text):
            if value in seen:
                continue
            threat = self._to_threat(value, timestamp, fetched_at)
            if threat is None:
                skipped += 1
                continue
            seen.add(value)
            records.append(threat)

        if skipped:
            self.record_skipped(skipped)
            logger.info("Feed %s skipped %d malformed lines", self.name, skipped)
        return records

    def _iter_entries(self, text: str) -> Iterator[Tuple[str, Optional[str]]]:
        """Yield ``(value, timestamp)`` for each non-comment entry."""
        lines = (
            line.strip() for line in text.splitlines()
        )
        lines = [line for line in lines if line and not line.startswith("#")]

        if self.feed.transport != TransportKind.CSV:
            for line in lines:
                # Some lists append comments or scores after the value
                yield line.split()[0], None
            return

        for row in csv.reader(io.StringIO("\n".join(lines))):
            if len(row) <= self.feed.value_column:
                yield "", None
                continue
            timestamp = None
            col = self.feed.timestamp_column
            if col is not None and col < len(row):
                timestamp = row[col].strip()
            yield row[self.feed.value_column].strip(), timestamp

    def _to_threat(
        self, value: str, timestamp: Optional[str], fetched_at: str
    ) -> Optional[Threat]:
        feed = self.feed
        if feed.kind == "ip":
            if not _valid_ip(value):
                return None
            host = value
            natural_key = value
        else:
            host = _url_host(value)
            if host is None:
                return None
            natural_key = base64.urlsafe_b64encode(value.encode()).decode()

        return Threat.create(
            id=f"{feed.id_prefix}-{natural_key}",
            title=feed.title.format(value=value, host=host),
            description=feed.description,
            severity=self.severity_table(),
            type=feed.threat_type,
            source=feed.source,
            timestamp=timestamp,
            indicators=[(feed.kind, value)],
            tags=feed.tags,
            fetched_at=fetched_at,
        )
