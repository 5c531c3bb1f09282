# Intel Module - Geo Enrichment Hook
#
# Optional per-indicator geo lookup for threats that arrive without a
# location.  Lookups go to an ipapi.co-compatible endpoint
# (GET {base}/{ip}/json/) with a bounded timeout; any failure yields the
# UNKNOWN_GEO sentinel and the threat is left as it was.
#
# A cycle never waits on enrichment for longer than ``budget_seconds``
# and never issues more than ``max_lookups`` requests.

import logging
import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence

import httpx

from .fetcher import USER_AGENT
from .models import UNKNOWN_REGION, Location, Threat

logger = logging.getLogger(__name__)

DEFAULT_GEO_URL = "https://ipapi.co"
DEFAULT_LOOKUP_TIMEOUT = 3.0
DEFAULT_MAX_LOOKUPS = 20
DEFAULT_BUDGET_SEC = 10.0
DEFAULT_MAX_CACHE = 1024


@dataclass(frozen=True)
class GeoLocation:
    """Result of one IP geo lookup."""

    lat: float = 0.0
    lng: float = 0.0
    country: str = UNKNOWN_REGION
    city: str = UNKNOWN_REGION
    region: str = UNKNOWN_REGION

    @property
    def is_unknown(self) -> bool:
        return self.country == UNKNOWN_REGION and self.region == UNKNOWN_REGION

    def to_location(self) -> Location:
        """Threat location; the country doubles as the display region."""
        region = self.country if self.country != UNKNOWN_REGION else self.region
        return Location(lat=self.lat, lng=self.lng, region=region)


UNKNOWN_GEO = GeoLocation()


def random_display_point(rng: Optional[random.Random] = None) -> Location:
    """A random map point for records with no geo hint.

    Presentation only: the aggregation pipeline never calls this, and
    the region stays ``Unknown``.
    """
    rng = rng or random
    return Location(
        lat=rng.uniform(-90.0, 90.0),
        lng=rng.uniform(-180.0, 180.0),
        region=UNKNOWN_REGION,
    )


class GeoEnricher:
    """Fill in locations for IP-bearing threats with an unknown region.

    Args:
        base_url: ipapi.co-compatible service root.
        timeout: Per-lookup timeout in seconds.
        max_lookups: Network lookups allowed per ``enrich()`` call.
        budget_seconds: Wall-clock ceiling for one ``enrich()`` call.
        max_cache: Most locations kept; the least recently used is evicted.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_GEO_URL,
        timeout: float = DEFAULT_LOOKUP_TIMEOUT,
        max_lookups: int = DEFAULT_MAX_LOOKUPS,
        budget_seconds: float = DEFAULT_BUDGET_SEC,
        max_cache: int = DEFAULT_MAX_CACHE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_lookups = max_lookups
        self._budget = budget_seconds
        self._max_cache = max(1, max_cache)
        self._clock = clock

        self._cache: "OrderedDict[str, GeoLocation]" = OrderedDict()
        self._cache_lock = threading.Lock()
        self._lookups = 0
        self._failures = 0

    def lookup(self, ip: str, timeout: Optional[float] = None) -> GeoLocation:
        """Geo-locate one IP.  Returns UNKNOWN_GEO on any failure."""
        with self._cache_lock:
            cached = self._cache.get(ip)
            if cached is not None:
                self._cache.move_to_end(ip)
        if cached is not None:
            return cached

        self._lookups += 1
        try:
            resp = httpx.get(
                f"{self._base_url}/{ip}/json/",
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=timeout if timeout is not None else self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
            if data.get("error"):
                raise ValueError(data.get("reason") or "lookup refused")
            geo = GeoLocation(
                lat=float(data["latitude"]),
                lng=float(data["longitude"]),
                country=data.get("country_name") or UNKNOWN_REGION,
                city=data.get("city") or UNKNOWN_REGION,
                region=data.get("region") or UNKNOWN_REGION,
            )
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            self._failures += 1
            logger.debug("Geo lookup for %s failed: %s", ip, exc)
            return UNKNOWN_GEO

        with self._cache_lock:
            self._cache[ip] = geo
            self._cache.move_to_end(ip)
            while len(self._cache) > self._max_cache:
                self._cache.popitem(last=False)
        return geo

    def enrich(self, threats: Sequence[Threat]) -> List[Threat]:
        """Return ``threats`` with located copies where a lookup succeeded.

        Order and length are preserved; threats that already have a
        region, carry no ``ip`` indicator, or fall outside the lookup or
        time budget pass through unchanged.
        """
        start = self._clock()
        issued = 0
        enriched = 0
        result: List[Threat] = []

        for threat in threats:
            ind = threat.first_indicator("ip")
            if ind is None or not threat.location.is_unknown:
                result.append(threat)
                continue

            remaining = self._budget - (self._clock() - start)
            with self._cache_lock:
                cached = ind.value in self._cache
            if not cached and (issued >= self._max_lookups or remaining <= 0):
                result.append(threat)
                continue
            if not cached:
                issued += 1

            geo = self.lookup(ind.value, timeout=min(self._timeout, max(remaining, 0.1)))
            if geo.is_unknown:
                result.append(threat)
                continue
            result.append(replace(threat, location=geo.to_location()))
            enriched += 1

        if issued:
            logger.info(
                "Geo enrichment: %d lookups, %d threats located", issued, enriched,
            )
        return result

    def stats(self) -> Dict[str, int]:
        with self._cache_lock:
            cached = len(self._cache)
        return {
            "cached": cached,
            "lookups": self._lookups,
            "failures": self._failures,
        }
