# Intel Module - Deduplicator
#
# Collapses records that share an identity key.  The key is the threat
# type plus its indicator values in source order; the source is not part
# of it, so two feeds reporting the same indicator under the same type
# collapse to whichever record came first.
#
# The filter is a single left-to-right pass: first occurrence wins,
# later ones are dropped.  It is idempotent and order preserving.

from typing import Iterable, List, Set

from .models import Threat


def identity_key(threat: Threat) -> str:
    """``<type>-<v1>,<v2>,...`` over the indicators in their given order."""
    return threat.dedup_key


def deduplicate(threats: Iterable[Threat]) -> List[Threat]:
    """Keep the first Threat seen under each identity key."""
    seen: Set[str] = set()
    kept: List[Threat] = []
    for threat in threats:
        key = identity_key(threat)
        if key in seen:
            continue
        seen.add(key)
        kept.append(threat)
    return kept
