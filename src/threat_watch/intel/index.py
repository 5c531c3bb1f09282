# Intel Module - Indexing Collaborator
#
# The pipeline hands every published Threat to zero or more indexers
# through ``index(threat)``.  Indexing must be idempotent on ``id``:
# re-indexing the same id replaces the stored record.
#
# MemoryIndex is the in-process implementation used by the API and
# tests; search backends plug in by implementing the same method.

import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from .models import Threat
from .severity import Severity


@runtime_checkable
class ThreatIndexer(Protocol):
    def index(self, threat: Threat) -> None: ...


class MemoryIndex:
    """Thread-safe id -> Threat map with simple lookups."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: Dict[str, Threat] = {}

    def index(self, threat: Threat) -> None:
        with self._lock:
            self._by_id[threat.id] = threat

    def get(self, threat_id: str) -> Optional[Threat]:
        with self._lock:
            return self._by_id.get(threat_id)

    def search(
        self,
        text: str = "",
        severity: Optional[Severity] = None,
        source: Optional[str] = None,
    ) -> List[Threat]:
        """Case-insensitive match on title, description, tags and indicator values."""
        needle = text.lower().strip()
        with self._lock:
            threats = list(self._by_id.values())

        results = []
        for threat in threats:
            if severity is not None and threat.severity != severity:
                continue
            if source is not None and threat.source != source:
                continue
            if needle:
                haystack = " ".join(
                    [threat.title, threat.description, *threat.tags]
                    + [i.value for i in threat.indicators]
                ).lower()
                if needle not in haystack:
                    continue
            results.append(threat)
        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
