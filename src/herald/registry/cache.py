"""Per-cluster address cache.

Each cluster maps to an immutable ``frozenset`` that is swapped under a lock,
so readers always get a complete set and never see one mid-update.
"""

import threading
from typing import Dict, Iterable, List

from .address import ServiceAddress
from .events import Event, EventType


class AddressCache:
    """Thread-safe cluster -> addresses map."""

    def __init__(self):
        self._lock = threading.Lock()
        self._clusters: Dict[str, frozenset[ServiceAddress]] = {}

    def replace_snapshot(self, cluster: str, addresses: Iterable[ServiceAddress]) -> None:
        """Replace the whole set for *cluster*; an empty snapshot empties it."""
        snapshot = frozenset(addresses)
        with self._lock:
            self._clusters[cluster] = snapshot

    def apply_event(self, cluster: str, event: Event) -> None:
        with self._lock:
            current = self._clusters.get(cluster, frozenset())
            if event.type is EventType.REGISTER:
                self._clusters[cluster] = current | {event.address}
            else:
                self._clusters[cluster] = current - {event.address}

    def get(self, cluster: str) -> List[ServiceAddress]:
        with self._lock:
            snapshot = self._clusters.get(cluster, frozenset())
        return sorted(snapshot)

    def contains(self, cluster: str) -> bool:
        with self._lock:
            return cluster in self._clusters

    def clusters(self) -> List[str]:
        with self._lock:
            return list(self._clusters)
