"""
Fingerprint cache keyed by dataset id and content version.

Fingerprints are pure functions of a dataset snapshot, so a host that re-runs
detection after adding one dataset can reuse the fingerprints of the others.
The cache is explicit and caller-owned: nothing in the engine keeps a global
instance, and a changed snapshot gets a new version so stale entries are
never returned.
"""

import hashlib
import json
from collections import OrderedDict
from typing import TYPE_CHECKING

import structlog

from data_connector.core.models import ColumnFingerprint, Dataset

if TYPE_CHECKING:
    from data_connector.core.fingerprint import ColumnFingerprinter

logger = structlog.get_logger()


def compute_dataset_version(dataset: Dataset) -> str:
    """
    Compute content hash of a dataset snapshot.

    Row order is part of the version because stride sampling depends on it.

    Args:
        dataset: Dataset snapshot

    Returns:
        16-character hex hash (stable for identical content)

    Example:
        >>> compute_dataset_version(orders) == compute_dataset_version(orders)
        True
    """
    hasher = hashlib.sha256()
    manifest = [(col.name, col.type.value) for col in dataset.columns]
    hasher.update(json.dumps(manifest).encode())
    for row in dataset.rows:
        hasher.update(json.dumps(row, sort_keys=True, default=str).encode())
        hasher.update(b"\n")
    return hasher.hexdigest()[:16]


class FingerprintCache:
    """
    LRU cache of per-dataset fingerprints.

    Entries are keyed by (dataset_id, dataset_version, sample_cap) so a
    fingerprinter configured with a different sample cap never reads
    another configuration's results.
    """

    def __init__(self, max_size: int = 64) -> None:
        """
        Initialize fingerprint cache.

        Args:
            max_size: Maximum number of datasets kept (default: 64)
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._entries: OrderedDict[tuple[str, str, int], dict[str, ColumnFingerprint]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, dataset_id: str, version: str, sample_cap: int) -> dict[str, ColumnFingerprint] | None:
        key = (dataset_id, version, sample_cap)
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, dataset_id: str, version: str, sample_cap: int, fingerprints: dict[str, ColumnFingerprint]) -> None:
        """Store fingerprints, evicting the least recently used dataset when full."""
        key = (dataset_id, version, sample_cap)
        self._entries[key] = dict(fingerprints)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("fingerprint_cache_evicted", dataset_id=evicted[0], version=evicted[1])

    def get_or_compute(self, dataset: Dataset, fingerprinter: "ColumnFingerprinter") -> dict[str, ColumnFingerprint]:
        """
        Return cached fingerprints for ``dataset`` or compute and store them.

        Args:
            dataset: Dataset snapshot
            fingerprinter: ColumnFingerprinter used on a miss

        Returns:
            Column name -> fingerprint (a copy; mutating it does not touch the cache)
        """
        version = compute_dataset_version(dataset)
        sample_cap = fingerprinter.config.sample_cap
        cached = self.get(dataset.id, version, sample_cap)
        if cached is not None:
            self.hits += 1
            return dict(cached)

        self.misses += 1
        fingerprints = fingerprinter.fingerprint_dataset(dataset)
        self.put(dataset.id, version, sample_cap, fingerprints)
        return dict(fingerprints)

    def invalidate(self, dataset_id: str) -> None:
        """Drop every cached version of one dataset."""
        for key in [key for key in self._entries if key[0] == dataset_id]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
