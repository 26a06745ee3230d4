"""
Live Segment Store
==================

In-memory holder of the current HLS playlist and its media segments.

Design Rules:
    - One reader/writer lock guards the manifest and the segment map as a unit
    - Writes are exclusive, reads are shared
    - A new manifest REPLACES the previous one; nothing is ever appended
    - Segments outside the current window are evicted after a grace period
    - No partial blob is ever observable: bytes are fully received before
      they are published under the lock
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from webcam_hls.store.lock import ReadWriteLock
from webcam_hls.store.playlist import PARSE_ERRORS, referenced_segments


logger = logging.getLogger(__name__)


SEGMENT_CONTENT_TYPE = "video/mp2t"
MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"


@dataclass(frozen=True, slots=True)
class StoredSegment:
    """Segment bytes plus the monotonic time they were stored."""

    data: bytes
    stored_at: float


class LiveSegmentStore:
    """
    Concurrency-safe store for the live playlist and segments.

    Attributes:
        grace_period: Seconds an unreferenced segment survives before eviction
        manifest_version: Number of manifest replacements so far

    Example:
        store = LiveSegmentStore(grace_period=10.0)

        await store.put_segment("segment_000.ts", data)
        await store.ingest_manifest(playlist_bytes)

        manifest = await store.get_manifest()  # None until first put
    """

    def __init__(
        self,
        grace_period: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.grace_period = grace_period
        self._clock = clock
        self._lock = ReadWriteLock()

        self._segments: Dict[str, StoredSegment] = {}
        self._manifest: Optional[bytes] = None
        self._manifest_version: int = 0
        self._evicted_count: int = 0
        self._segments_ingested: int = 0

    @property
    def manifest_version(self) -> int:
        return self._manifest_version

    async def put_segment(self, name: str, data: bytes) -> None:
        """Store or overwrite a segment."""
        entry = StoredSegment(data=bytes(data), stored_at=self._clock())
        async with self._lock.write():
            replaced = name in self._segments
            self._segments[name] = entry
            self._segments_ingested += 1

        if replaced:
            logger.debug(f"Segment overwritten: {name} ({len(data)} bytes)")
        else:
            logger.debug(f"Segment stored: {name} ({len(data)} bytes)")

    async def get_segment(self, name: str) -> Optional[bytes]:
        """Segment bytes, or None if the name was never stored or was evicted."""
        async with self._lock.read():
            entry = self._segments.get(name)
        return entry.data if entry is not None else None

    async def put_manifest(self, data: bytes) -> int:
        """
        Replace the current manifest wholesale.

        Returns:
            The new manifest version
        """
        manifest = bytes(data)
        async with self._lock.write():
            self._manifest = manifest
            self._manifest_version += 1
            version = self._manifest_version
        return version

    async def get_manifest(self) -> Optional[bytes]:
        """Current manifest, or None before the first manifest is written."""
        async with self._lock.read():
            return self._manifest

    async def evict_stale(self, referenced_names: Iterable[str]) -> List[str]:
        """
        Remove segments outside `referenced_names` older than the grace period.

        Args:
            referenced_names: Segment names the current manifest references

        Returns:
            Names of evicted segments
        """
        keep = set(referenced_names)
        async with self._lock.write():
            cutoff = self._clock() - self.grace_period
            stale = [
                name
                for name, entry in self._segments.items()
                if name not in keep and entry.stored_at <= cutoff
            ]
            for name in stale:
                del self._segments[name]
            self._evicted_count += len(stale)

        if stale:
            logger.debug(f"Evicted {len(stale)} stale segment(s): {', '.join(stale)}")
        return stale

    async def ingest_manifest(self, data: bytes) -> int:
        """
        Replace the manifest, then evict segments it no longer references.

        Returns:
            The new manifest version
        """
        version = await self.put_manifest(data)
        try:
            names = referenced_segments(data)
        except PARSE_ERRORS as e:
            logger.warning(f"Manifest v{version} not parseable, eviction skipped: {e}")
            return version

        await self.evict_stale(names)
        logger.debug(f"Manifest v{version} references: {', '.join(names) or '-'}")
        return version

    async def segment_names(self) -> List[str]:
        async with self._lock.read():
            return sorted(self._segments)

    async def stats(self) -> dict:
        """
        Get store metrics for observability.

        Returns:
            Dict with segment_count, total_bytes, manifest_version,
            segments_ingested, evicted_count
        """
        async with self._lock.read():
            return {
                "segment_count": len(self._segments),
                "total_bytes": sum(len(s.data) for s in self._segments.values()),
                "manifest_version": self._manifest_version,
                "segments_ingested": self._segments_ingested,
                "evicted_count": self._evicted_count,
            }
