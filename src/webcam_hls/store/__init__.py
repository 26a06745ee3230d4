"""
Store Module
============

Transient in-memory storage for the live playlist and its segments.

    - LiveSegmentStore: Manifest + name-keyed segments under one RW lock
    - ReadWriteLock: Writer-preferring asyncio reader/writer lock
    - referenced_segments: Segment names listed by a playlist
"""

from webcam_hls.store.lock import ReadWriteLock
from webcam_hls.store.playlist import is_well_formed, referenced_segments
from webcam_hls.store.segment_store import (
    MANIFEST_CONTENT_TYPE,
    SEGMENT_CONTENT_TYPE,
    LiveSegmentStore,
    StoredSegment,
)


__all__ = [
    "LiveSegmentStore",
    "StoredSegment",
    "ReadWriteLock",
    "referenced_segments",
    "is_well_formed",
    "SEGMENT_CONTENT_TYPE",
    "MANIFEST_CONTENT_TYPE",
]
