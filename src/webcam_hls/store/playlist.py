"""
Playlist Helpers
================

HLS media playlist inspection on top of the m3u8 library.

Only what the store needs: which names a playlist references. That is every
media segment URI plus any initialization section (EXT-X-MAP). URIs may be
relative ("segment_001.ts") or absolute ("http://127.0.0.1:8080/segment_001.ts");
both reduce to the last path component, which is the name segments are
stored under.
"""

from typing import List, Optional
from urllib.parse import urlparse

import m3u8
from m3u8.parser import ParseError


PLAYLIST_HEADER = "#EXTM3U"

PARSE_ERRORS = (ParseError, ValueError)


def _decode(manifest: bytes) -> str:
    return manifest.decode("utf-8", errors="replace").lstrip("\ufeff")


def _name_of(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    path = urlparse(uri).path or uri
    return path.rsplit("/", 1)[-1] or None


def referenced_segments(manifest: bytes) -> List[str]:
    """
    Extract names referenced by a media playlist, in order.

    Args:
        manifest: Raw playlist bytes

    Returns:
        Segment and init-section names (last URI path component),
        without duplicates

    Raises:
        ParseError, ValueError: If m3u8 cannot parse the playlist
    """
    playlist = m3u8.loads(_decode(manifest))

    names: List[str] = []
    for segment in playlist.segments:
        init_section = segment.init_section
        for uri in (init_section.uri if init_section else None, segment.uri):
            name = _name_of(uri)
            if name and name not in names:
                names.append(name)
    return names


def is_well_formed(manifest: bytes) -> bool:
    """True if the playlist starts with #EXTM3U, parses, and lists at least one segment."""
    text = _decode(manifest)
    lines = text.splitlines()
    if not lines or lines[0].strip() != PLAYLIST_HEADER:
        return False
    try:
        playlist = m3u8.loads(text)
    except PARSE_ERRORS:
        return False
    return len(playlist.segments) > 0
