#!/usr/bin/env python3
"""
Live Stream Smoke Check
=======================

Standalone script to watch a running relay from the viewer side.

This script:
    1. Polls /index.m3u8 on a running relay
    2. Reports every new playlist revision
    3. Fetches each referenced segment and checks it is retrievable
    4. Reports a final summary

Prerequisites:
    - The relay must be running (webcam-hls or webcam-hls --synthetic)

Usage:
    python scripts/watch_stream.py --duration 30
    python scripts/watch_stream.py --url http://localhost:8080
"""

import argparse
import logging
import os
import sys
import time

import requests

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from webcam_hls.store import is_well_formed, referenced_segments


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def run_check(url: str, duration: int, poll_interval: float) -> dict:
    """
    Watch the relay for `duration` seconds.

    Args:
        url: Base URL of the relay
        duration: Seconds to watch
        poll_interval: Seconds between playlist polls

    Returns:
        Final counters dict
    """
    url = url.rstrip("/")
    logger.info("=" * 60)
    logger.info(f"Watching {url}/index.m3u8 for {duration} seconds")
    logger.info("=" * 60)

    session = requests.Session()
    start_time = time.time()
    last_manifest = None
    revisions = 0
    segments_ok = 0
    segments_missing = 0
    malformed = 0
    unavailable = 0

    while time.time() - start_time < duration:
        try:
            response = session.get(f"{url}/index.m3u8", timeout=5)
        except requests.RequestException as e:
            logger.warning(f"Playlist request failed: {e}")
            time.sleep(poll_interval)
            continue

        if response.status_code == 503:
            unavailable += 1
            logger.info("Playlist not yet available")
        elif response.status_code != 200:
            logger.warning(f"Unexpected playlist status: {response.status_code}")
        elif response.content != last_manifest:
            last_manifest = response.content
            revisions += 1
            if not is_well_formed(response.content):
                malformed += 1
                logger.warning("Playlist revision is not well formed")
                names = []
            else:
                names = referenced_segments(response.content)
            logger.info(f"Revision {revisions}: {', '.join(names)}")
            for name in names:
                segment = session.get(f"{url}/{name}", timeout=5)
                if segment.status_code == 200:
                    segments_ok += 1
                    logger.info(f"  {name}: {len(segment.content)} bytes")
                else:
                    segments_missing += 1
                    logger.warning(f"  {name}: HTTP {segment.status_code}")

        time.sleep(poll_interval)

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Playlist revisions: {revisions}")
    logger.info(f"Malformed revisions: {malformed}")
    logger.info(f"Segments retrieved: {segments_ok}")
    logger.info(f"Segments missing: {segments_missing}")
    logger.info(f"Polls while unavailable: {unavailable}")
    logger.info("=" * 60)

    return {
        "revisions": revisions,
        "malformed": malformed,
        "segments_ok": segments_ok,
        "segments_missing": segments_missing,
    }


def main():
    parser = argparse.ArgumentParser(description="Smoke check a running HLS relay")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("HLS_PUBLIC_URL", "http://localhost:8080"),
        help="Base URL of the relay",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Seconds to watch (default: 30)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=1.0,
        help="Seconds between playlist polls (default: 1.0)",
    )
    args = parser.parse_args()

    result = run_check(args.url, args.duration, args.poll_interval)

    passed = (
        result["revisions"] > 0
        and result["malformed"] == 0
        and result["segments_missing"] == 0
    )
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
