"""
Thumbnail perceptual-hash comparison for the fallback pairing pass.

Thumbnail hashes arrive on the Video record as 16 hex chars (a 64-bit
perceptual hash computed at ingestion). imagehash does the parsing and the
hamming distance; nothing is downloaded here.

Functions:
  parse_hash(hex_hash) -> ImageHash | None
  compare_hashes(h1, h2) -> int
  are_thumbnails_similar(hex1, hex2, threshold) -> bool
"""

import logging
from typing import Optional

import imagehash

import config

logger = logging.getLogger(__name__)

HASH_HEX_LENGTH = 16


def parse_hash(hex_hash: Optional[str]) -> Optional[imagehash.ImageHash]:
    """Parse a stored hex hash; returns None for missing or malformed values."""
    if not hex_hash or len(hex_hash) != HASH_HEX_LENGTH:
        return None
    try:
        return imagehash.hex_to_hash(hex_hash)
    except ValueError:
        logger.debug(f"Unparseable thumbnail hash: {hex_hash!r}")
        return None


def compare_hashes(
    hash1: imagehash.ImageHash,
    hash2: imagehash.ImageHash,
) -> int:
    """Hamming distance between two perceptual hashes (0 = identical)."""
    return hash1 - hash2


def are_thumbnails_similar(
    hex1: Optional[str],
    hex2: Optional[str],
    threshold: Optional[int] = None,
    cache: Optional[dict[str, Optional[imagehash.ImageHash]]] = None,
) -> bool:
    """
    True if both thumbnails have hashes within `threshold` hamming distance.

    Args:
        hex1, hex2: Stored hex hashes (either may be None)
        threshold:  Max distance (defaults to config.THUMBNAIL_HASH_THRESHOLD)
        cache:      Optional {hex: ImageHash} cache shared across one match run
    """
    if threshold is None:
        threshold = config.THUMBNAIL_HASH_THRESHOLD

    h1 = _cached_parse(hex1, cache)
    h2 = _cached_parse(hex2, cache)
    if h1 is None or h2 is None:
        return False
    return compare_hashes(h1, h2) <= threshold


def _cached_parse(
    hex_hash: Optional[str],
    cache: Optional[dict[str, Optional[imagehash.ImageHash]]],
) -> Optional[imagehash.ImageHash]:
    if cache is None or hex_hash is None:
        return parse_hash(hex_hash)
    if hex_hash not in cache:
        cache[hex_hash] = parse_hash(hex_hash)
    return cache[hex_hash]
