"""
CSV import of exported videos and payout cycles.

Loads exported rows (a local .csv file or a published CSV URL) into Video and
PayoutCycle records for the in-memory stores.

Video columns (header row required, extra columns ignored):
  id, creator_id, platform, posted_at, duration, views,
  likes, comments, is_irrelevant, thumbnail_hash, url

Rules:
  - platform is lowercased; rows for other platforms are skipped
  - empty posted_at / duration stay None (handled by the engine)
  - is_irrelevant accepts true/false, t/f, 1/0, yes/no
  - rows with no id or creator_id are skipped with a warning

Cycle columns:
  id, start_date, end_date, base_pay_per_video, bonus_tiers_snapshot

  - bonus_tiers_snapshot is the stored JSON text; unparseable text raises
    InvalidTierSnapshotError rather than being dropped
  - a non-numeric base_pay_per_video raises RuntimeError naming the row
"""

import io
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
import pandas as pd

import config
from models.schemas import INSTAGRAM, TIKTOK, PayoutCycle, Video
from services.rates import parse_tier_snapshot

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("id", "creator_id", "platform")
REQUIRED_CYCLE_COLUMNS = ("id", "start_date", "end_date")
TRUE_VALUES = {"true", "t", "1", "yes", "y"}
REQUEST_TIMEOUT = 30.0


# ===========================================================================
# Public API
# ===========================================================================

def load_videos(source: Optional[str] = None) -> list[Video]:
    """
    Load videos from a CSV path or URL.

    Args:
        source: File path or http(s) URL; defaults to config.VIDEO_EXPORT_CSV_URL

    Raises:
        RuntimeError: If the source is missing, unreachable or lacks columns
    """
    if source is None:
        source = config.VIDEO_EXPORT_CSV_URL
    if not source:
        raise RuntimeError("No video CSV source configured (VIDEO_EXPORT_CSV_URL)")

    df = _read_csv(source)
    logger.info(f"Fetched video export with {df.shape[0]} rows, {df.shape[1]} columns")

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise RuntimeError(f"Video export is missing columns: {', '.join(missing)}")

    return parse_video_rows(df)


def parse_video_rows(df: pd.DataFrame) -> list[Video]:
    """Convert a DataFrame of exported rows into Video records."""
    videos: list[Video] = []
    skipped_platform = 0
    skipped_invalid = 0

    for row_idx, row in enumerate(df.to_dict(orient="records")):
        platform = _clean_string(row.get("platform"))
        platform = platform.lower() if platform else None
        if platform not in (INSTAGRAM, TIKTOK):
            skipped_platform += 1
            continue

        video_id = _clean_int(row.get("id"))
        creator_id = _clean_int(row.get("creator_id"))
        if video_id is None or creator_id is None:
            logger.warning(f"Skipping row {row_idx}: missing id or creator_id")
            skipped_invalid += 1
            continue

        videos.append(Video(
            id=video_id,
            creator_id=creator_id,
            platform=platform,
            posted_at=_clean_timestamp(row.get("posted_at")),
            duration_seconds=_clean_int(row.get("duration")),
            views=_clean_int(row.get("views")) or 0,
            likes=_clean_int(row.get("likes")) or 0,
            comments=_clean_int(row.get("comments")) or 0,
            is_irrelevant=_clean_bool(row.get("is_irrelevant")),
            thumbnail_hash=_clean_string(row.get("thumbnail_hash")),
            url=_clean_string(row.get("url")),
        ))

    logger.info(
        f"Video import complete: {len(videos)} loaded, "
        f"{skipped_platform} skipped (platform), {skipped_invalid} skipped (invalid)"
    )
    return videos


def load_cycles(source: str) -> list[PayoutCycle]:
    """
    Load payout cycles from a CSV path or URL, ordered by start_date.

    Raises:
        RuntimeError: If the source is unreachable, lacks columns or has a
                      non-numeric base_pay_per_video
        InvalidTierSnapshotError: If a stored tier snapshot is malformed
    """
    df = _read_csv(source)
    missing = [c for c in REQUIRED_CYCLE_COLUMNS if c not in df.columns]
    if missing:
        raise RuntimeError(f"Cycle export is missing columns: {', '.join(missing)}")
    return parse_cycle_rows(df)


def parse_cycle_rows(df: pd.DataFrame) -> list[PayoutCycle]:
    cycles: list[PayoutCycle] = []

    for row_idx, row in enumerate(df.to_dict(orient="records")):
        cycle_id = _clean_int(row.get("id"))
        start_date = _clean_timestamp(row.get("start_date"))
        end_date = _clean_timestamp(row.get("end_date"))
        if cycle_id is None or start_date is None or end_date is None:
            logger.warning(f"Skipping cycle row {row_idx}: missing id or dates")
            continue

        base_pay = _clean_decimal(row.get("base_pay_per_video"), row_idx, cycle_id)
        cycles.append(PayoutCycle(
            id=cycle_id,
            start_date=start_date,
            end_date=end_date,
            base_pay_per_video_snapshot=base_pay,
            bonus_tiers_snapshot=parse_tier_snapshot(
                _clean_string(row.get("bonus_tiers_snapshot"))
            ),
        ))

    cycles.sort(key=lambda c: c.start_date)
    logger.info(f"Cycle import complete: {len(cycles)} cycles loaded")
    return cycles


# ===========================================================================
# Private helpers
# ===========================================================================

def _read_csv(source: str) -> pd.DataFrame:
    # Read everything as text: all-digit thumbnail hashes must not become ints
    if not source.startswith(("http://", "https://")):
        return pd.read_csv(source, dtype=str)

    try:
        logger.debug(f"Fetching: {source}")
        response = httpx.get(source, timeout=REQUEST_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch CSV export: {e}")
        raise RuntimeError(f"Could not fetch CSV export: {e}") from e

    return pd.read_csv(io.StringIO(response.text), dtype=str)


def _clean_string(raw_value) -> Optional[str]:
    if raw_value is None or pd.isna(raw_value):
        return None
    cleaned = str(raw_value).strip()
    return cleaned if cleaned else None


def _clean_int(raw_value) -> Optional[int]:
    cleaned = _clean_string(raw_value)
    if cleaned is None:
        return None
    try:
        return int(float(cleaned))
    except ValueError:
        return None


def _clean_decimal(raw_value, row_idx: int, cycle_id: int) -> Optional[Decimal]:
    cleaned = _clean_string(raw_value)
    if cleaned is None:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation as e:
        raise RuntimeError(
            f"Cycle row {row_idx} (id {cycle_id}): invalid base_pay_per_video {cleaned!r}"
        ) from e


def _clean_bool(raw_value) -> bool:
    cleaned = _clean_string(raw_value)
    return cleaned is not None and cleaned.lower() in TRUE_VALUES


def _clean_timestamp(raw_value):
    cleaned = _clean_string(raw_value)
    if cleaned is None:
        return None
    ts = pd.to_datetime(cleaned, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()
