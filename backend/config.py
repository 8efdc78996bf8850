import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_PAY = Decimal(os.getenv("DEFAULT_BASE_PAY", "10.00"))

PAIR_DURATION_TOLERANCE_SECONDS = int(os.getenv("PAIR_DURATION_TOLERANCE_SECONDS", "1"))
PAIR_TIME_WINDOW_HOURS = int(os.getenv("PAIR_TIME_WINDOW_HOURS", "24"))
BOUNDARY_WINDOW_HOURS = int(os.getenv("BOUNDARY_WINDOW_HOURS", "24"))

THUMBNAIL_FALLBACK_ENABLED = os.getenv("THUMBNAIL_FALLBACK_ENABLED", "false").lower() in ("1", "true", "yes")
THUMBNAIL_HASH_THRESHOLD = int(os.getenv("THUMBNAIL_HASH_THRESHOLD", "12"))

RECOMPUTE_MAX_WORKERS = int(os.getenv("RECOMPUTE_MAX_WORKERS", "8"))

OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/tmp/payout_reports")
VIDEO_EXPORT_CSV_URL = os.getenv("VIDEO_EXPORT_CSV_URL", "")
