import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
DB_PATH = Path(os.getenv("DISPATCH_DB_PATH", str(BASE_DIR / "dispatch.db")))
GATHERER_TIMEOUT_SECONDS = float(os.getenv("GATHERER_TIMEOUT_SECONDS", "5"))
HISTORY_RADIUS_KM = float(os.getenv("HISTORY_RADIUS_KM", "5"))
HISTORY_LOOKBACK_DAYS = int(os.getenv("HISTORY_LOOKBACK_DAYS", "365"))
SIMULATION_SEED = os.getenv("SIMULATION_SEED") or None
ALLOCATION_STRATEGY = os.getenv("ALLOCATION_STRATEGY", "greedy")
NORMALIZE_MEDIA_SCORE = os.getenv("NORMALIZE_MEDIA_SCORE", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DB_PATH.parent.mkdir(parents=True, exist_ok=True)
