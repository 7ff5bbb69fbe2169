# src/config.py
from __future__ import annotations

import os
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


STATE_DB_PATH = Path(os.environ.get("STATE_DB_PATH", "state.db"))
ASSETS_DIR = Path(os.environ.get("ASSETS_DIR", "assets"))

SCHOOL_TZ = ZoneInfo(os.environ.get("SCHOOL_TZ", "Asia/Tokyo"))

SERIES_LEAD_DAYS = int(os.environ.get("SERIES_LEAD_DAYS", "30"))
HOLIDAY_HORIZON_DAYS = int(os.environ.get("HOLIDAY_HORIZON_DAYS", "365"))
INCLUDE_PENDING_AVAILABILITY = _flag("INCLUDE_PENDING_AVAILABILITY")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

COORDINATOR_SLACK_IDS = {
    x.strip()
    for x in os.environ.get("COORDINATOR_SLACK_IDS", "").split(",")
    if x.strip()
}


def today_in_school_tz() -> date:
    return datetime.now(SCHOOL_TZ).date()
