from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
DB_PATH = DATA_DIR / "castboard.db"


class Config:
    SECRET_KEY = os.environ.get("CASTBOARD_SECRET", "dev-secret")
    DB_PATH = os.environ.get("CASTBOARD_DB", str(DB_PATH))

    # Static bearer keys for machine callers
    RESERVATION_API_KEY = os.environ.get("RESERVATION_API_KEY")
    CRON_SECRET = os.environ.get("CRON_SECRET")

    GOOGLE_SERVICE_ACCOUNT_EMAIL = os.environ.get("GOOGLE_SERVICE_ACCOUNT_EMAIL")
    GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY = os.environ.get("GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY")
    CALENDAR_MALE_LEAD = os.environ.get("CALENDAR_MALE_LEAD")
    CALENDAR_FEMALE_LEAD = os.environ.get("CALENDAR_FEMALE_LEAD")
    CALENDAR_ALL_ACTORS = os.environ.get("CALENDAR_ALL_ACTORS")
    CALENDAR_TIMEZONE = os.environ.get("CALENDAR_TIMEZONE", "Asia/Seoul")

    CRAWLER_WEBHOOK_URL = os.environ.get("CRAWLER_WEBHOOK_URL")
    CRAWLER_TIMEOUT_SECONDS = float(os.environ.get("CRAWLER_TIMEOUT_SECONDS", "60"))

    SHOW_MINUTES = int(os.environ.get("CASTBOARD_SHOW_MINUTES", "120"))
