"""
config.py
Settings (from environment / .env) and logging setup.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DB_FILE = Path(os.getenv("GYM_DB_FILE", str(Path(__file__).with_name("gym.db"))))

# Days past due before an overdue payment raises a notification
OVERDUE_NOTIFY_DAYS = int(os.getenv("OVERDUE_NOTIFY_DAYS", "5"))

# Enrollments ending within this many days are "expiring"
EXPIRING_WINDOW_DAYS = int(os.getenv("EXPIRING_WINDOW_DAYS", "15"))

# Clients older than this need a medical certificate on file
MEDICAL_CERTIFICATE_AGE = int(os.getenv("MEDICAL_CERTIFICATE_AGE", "40"))

MONTHLY_GOAL = Decimal(os.getenv("MONTHLY_GOAL", "50000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Attach a single stream handler to the root logger (safe to call repeatedly).
    """
    root = logging.getLogger()
    root.setLevel(level or LOG_LEVEL)
    if not root.hasHandlers():
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
