"""Configuration for the ATS agent."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from a .env file when present.
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


OUTPUT_ROOT = Path(os.getenv("ATS_OUTPUT_DIR", "runs"))

USER_DATA_DIR = Path("profiles/default")

DEFAULT_BROWSER = os.getenv("ATS_BROWSER", "chromium").lower()

VIEWPORT = {"width": 1440, "height": 900}

# Navigation loop ceiling.
MAX_ATTEMPTS = _int_env("ATS_MAX_ATTEMPTS", 5)

# DOM settle: quiet period without mutations, bounded by a timeout.
SETTLE_QUIET_MS = _int_env("ATS_SETTLE_QUIET_MS", 300)
SETTLE_TIMEOUT_MS = _int_env("ATS_SETTLE_TIMEOUT_MS", 3000)

ACTION_TIMEOUT_MS = _int_env("ATS_ACTION_TIMEOUT_MS", 5000)
LINK_NAV_TIMEOUT_MS = _int_env("ATS_LINK_NAV_TIMEOUT_MS", 2000)
CLICK_RETRIES = _int_env("ATS_CLICK_RETRIES", 3)
SCROLL_SETTLE_MS = _int_env("ATS_SCROLL_SETTLE_MS", 250)

VALIDATION_WAIT_MS = _int_env("ATS_VALIDATION_WAIT_MS", 1000)
SUBMIT_WAIT_MS = _int_env("ATS_SUBMIT_WAIT_MS", 2000)
