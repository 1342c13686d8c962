"""
Runtime configuration for the Student Voting Core.

All values are read once from the environment at import time. Services
read them through this module (``config.X``) so tests can monkeypatch
individual settings.
"""

import os
from typing import List, Optional

# ── Database ──────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./student_voting.db")

# ── Logging ───────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── OTP policy ────────────────────────────────────────────────
OTP_COOLDOWN_SECONDS: int = int(os.getenv("OTP_COOLDOWN_SECONDS", "120"))
OTP_HOURLY_LIMIT: int = int(os.getenv("OTP_HOURLY_LIMIT", "3"))
OTP_HOURLY_WINDOW_SECONDS: int = 3600
OTP_EXPIRY_SECONDS: int = int(os.getenv("OTP_EXPIRY_SECONDS", "600"))
# Wrong guesses against the active code before it is burned
OTP_MAX_FAILED_ATTEMPTS: int = int(os.getenv("OTP_MAX_FAILED_ATTEMPTS", "5"))

# ── Voter sessions ────────────────────────────────────────────
# A verified session stops authorising ballot calls after this long
VOTER_SESSION_TTL_SECONDS: int = int(os.getenv("VOTER_SESSION_TTL_SECONDS", "3600"))

# ── SMS delivery (mNotify) ────────────────────────────────────
# Without an API key, delivery runs in simulated mode and always succeeds.
MNOTIFY_API_KEY: Optional[str] = os.getenv("MNOTIFY_API_KEY") or None
MNOTIFY_SENDER_ID: str = os.getenv("MNOTIFY_SENDER_ID", "ISTSA")
MNOTIFY_API_URL: str = os.getenv("MNOTIFY_API_URL", "https://api.mnotify.com/api/sms/quick")
SMS_TIMEOUT_SECONDS: float = float(os.getenv("SMS_TIMEOUT_SECONDS", "15"))

# ── Admin gating ──────────────────────────────────────────────
# Admin endpoints are disabled entirely when no token is configured.
ADMIN_TOKEN: Optional[str] = os.getenv("ADMIN_TOKEN") or None

# ── HTTP ──────────────────────────────────────────────────────
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv("CORS_ALLOWED_ORIGINS", "*")
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]
