from __future__ import annotations

import os
import pathlib
import re

LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# -------------------------
# Google Calendar settings
# -------------------------
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_TOKEN_URI = os.getenv("GOOGLE_TOKEN_URI",
                             "https://oauth2.googleapis.com/token")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CREDENTIAL_PROVIDER = "google"

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
CREDENTIAL_DIR = pathlib.Path(
    os.getenv("CHATCAL_CREDENTIAL_DIR", str(BASE_DIR / "credentials")))

# -------------------------
# LLM settings
# -------------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_PROVIDER = os.getenv("CHATCAL_LLM_PROVIDER", "auto").strip().lower()
EXTRACTOR_MODEL = os.getenv("CHATCAL_EXTRACTOR_MODEL",
                            "gemini-2.0-flash").strip()
RESPONSE_MODEL = os.getenv("CHATCAL_RESPONSE_MODEL",
                           "gemini-2.0-flash").strip()
TOOL_AGENT_MODEL = os.getenv("CHATCAL_TOOL_AGENT_MODEL",
                             "gemini-2.0-flash").strip()
EXTRACTOR_MAX_TOKENS = int(os.getenv("CHATCAL_EXTRACTOR_MAX_TOKENS", "2048"))
RESPONSE_MAX_TOKENS = int(os.getenv("CHATCAL_RESPONSE_MAX_TOKENS", "1024"))
MAX_TOOL_ROUNDS = int(os.getenv("CHATCAL_MAX_TOOL_ROUNDS", "5"))

# -------------------------
# Runtime defaults
# -------------------------
DEFAULT_TIMEZONE_NAME = os.getenv("CHATCAL_DEFAULT_TIMEZONE",
                                  "America/Los_Angeles")
VIEW_RANGE_DAYS = 14
UPDATE_RANGE_DAYS = 14
DELETE_RANGE_DAYS = 28
DELETE_THEM_RANGE_DAYS = 7
DEFAULT_EVENT_MINUTES = 60
MIN_MATCH_TOKEN_LENGTH = 3
LIST_PAGE_SIZE = 250
MAX_STORED_SESSIONS = int(os.getenv("CHATCAL_MAX_STORED_SESSIONS", "500"))

# -------------------------
# HTTP
# -------------------------
SESSION_COOKIE_NAME = "chatcal_session"
USER_ID_HEADER = "X-User-Id"
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")
cors_origins: list[str] = [
    origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()
]
