"""Configuration constants, environment profiles, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Timeouts, retry counts, concurrency, and the HTTP
guard rails (route deadline, rate limit, CORS) are plain data — not buried
in logic — so they can be tuned per deployment without touching code.

HOW: python-dotenv loads the .env file on import. APP_ENV selects one of
three environment profiles (development, test, production). Every profile
value can be overridden by an environment variable of the same name.
Pipeline knobs are module-level constants read once at import.

RULES:
- APP_ENV defaults to "development"; unknown values fall back to development
- Environment variables always win over profile values
- The pipeline never reads these constants directly — they are passed in
  via PipelineSettings (see pipeline.orchestrator)
- API key is loaded from .env via python-dotenv, never hardcoded
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the server/CLI is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Environment profiles
# ---------------------------------------------------------------------------

ENVIRONMENT_PROFILES: dict[str, dict[str, object]] = {
    "development": {
        "API_ROUTE_TIMEOUT_S": 360.0,
        "RATE_LIMIT_WINDOW_S": 60.0,
        "RATE_LIMIT_MAX_REQUESTS": 10,
        "CORS_ORIGINS": "http://localhost:3000,http://localhost:3001",
        "LOG_LEVEL": "DEBUG",
    },
    "test": {
        "API_ROUTE_TIMEOUT_S": 900.0,
        "RATE_LIMIT_WINDOW_S": 60.0,
        "RATE_LIMIT_MAX_REQUESTS": 10,
        "CORS_ORIGINS": (
            "http://localhost:3000,http://localhost:3001,"
            "https://ugc-script-splitter-staging.onrender.com"
        ),
        "LOG_LEVEL": "DEBUG",
    },
    "production": {
        "API_ROUTE_TIMEOUT_S": 900.0,
        "RATE_LIMIT_WINDOW_S": 60.0,
        "RATE_LIMIT_MAX_REQUESTS": 10,
        "CORS_ORIGINS": "https://ugc-script-splitter.onrender.com",
        "LOG_LEVEL": "INFO",
    },
}

DEFAULT_ENVIRONMENT = "development"


def resolve_profile(env_name: str | None) -> dict[str, object]:
    """Return the profile for env_name with environment overrides applied.

    WHY: The same code runs locally, in staging, and in production with
    different deadlines and CORS origins. Selecting the profile by name and
    then layering env vars on top keeps both mechanisms in one place.

    RULES:
    - Unknown or empty env_name → development profile
    - Numeric overrides are parsed with the type of the profile value
    """
    name = (env_name or DEFAULT_ENVIRONMENT).strip().lower()
    profile = dict(ENVIRONMENT_PROFILES.get(name, ENVIRONMENT_PROFILES[DEFAULT_ENVIRONMENT]))

    for key, default in list(profile.items()):
        raw = os.getenv(key)
        if raw is None or raw.strip() == "":
            continue
        if isinstance(default, float):
            profile[key] = float(raw)
        elif isinstance(default, int):
            profile[key] = int(raw)
        else:
            profile[key] = raw.strip()

    return profile


APP_ENV = (os.getenv("APP_ENV") or DEFAULT_ENVIRONMENT).strip().lower()
_PROFILE = resolve_profile(APP_ENV)

IS_DEVELOPMENT = APP_ENV == "development"
IS_PRODUCTION = APP_ENV == "production"

PORT = int(os.getenv("PORT", "3001"))
API_ROUTE_TIMEOUT_S = float(_PROFILE["API_ROUTE_TIMEOUT_S"])
RATE_LIMIT_WINDOW_S = float(_PROFILE["RATE_LIMIT_WINDOW_S"])
RATE_LIMIT_MAX_REQUESTS = int(_PROFILE["RATE_LIMIT_MAX_REQUESTS"])
CORS_ORIGINS: list[str] = [
    origin.strip() for origin in str(_PROFILE["CORS_ORIGINS"]).split(",") if origin.strip()
]
LOG_LEVEL = str(_PROFILE["LOG_LEVEL"]).upper()

# ---------------------------------------------------------------------------
# Upstream model + pipeline defaults
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_CALL_TIMEOUT_S = float(os.getenv("OPENAI_CALL_TIMEOUT_S", "60"))
OPENAI_RETRY_COUNT = int(os.getenv("OPENAI_RETRY_COUNT", "2"))
OPENAI_RETRY_BASE_DELAY_S = float(os.getenv("OPENAI_RETRY_BASE_DELAY_S", "1.0"))
SEGMENT_CONCURRENCY = int(os.getenv("SEGMENT_CONCURRENCY", "2"))
SEQUENTIAL_THRESHOLD = int(os.getenv("SEQUENTIAL_THRESHOLD", "8"))

MIN_SCRIPT_CHARS = 50
"""Shortest script the HTTP boundary and CLI accept (after stripping)."""


def has_api_key() -> bool:
    """Return True when OPENAI_API_KEY is set to a non-empty value."""
    return bool(os.getenv("OPENAI_API_KEY", "").strip())


def load_api_key() -> str:
    """Load the OpenAI API key from the environment.

    WHY: The API key is required for all model calls. Loading it from the
    environment (via .env) keeps it out of source code.

    HOW: Reads OPENAI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "OpenAI API key not configured. "
            "Add OPENAI_API_KEY to the .env file in the app folder."
        )
    return key
