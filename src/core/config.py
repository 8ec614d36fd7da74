"""
Capture registry configuration.
Environment-driven settings plus the fixed bounds enforced on every write.
"""

import os
from pathlib import Path

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/registry.db")

# Logical clock seed (first sequence value stamped on a write)
SEQUENCE_START = os.getenv("SEQUENCE_START", "1")

# Comma separated list of origins allowed by the API CORS middleware
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

# Registry bounds
FINGERPRINT_MAX_BYTES = 32
MAX_METADATA_LEN = 1000
MAX_LABEL_LEN = 100          # method and location
MAX_NOTES_LEN = 200
MAX_ROLE_LEN = 50
MAX_PERMISSIONS = 5
MAX_PERMISSION_LEN = 20
MAX_TAGS = 10
MAX_TAG_LEN = 32
MAX_VERSIONS = 5
MAX_VOLUME = 2**63 - 1  # SQLite INTEGER ceiling

VALID_STATUSES = ["pending", "verified", "disputed"]
DEFAULT_STATUS = "pending"
PERMISSION_UPDATE = "update"

# Version string
VERSION = "1.0.0"


def get_db_path() -> str:
    """Current database path (re-read from the environment)."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled():
    """Check if debug mode is enabled (default on; gates the API docs pages)."""
    return os.getenv("DEBUG", "true").lower() == "true"


def event_log_enabled():
    """Check if successful writes are appended to the events table (default on)."""
    return os.getenv("EVENT_LOG_ENABLED", "true").lower() == "true"


def get_sequence_start() -> int:
    """Get the first sequence value for a fresh registry."""
    return int(os.getenv("SEQUENCE_START", SEQUENCE_START))


def get_cors_origins():
    """Get configured CORS origins."""
    raw = os.getenv("CORS_ORIGINS", CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate registry configuration and return any issues."""
    issues = []

    raw_start = os.getenv("SEQUENCE_START", SEQUENCE_START)
    try:
        if int(raw_start) < 1:
            issues.append("SEQUENCE_START must be >= 1")
    except ValueError:
        issues.append(f"Invalid SEQUENCE_START: {raw_start}")

    if not get_db_path().strip():
        issues.append("DB_PATH must not be empty")

    return issues
