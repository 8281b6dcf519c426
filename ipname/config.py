"""
Configuration module for ipname.

Centralizes configuration with environment variable support.
Values are read once at import time.
"""

import os
from datetime import timedelta

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("IPNAME_ENV", "dev")  # dev|stage|prod

# Naming service endpoints
API_URL = os.getenv("IPNAME_API_URL", "https://name.web3.storage")
GATEWAY_URL = os.getenv("IPNAME_GATEWAY_URL", "https://trustless-gateway.link")

# HTTP timeout (seconds)
HTTP_TIMEOUT = float(os.getenv("IPNAME_HTTP_TIMEOUT", "10"))

# Record defaults
DEFAULT_TTL_SECONDS = int(os.getenv("IPNAME_DEFAULT_TTL_SECONDS", "300"))
DEFAULT_LIFETIME_DAYS = int(os.getenv("IPNAME_DEFAULT_LIFETIME_DAYS", "365"))

# Attempts the CLI makes when a publish loses a sequence race
PUBLISH_MAX_ATTEMPTS = int(os.getenv("IPNAME_PUBLISH_MAX_ATTEMPTS", "3"))

# Logging
LOG_LEVEL = os.getenv("IPNAME_LOG_LEVEL", "WARNING")
LOG_JSON = os.getenv("IPNAME_LOG_JSON", "").lower() in ("1", "true", "yes")


# ============================================================
# Derived Defaults
# ============================================================

def default_ttl_ns() -> int:
    """Default record TTL in nanoseconds."""
    return DEFAULT_TTL_SECONDS * 1_000_000_000


def default_lifetime() -> timedelta:
    """Default distance between publish time and the validity deadline."""
    return timedelta(days=DEFAULT_LIFETIME_DAYS)


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("IPNAME_DEBUG", "").lower() in ("1", "true", "yes")
