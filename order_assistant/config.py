"""
Configuration Module for Order Assistant
========================================

This module centralizes the settings, environment variables, and constants
used by the ordering orchestration backend. Values are parsed at import time
so misconfiguration surfaces early.

Configuration Categories:
-------------------------
- **Database**: Connection URL for the durable store and retry settings for
  transient transaction failures.

- **Ordering Rules**: Fallback values used when a business does not publish
  its own (delivery fee placeholder, delivery radius, cancellation window,
  timezone).

- **Catalog Cache**: TTL and size bound for the in-memory catalog cache that
  sits in front of the item read path.

- **Rate Limiting**: Throttling for the function-call endpoint.

- **CORS Settings**: Allowed origins for the HTTP surface.

- **Model Invocation**: Which OpenAI model drives the conversation.

Environment Variables:
----------------------
- DATABASE_URL: SQLAlchemy URL (default: "sqlite:///./order_assistant.db")
- STORE_RETRY_ATTEMPTS: Attempts for retryable store failures (default: 3)
- DEFAULT_TIMEZONE: Timezone for businesses without one (default: "UTC")
- DEFAULT_DELIVERY_FEE: Delivery fee placeholder (default: 2.99)
- DEFAULT_DELIVERY_RADIUS_KM: Default radius for radius checks (default: 10)
- DEFAULT_CANCELABLE_BEFORE_HOURS: Cancellation window fallback (default: 2)
- LAST_ORDER_WARNING_MINUTES: Advisory threshold before last order (default: 30)
- CATALOG_CACHE_TTL_SECONDS: Catalog cache TTL (default: 300)
- CATALOG_CACHE_MAX_SIZE: Max cached businesses (default: 500)
- MAX_ORDERS_LISTED: Orders returned by order listings (default: 20)
- CURRENCY_SYMBOL: Prefix for printed amounts (default: "$")
- RATE_LIMIT_ACTIONS: Action endpoint rate limit (default: "60 per minute")
- RATE_LIMIT_ENABLED: Enable/disable rate limiting (default: "true")
- CORS_ORIGINS: Comma-separated allowed origins (default: "*")
- OPENAI_MODEL: Model used for conversation turns (default: "gpt-4o")

Usage:
------
    from order_assistant.config import (
        DEFAULT_DELIVERY_FEE,
        DEFAULT_CANCELABLE_BEFORE_HOURS,
    )
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env from the project root (one level above order_assistant/)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


# =============================================================================
# Database
# =============================================================================

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./order_assistant.db")

# Only TransientStoreError is retried
STORE_RETRY_ATTEMPTS: int = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))


# =============================================================================
# Ordering Rules
# =============================================================================
# Fallbacks applied when a business leaves the corresponding field unset.

DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

DEFAULT_DELIVERY_FEE: float = float(os.getenv("DEFAULT_DELIVERY_FEE", "2.99"))

DEFAULT_DELIVERY_RADIUS_KM: float = float(os.getenv("DEFAULT_DELIVERY_RADIUS_KM", "10"))

DEFAULT_CANCELABLE_BEFORE_HOURS: float = float(
    os.getenv("DEFAULT_CANCELABLE_BEFORE_HOURS", "2")
)

# Add-item results carry an advisory when fewer minutes remain before last order
LAST_ORDER_WARNING_MINUTES: int = int(os.getenv("LAST_ORDER_WARNING_MINUTES", "30"))

MAX_ORDERS_LISTED: int = int(os.getenv("MAX_ORDERS_LISTED", "20"))

CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "$")


# =============================================================================
# Catalog Cache
# =============================================================================

CATALOG_CACHE_TTL_SECONDS: int = int(os.getenv("CATALOG_CACHE_TTL_SECONDS", "300"))

CATALOG_CACHE_MAX_SIZE: int = int(os.getenv("CATALOG_CACHE_MAX_SIZE", "500"))


# =============================================================================
# Rate Limiting
# =============================================================================

RATE_LIMIT_ACTIONS: str = os.getenv("RATE_LIMIT_ACTIONS", "60 per minute")

RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_rate_limit_actions() -> str:
    """Get the rate limit string for the action endpoint."""
    return RATE_LIMIT_ACTIONS


# =============================================================================
# CORS Settings
# =============================================================================

_cors_origins_str = os.getenv("CORS_ORIGINS", "*")
CORS_ORIGINS: List[str] = [
    origin.strip() for origin in _cors_origins_str.split(",") if origin.strip()
]


# =============================================================================
# Model Invocation
# =============================================================================

OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")
