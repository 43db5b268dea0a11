"""
Centralized configuration, read once from the environment.
"""

import os

# Environment (dev, staging, prod)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "dev")

# HTTP port for the Flask app
PORT = int(os.environ.get("PORT", 8080))

# JSON snapshot used as the Ledger Store; unset means in-memory
STORE_PATH = os.environ.get("CONCIERGE_STORE_PATH") or None

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Stay length used when a converted service carries no dates
DEFAULT_STAY_DAYS = int(os.environ.get("CONCIERGE_DEFAULT_STAY_DAYS", 7))

# Language used when a localized name has to be flattened for display
DEFAULT_LANGUAGE = os.environ.get("CONCIERGE_DEFAULT_LANGUAGE", "en")

# Companies a directory entry may legitimately point at
ALLOWED_COMPANY_IDS = frozenset(
    c.strip()
    for c in os.environ.get("CONCIERGE_ALLOWED_COMPANIES", "company1,company2").split(",")
    if c.strip()
)
