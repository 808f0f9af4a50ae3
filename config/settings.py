"""
Configuration Settings for Murmur Sync

This module centralizes all configuration settings for the Murmur client,
including environment variables, API endpoints, and application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))

# =============================================================================
# Remote API Settings
# =============================================================================

MURMUR_API_BASE_URL = os.getenv("MURMUR_API_BASE_URL", "http://localhost:3000/api")
REQUEST_TIMEOUT = float(os.getenv("MURMUR_REQUEST_TIMEOUT", "10"))   # Seconds per request
USER_AGENT = "murmur-sync/1.0"
REQUEST_HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': 'application/json',
    'Content-Type': 'application/json',
}

# =============================================================================
# Pagination Settings
# =============================================================================

DEFAULT_PAGE_LIMIT = 10              # Murmurs per page (timeline, explore, replies)
USER_PAGE_LIMIT = 20                 # Users per page (followers, following, search)

# =============================================================================
# Content Settings
# =============================================================================

MAX_MURMUR_LENGTH = 280              # Characters allowed in a murmur body

# =============================================================================
# Session Persistence
# =============================================================================

AUTH_TOKEN_KEY = "auth_token"        # Key the credential is stored under
TOKEN_FILE = os.getenv("MURMUR_TOKEN_FILE", os.path.join(APP_ROOT, ".murmur_session.json"))

# =============================================================================
# Logging Settings
# =============================================================================

LOG_FILE = os.getenv("MURMUR_LOG_FILE", "murmur_sync.log")
LOG_LEVEL = os.getenv("MURMUR_LOG_LEVEL", "INFO")
