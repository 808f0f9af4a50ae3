"""
Configuration Validation for Murmur Sync

This module contains configuration validation logic.
Kept apart from settings.py so that importing settings never raises.
"""

from urllib.parse import urlparse

from utils.exceptions import ConfigurationError

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    if not settings.MURMUR_API_BASE_URL:
        errors.append("Missing required environment variable: MURMUR_API_BASE_URL")
    else:
        parsed = urlparse(settings.MURMUR_API_BASE_URL)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"MURMUR_API_BASE_URL must be an http(s) URL, got {settings.MURMUR_API_BASE_URL!r}")

    if not settings.AUTH_TOKEN_KEY:
        errors.append("AUTH_TOKEN_KEY must not be empty")

    if not settings.TOKEN_FILE:
        errors.append("TOKEN_FILE must not be empty")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("DEFAULT_PAGE_LIMIT", settings.DEFAULT_PAGE_LIMIT, 1, 100),
        ("USER_PAGE_LIMIT", settings.USER_PAGE_LIMIT, 1, 100),
        ("MAX_MURMUR_LENGTH", settings.MAX_MURMUR_LENGTH, 1, 10000),
        ("REQUEST_TIMEOUT", settings.REQUEST_TIMEOUT, 0.1, 300),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    if str(settings.LOG_LEVEL).upper() not in VALID_LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}, got {settings.LOG_LEVEL}")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "api": {
            "base_url": settings.MURMUR_API_BASE_URL,
            "timeout": settings.REQUEST_TIMEOUT,
        },
        "pagination": {
            "page_limit": settings.DEFAULT_PAGE_LIMIT,
            "user_page_limit": settings.USER_PAGE_LIMIT,
        },
        "content": {
            "max_murmur_length": settings.MAX_MURMUR_LENGTH,
        },
        "session": {
            "token_file": str(settings.TOKEN_FILE),
        },
        "logging": {
            "file": settings.LOG_FILE,
            "level": settings.LOG_LEVEL,
        },
    }
