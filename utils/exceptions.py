"""
Custom Exception Classes for Murmur Sync

This module defines custom exceptions for better error handling and
categorization of failures across the client library.
"""

from typing import Any, Dict, Optional


class MurmurSyncError(Exception):
    """Base exception for all Murmur Sync errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(MurmurSyncError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Remote API Errors
# =============================================================================

class ApiError(MurmurSyncError):
    """
    Base exception for errors raised while talking to the Murmur API.

    Attributes:
        status_code: HTTP status code, or None if no response was received.
        details: Structured error details from the response envelope, if any.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class NetworkError(ApiError):
    """Raised when no response was received (connection failure or timeout)."""
    pass


class AuthError(ApiError):
    """Raised on a 401 response or when an operation requires a session."""
    pass


class ValidationError(ApiError):
    """Raised when the request was rejected with field-level reasons."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Any] = None,
                 field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message, status_code, details)
        self.field_errors = field_errors or {}


class NotFoundError(ApiError):
    """Raised when the entity no longer exists remotely (404)."""
    pass


class ConflictError(ApiError):
    """Raised when the request conflicts with remote state, e.g. already following (409)."""
    pass


class ServerError(ApiError):
    """Raised on a 5xx response."""
    pass


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(MurmurSyncError):
    """Raised when the persisted credential cannot be read or written."""
    pass
