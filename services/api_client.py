"""
API Client Module

Thin HTTP transport for the Murmur API. It injects the bearer token,
unwraps the ``{success, data, error}`` response envelope and turns
transport and HTTP failures into the exceptions in utils.exceptions.
A 401 from any call is reported to the registered unauthorized handlers
so the session can be torn down in one place.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import requests

from config import settings
from utils.exceptions import (
    ApiError, AuthError, ConflictError, NetworkError, NotFoundError, ServerError, ValidationError
)
from utils.logger import get_logger

logger = get_logger(__name__)

TokenProvider = Callable[[], Optional[str]]
UnauthorizedHandler = Callable[[AuthError], None]


def _field_errors(details: Any) -> Dict[str, str]:
    """Flatten the API's validation details into {field: message}."""
    if isinstance(details, dict):
        return {str(k): str(v) for k, v in details.items()}
    errors = {}
    if isinstance(details, list):
        for item in details:
            if not isinstance(item, dict):
                continue
            name = item.get("field") or item.get("path") or item.get("param")
            if name:
                errors[str(name)] = str(item.get("message") or item.get("msg") or "invalid")
    return errors


class ApiClient:
    """HTTP transport with auth header injection and error normalization."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 token_provider: Optional[TokenProvider] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: API root, defaults to settings.MURMUR_API_BASE_URL.
            timeout: Per-request timeout in seconds, defaults to settings.REQUEST_TIMEOUT.
            token_provider: Callable returning the current bearer token, if any.
            session: Optional pre-built requests.Session (mainly for tests).
        """
        self.base_url = (base_url or settings.MURMUR_API_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.session.headers.update(settings.REQUEST_HEADERS)
        self._unauthorized_handlers: List[UnauthorizedHandler] = []

    def add_unauthorized_handler(self, handler: UnauthorizedHandler) -> None:
        """Register a callback run on the event loop whenever a call returns 401."""
        self._unauthorized_handlers.append(handler)

    def close(self) -> None:
        self.session.close()

    # -------------------------------------------------------------------------
    # Async entry points
    # -------------------------------------------------------------------------

    async def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                      json_body: Optional[Dict[str, Any]] = None) -> Any:
        """
        Perform a request without blocking the event loop.

        Args:
            method: HTTP method.
            path: Path relative to the API root.
            params: Query string parameters.
            json_body: JSON request body.

        Returns:
            The unwrapped ``data`` of the response, or None for empty responses.

        Raises:
            ApiError: Or one of its subclasses, on any failure.
        """
        try:
            return await asyncio.to_thread(self.send, method, path, params, json_body)
        except AuthError as e:
            self._notify_unauthorized(e)
            raise

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json_body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, json_body=json_body)

    async def put(self, path: str, json_body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("PUT", path, json_body=json_body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    # -------------------------------------------------------------------------
    # Blocking transport
    # -------------------------------------------------------------------------

    def send(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
             json_body: Optional[Dict[str, Any]] = None) -> Any:
        """Blocking version of request(). Does not run the unauthorized handlers."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers['Authorization'] = f'Bearer {token}'

        logger.debug(f"{method} {url} params={params} body={json_body}")

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning(f"{method} {path} timed out after {self.timeout}s")
            raise NetworkError(f"Request timed out: {method} {path}") from e
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed without a response: {e}")
            raise NetworkError("Network error. Please check your connection.") from e

        payload = None
        if response.status_code != 204:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        logger.debug(f"{method} {url} -> {response.status_code}")

        if response.status_code >= 400:
            raise self._error_for(response.status_code, payload)

        if isinstance(payload, dict) and "success" in payload:
            if payload.get("success") is False:
                raise ApiError(payload.get("error") or "Request was not successful",
                               status_code=response.status_code, details=payload.get("details"))
            return payload.get("data")
        return payload

    def _error_for(self, status_code: int, payload: Any) -> ApiError:
        message = None
        details = None
        if isinstance(payload, dict):
            message = payload.get("error") or payload.get("message")
            details = payload.get("details")
        message = message or f"HTTP {status_code}"

        if status_code == 401:
            return AuthError(message, status_code=status_code, details=details)
        if status_code in (400, 422):
            return ValidationError(message, status_code=status_code, details=details,
                                   field_errors=_field_errors(details))
        if status_code == 404:
            return NotFoundError(message, status_code=status_code, details=details)
        if status_code == 409:
            return ConflictError(message, status_code=status_code, details=details)
        if status_code >= 500:
            return ServerError(message, status_code=status_code, details=details)
        return ApiError(message, status_code=status_code, details=details)

    def _notify_unauthorized(self, error: AuthError) -> None:
        for handler in list(self._unauthorized_handlers):
            try:
                handler(error)
            except Exception as e:
                logger.error(f"Unauthorized handler failed: {e}", exc_info=True)
