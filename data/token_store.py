"""
Token Store Module

Persistence for the session credential. The file store keeps a small JSON
document keyed by settings.AUTH_TOKEN_KEY; the memory store is used by
tests and by callers that do not want anything written to disk.
"""

import json
import os
from typing import Optional

from config import settings
from utils.exceptions import StorageError
from utils.logger import get_logger

logger = get_logger(__name__)


class FileTokenStore:
    """Stores the credential in a JSON file."""

    def __init__(self, path: Optional[str] = None, key: Optional[str] = None):
        self.path = str(path or settings.TOKEN_FILE)
        self.key = key or settings.AUTH_TOKEN_KEY

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading token file {self.path}: {e}")
            raise StorageError(f"Could not read token file: {e}") from e
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory and not os.path.exists(directory):
                os.makedirs(directory)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(data, f)
        except OSError as e:
            logger.error(f"Error writing token file {self.path}: {e}")
            raise StorageError(f"Could not write token file: {e}") from e

    def load_token(self) -> Optional[str]:
        token = self._read().get(self.key)
        return token or None

    def save_token(self, token: str) -> None:
        data = self._read()
        data[self.key] = token
        self._write(data)
        logger.debug(f"Saved credential to {self.path}")

    def clear_token(self) -> None:
        data = self._read()
        if self.key not in data:
            return
        del data[self.key]
        self._write(data)
        logger.debug(f"Removed credential from {self.path}")


class MemoryTokenStore:
    """Keeps the credential in memory only."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def load_token(self) -> Optional[str]:
        return self.token

    def save_token(self, token: str) -> None:
        self.token = token

    def clear_token(self) -> None:
        self.token = None
