"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for data layer operations.
These protocols enable dependency injection for persisted state,
making the session layer testable without touching the filesystem.

Protocols defined:
- TokenStorage: Interface for persisting the session credential
"""

from typing import Optional, Protocol


class TokenStorage(Protocol):
    """Protocol defining the interface for credential persistence.

    Implementations should provide methods for:
    - Reading the credential at process start
    - Writing it on login/register
    - Erasing it on logout or when the server rejects it

    The credential is an opaque string stored under a single well-known key.
    """

    def load_token(self) -> Optional[str]:
        """Read the persisted credential.

        Returns:
            The token, or None if nothing is stored.
        """
        ...

    def save_token(self, token: str) -> None:
        """Persist the credential, replacing any previous one.

        Args:
            token: The opaque credential string.
        """
        ...

    def clear_token(self) -> None:
        """Erase the persisted credential. Erasing when nothing is stored is not an error."""
        ...
