"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for the remote services the
synchronizer depends on. These protocols enable loose coupling, dependency
injection, and easier testing (tests pass AsyncMock-backed fakes).

Protocols defined:
- MutationBackend: Remote calls used by the MutationCoordinator
- AuthBackend: Remote calls used by the SessionGate
"""

from typing import Optional, Protocol, Tuple

from data.models import Actor, AuthResult, Post


class MutationBackend(Protocol):
    """Protocol for the remote side of optimistic mutations.

    Like/follow calls return the server's canonical (flag, count) pair,
    which overrides whatever the client guessed optimistically.
    """

    async def like_murmur(self, murmur_id: str) -> Tuple[bool, int]:
        """Like a murmur. Returns (is_liked, likes_count)."""
        ...

    async def unlike_murmur(self, murmur_id: str) -> Tuple[bool, int]:
        """Remove the viewer's like. Returns (is_liked, likes_count)."""
        ...

    async def follow_user(self, user_id: str) -> Tuple[bool, int]:
        """Follow a user. Returns (is_following, followers_count)."""
        ...

    async def unfollow_user(self, user_id: str) -> Tuple[bool, int]:
        """Unfollow a user. Returns (is_following, followers_count)."""
        ...

    async def create_murmur(self, content: str,
                            parent_id: Optional[str] = None) -> Tuple[Post, Optional[Actor]]:
        """Create a murmur or reply. Returns the stored post and its embedded author."""
        ...

    async def delete_murmur(self, murmur_id: str) -> None:
        """Delete one of the viewer's murmurs."""
        ...

    async def mark_notification_read(self, alert_id: str) -> None:
        ...

    async def mark_all_notifications_read(self) -> None:
        ...

    async def delete_notification(self, alert_id: str) -> None:
        ...

    async def update_profile(self, display_name: Optional[str] = None,
                             bio: Optional[str] = None) -> Actor:
        """Edit the viewer's profile. Returns the updated viewer."""
        ...


class AuthBackend(Protocol):
    """Protocol for credential issuance and validation."""

    async def login(self, identifier: str, password: str) -> AuthResult:
        """Exchange credentials (email or username plus password) for a token."""
        ...

    async def register(self, username: str, email: str, display_name: str, password: str) -> AuthResult:
        """Create an account and return its token."""
        ...

    async def get_me(self) -> Actor:
        """Return the viewer the current token belongs to."""
        ...

    async def change_password(self, current_password: str, new_password: str) -> None:
        ...
