"""
Data Models for Murmur Sync

This module contains the entity data classes held in the resource stores,
plus the small value types passed between collections and the API layer.
Each entity knows how to build itself from the API's JSON shape.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the API ('Z' suffix allowed)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def _ref_id(value: Any) -> Optional[str]:
    """Return the id of a reference that may be a bare id or an embedded object."""
    if value is None:
        return None
    if isinstance(value, dict):
        ref = value.get("id")
        return str(ref) if ref is not None else None
    return str(value)


# =============================================================================
# Entities
# =============================================================================

@dataclass
class Actor:
    """A user account, as referenced by murmurs and the follow graph."""
    id: str
    handle: str
    display_name: str
    bio: Optional[str] = None
    follower_count: Optional[int] = None     # None means "not sent", never overwrites
    following_count: Optional[int] = None
    post_count: Optional[int] = None
    followed_by_viewer: Optional[bool] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Actor":
        return cls(
            id=str(data["id"]),
            handle=data.get("username", ""),
            display_name=data.get("displayName", data.get("username", "")),
            bio=data.get("bio"),
            follower_count=data.get("followersCount"),
            following_count=data.get("followingCount"),
            post_count=data.get("murmursCount"),
            followed_by_viewer=data.get("isFollowing"),
        )


@dataclass
class Post:
    """A murmur. Only the counts and liked_by_viewer change after creation."""
    id: str
    author_id: str
    body: str
    like_count: Optional[int] = None       # None means "not sent", never overwrites
    reply_count: Optional[int] = None
    repost_count: Optional[int] = None
    liked_by_viewer: Optional[bool] = None
    created_at: Optional[datetime] = None
    parent_id: Optional[str] = None

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Tuple["Post", Optional[Actor]]:
        """
        Build a Post from an API murmur object.

        The API embeds the author either as ``userId`` (id string or user
        object) or as ``user``. When a full user object is present it is
        returned alongside the post so the caller can upsert it.

        Args:
            data: The murmur JSON object.

        Returns:
            Tuple of (Post, embedded author Actor or None).
        """
        author_ref = data.get("user") or data.get("userId")
        author = None
        if isinstance(author_ref, dict) and "username" in author_ref:
            author = Actor.from_api(author_ref)

        post = cls(
            id=str(data["id"]),
            author_id=_ref_id(author_ref) or "",
            body=data.get("content", ""),
            like_count=data.get("likesCount"),
            reply_count=data.get("repliesCount"),
            repost_count=data.get("retweetsCount"),
            liked_by_viewer=data.get("isLikedByUser"),
            created_at=parse_timestamp(data.get("createdAt")),
            parent_id=_ref_id(data.get("parentId")),
        )
        return post, author


class AlertKind(str, Enum):
    LIKE = "like"
    FOLLOW = "follow"
    REPLY = "reply"
    RETWEET = "retweet"


@dataclass
class Alert:
    """A notification about another actor's interaction with the viewer's content."""
    id: str
    kind: AlertKind
    actor_id: str
    subject_post_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Tuple["Alert", Optional[Actor]]:
        actor_ref = data.get("actor") or data.get("actorId")
        actor = None
        if isinstance(actor_ref, dict) and "username" in actor_ref:
            actor = Actor.from_api(actor_ref)

        alert = cls(
            id=str(data["id"]),
            kind=AlertKind(data.get("type", "like")),
            actor_id=_ref_id(actor_ref) or "",
            subject_post_id=_ref_id(data.get("murmurId")),
            is_read=bool(data.get("isRead", False)),
            created_at=parse_timestamp(data.get("createdAt")),
        )
        return alert, actor


# =============================================================================
# Pagination
# =============================================================================

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of entities as returned by a list endpoint."""
    items: List[T]
    has_more: bool
    next_cursor: Any = None
    related: List[Any] = field(default_factory=list)   # embedded authors/actors


# =============================================================================
# Session
# =============================================================================

class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"
    INVALID = "invalid"


@dataclass
class Session:
    """The current credential and who it belongs to."""
    token: Optional[str] = None
    viewer_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ANONYMOUS


@dataclass
class AlertBadge:
    """Unread notification counter shown next to the notifications tab."""
    unread_count: int = 0

    def decrement(self) -> None:
        self.unread_count = max(0, self.unread_count - 1)


@dataclass
class AuthResult:
    """Token and viewer returned by login/register."""
    token: str
    viewer: Actor
