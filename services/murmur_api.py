"""
Murmur API Module

Typed endpoint wrappers over ApiClient. Every method returns parsed
entities (Post, Actor, Alert) or a Page of them; raw JSON never leaves
this module. A response that cannot be parsed is reported as a
ServerError, since the server broke its own contract.
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import quote

from config import settings
from data.models import Actor, Alert, AlertKind, AuthResult, Page, Post
from services.api_client import ApiClient
from utils.exceptions import ServerError
from utils.logger import get_logger

logger = get_logger(__name__)


def _parse_murmur(item: Dict[str, Any]) -> Tuple[Post, Optional[Actor]]:
    return Post.from_api(item)


def _parse_user(item: Dict[str, Any]) -> Tuple[Actor, None]:
    return Actor.from_api(item), None


ALERT_KINDS = frozenset(kind.value for kind in AlertKind)


def _parse_alert(item: Dict[str, Any]) -> Tuple[Optional[Alert], Optional[Actor]]:
    """Parse a notification. Kinds this client does not know are skipped, not fatal."""
    kind = item.get("type", "like")
    if kind not in ALERT_KINDS:
        logger.info(f"Skipping notification {item.get('id')} of unsupported type {kind!r}")
        return None, None
    return Alert.from_api(item)


def parse_page(payload: Any, list_keys: Sequence[str],
               parse_item: Callable[[Dict[str, Any]], Tuple[Any, Any]],
               page: Optional[int] = None) -> Page:
    """
    Build a Page from a list response.

    Two pagination styles are understood: page numbers
    (``pagination: {page, hasNextPage}``) and cursors (``hasMore``, ``nextCursor``).
    For page numbers the next cursor is simply the next page number.

    Args:
        payload: The unwrapped response data.
        list_keys: Keys that may hold the item list, tried after ``items``.
        parse_item: Turns one JSON object into (entity, related entity or None).
        page: The page number that was requested, if page-numbered.

    Returns:
        Page of parsed entities, with embedded related entities collected.

    Raises:
        ServerError: If the payload does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise ServerError(f"Malformed list response: expected an object, got {type(payload).__name__}")

    raw_items = None
    for key in ("items",) + tuple(list_keys):
        if isinstance(payload.get(key), list):
            raw_items = payload[key]
            break
    if raw_items is None:
        raise ServerError(f"Malformed list response: none of {', '.join(('items',) + tuple(list_keys))} present")

    items = []
    related = []
    try:
        for raw in raw_items:
            entity, extra = parse_item(raw)
            if entity is None:
                continue
            items.append(entity)
            if extra is not None:
                related.append(extra)
    except (KeyError, ValueError, TypeError) as e:
        raise ServerError(f"Malformed item in list response: {e}") from e

    pagination = payload.get("pagination")
    if isinstance(pagination, dict):
        has_more = bool(pagination.get("hasNextPage", False))
        current = pagination.get("page") or page or 1
        next_cursor = current + 1 if has_more else None
    else:
        has_more = bool(payload.get("hasMore", False))
        next_cursor = payload.get("nextCursor")

    return Page(items=items, has_more=has_more, next_cursor=next_cursor, related=related)


def _single(payload: Any, key: str) -> Dict[str, Any]:
    """Pull one object out of ``{key: {...}}`` (or accept the bare object)."""
    if isinstance(payload, dict) and isinstance(payload.get(key), dict):
        return payload[key]
    if isinstance(payload, dict) and "id" in payload:
        return payload
    raise ServerError(f"Malformed response: missing '{key}'")


class MurmurApi:
    """Endpoint-level access to the Murmur API."""

    def __init__(self, client: ApiClient):
        self.client = client

    # =========================================================================
    # Murmurs
    # =========================================================================

    async def _murmur_page(self, path: str, page: int, limit: Optional[int],
                           extra_params: Optional[Dict[str, Any]] = None) -> Page:
        params = {"page": page, "limit": limit or settings.DEFAULT_PAGE_LIMIT}
        if extra_params:
            params.update(extra_params)
        payload = await self.client.get(path, params=params)
        result = parse_page(payload, ("murmurs",), _parse_murmur, page=page)
        # Author murmur listings also carry the author profile
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            result.related.append(Actor.from_api(payload["user"]))
        return result

    async def get_timeline(self, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._murmur_page("/murmurs/timeline", page, limit)

    async def get_explore(self, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._murmur_page("/murmurs", page, limit)

    async def get_user_murmurs(self, user_id: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._murmur_page(f"/murmurs/user/{user_id}", page, limit)

    async def get_user_liked_murmurs(self, user_id: str, page: int = 1,
                                     limit: Optional[int] = None) -> Page:
        return await self._murmur_page(f"/murmurs/user/{user_id}/liked", page, limit)

    async def get_replies(self, parent_id: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._murmur_page(f"/murmurs/{parent_id}/replies", page, limit)

    async def search_murmurs(self, query: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._murmur_page("/murmurs/search", page, limit, {"q": query})

    async def get_murmur(self, murmur_id: str) -> Tuple[Post, Optional[Actor]]:
        payload = await self.client.get(f"/murmurs/{murmur_id}")
        return self._parse_one_murmur(payload)

    async def create_murmur(self, content: str,
                            parent_id: Optional[str] = None) -> Tuple[Post, Optional[Actor]]:
        body = {"content": content}
        if parent_id:
            body["parentId"] = parent_id
        payload = await self.client.post("/murmurs", json_body=body)
        post, author = self._parse_one_murmur(payload)
        if parent_id and post.parent_id is None:
            post.parent_id = parent_id
        logger.info(f"Created murmur {post.id}" + (f" in reply to {parent_id}" if parent_id else ""))
        return post, author

    async def delete_murmur(self, murmur_id: str) -> None:
        await self.client.delete(f"/murmurs/{murmur_id}")

    async def like_murmur(self, murmur_id: str) -> Tuple[bool, int]:
        payload = await self.client.post(f"/murmurs/{murmur_id}/like")
        return self._parse_flag(payload, "isLiked", "likesCount")

    async def unlike_murmur(self, murmur_id: str) -> Tuple[bool, int]:
        payload = await self.client.delete(f"/murmurs/{murmur_id}/like")
        return self._parse_flag(payload, "isLiked", "likesCount")

    # =========================================================================
    # Users
    # =========================================================================

    async def get_user(self, user_id: str) -> Actor:
        payload = await self.client.get(f"/users/{user_id}")
        return self._parse_actor(payload)

    async def follow_user(self, user_id: str) -> Tuple[bool, int]:
        payload = await self.client.post(f"/users/{user_id}/follow")
        return self._parse_flag(payload, "isFollowing", "followersCount")

    async def unfollow_user(self, user_id: str) -> Tuple[bool, int]:
        payload = await self.client.delete(f"/users/{user_id}/follow")
        return self._parse_flag(payload, "isFollowing", "followersCount")

    async def _user_page(self, path: str, list_key: str, page: int, limit: Optional[int]) -> Page:
        params = {"page": page, "limit": limit or settings.USER_PAGE_LIMIT}
        payload = await self.client.get(path, params=params)
        return parse_page(payload, (list_key, "users"), _parse_user, page=page)

    async def get_followers(self, user_id: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._user_page(f"/users/{user_id}/followers", "followers", page, limit)

    async def get_following(self, user_id: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._user_page(f"/users/{user_id}/following", "following", page, limit)

    async def search_users(self, query: str, page: int = 1, limit: Optional[int] = None) -> Page:
        return await self._user_page(f"/users/search/{quote(query, safe='')}", "users", page, limit)

    # =========================================================================
    # Auth
    # =========================================================================

    async def login(self, identifier: str, password: str) -> AuthResult:
        payload = await self.client.post("/auth/login",
                                         json_body={"identifier": identifier, "password": password})
        return self._parse_auth(payload)

    async def register(self, username: str, email: str, display_name: str, password: str) -> AuthResult:
        payload = await self.client.post("/auth/register", json_body={
            "username": username,
            "email": email,
            "displayName": display_name,
            "password": password,
        })
        return self._parse_auth(payload)

    async def get_me(self) -> Actor:
        payload = await self.client.get("/auth/me")
        return self._parse_actor(payload)

    async def update_profile(self, display_name: Optional[str] = None,
                             bio: Optional[str] = None) -> Actor:
        body = {}
        if display_name is not None:
            body["displayName"] = display_name
        if bio is not None:
            body["bio"] = bio
        payload = await self.client.put("/auth/me", json_body=body)
        return self._parse_actor(payload)

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self.client.put("/auth/me/password", json_body={
            "currentPassword": current_password,
            "newPassword": new_password,
        })

    # =========================================================================
    # Notifications
    # =========================================================================

    async def get_notifications(self, cursor: Optional[str] = None) -> Page:
        params = {"cursor": cursor} if cursor else None
        payload = await self.client.get("/notifications", params=params)
        return parse_page(payload, ("notifications", "data"), _parse_alert)

    async def get_unread_count(self) -> int:
        payload = await self.client.get("/notifications/unread-count")
        try:
            return int(payload["count"] if isinstance(payload, dict) else payload)
        except (KeyError, TypeError, ValueError) as e:
            raise ServerError(f"Malformed unread count response: {e}") from e

    async def mark_notification_read(self, alert_id: str) -> None:
        await self.client.put(f"/notifications/{alert_id}/read")

    async def mark_all_notifications_read(self) -> None:
        await self.client.put("/notifications/read-all")

    async def delete_notification(self, alert_id: str) -> None:
        await self.client.delete(f"/notifications/{alert_id}")

    # =========================================================================
    # Parsing helpers
    # =========================================================================

    @staticmethod
    def _parse_one_murmur(payload: Any) -> Tuple[Post, Optional[Actor]]:
        try:
            return Post.from_api(_single(payload, "murmur"))
        except (KeyError, ValueError, TypeError) as e:
            raise ServerError(f"Malformed murmur response: {e}") from e

    @staticmethod
    def _parse_actor(payload: Any) -> Actor:
        try:
            return Actor.from_api(_single(payload, "user"))
        except (KeyError, ValueError, TypeError) as e:
            raise ServerError(f"Malformed user response: {e}") from e

    @staticmethod
    def _parse_flag(payload: Any, flag_key: str, count_key: str) -> Tuple[bool, int]:
        try:
            return bool(payload[flag_key]), int(payload[count_key])
        except (KeyError, TypeError, ValueError) as e:
            raise ServerError(f"Malformed response, expected {flag_key}/{count_key}: {e}") from e

    @staticmethod
    def _parse_auth(payload: Any) -> AuthResult:
        try:
            return AuthResult(token=payload["token"], viewer=Actor.from_api(payload["user"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ServerError(f"Malformed auth response: {e}") from e
