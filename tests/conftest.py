"""
Shared Test Fixtures for Murmur Sync

This module provides common fixtures used across all test modules.
Fixtures include safe settings, log capture, HTTP responses, a fake
Murmur API, and data factories for test entities.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import Actor, Alert, AlertKind, AuthResult, Page, Post


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def mock_settings(monkeypatch, tmp_path):
    """
    Point the settings module at safe test values.

    Modules read ``settings.X`` at call time, so patching the attributes of
    the real module is enough. The token file lives in a temporary directory.

    Usage:
        def test_something(mock_settings):
            mock_settings.MAX_MURMUR_LENGTH = 10
            # ... test code

    Returns:
        module: The patched config.settings module.
    """
    from config import settings

    monkeypatch.setattr(settings, "MURMUR_API_BASE_URL", "https://murmur.test/api")
    monkeypatch.setattr(settings, "REQUEST_TIMEOUT", 5.0)
    monkeypatch.setattr(settings, "REQUEST_HEADERS", {'User-Agent': 'Test User Agent'})
    monkeypatch.setattr(settings, "DEFAULT_PAGE_LIMIT", 10)
    monkeypatch.setattr(settings, "USER_PAGE_LIMIT", 20)
    monkeypatch.setattr(settings, "MAX_MURMUR_LENGTH", 280)
    monkeypatch.setattr(settings, "AUTH_TOKEN_KEY", "auth_token")
    monkeypatch.setattr(settings, "TOKEN_FILE", str(tmp_path / "session.json"))
    monkeypatch.setattr(settings, "LOG_FILE", str(tmp_path / "test.log"))
    monkeypatch.setattr(settings, "LOG_LEVEL", "INFO")

    yield settings


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Records are captured from the application's ``murmur`` logger tree.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    app_logger = logging.getLogger("murmur")
    original_level = app_logger.level
    app_logger.setLevel(logging.DEBUG)
    app_logger.addHandler(handler)

    yield handler.records

    app_logger.removeHandler(handler)
    app_logger.setLevel(original_level)


# =============================================================================
# HTTP Response Fixtures
# =============================================================================

@pytest.fixture
def mock_http_response():
    """
    Factory fixture for creating mock HTTP responses.

    Usage:
        def test_http_request(mock_http_response):
            response = mock_http_response(
                status_code=200,
                json_data={'success': True, 'data': {'id': '1'}}
            )
            # ... test code

    Returns:
        callable: A factory function for creating mock responses.
    """
    def _create_response(
        status_code: int = 200,
        json_data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        url: str = 'https://murmur.test/api'
    ) -> MagicMock:
        """
        Create a mock HTTP response object.

        Args:
            status_code: HTTP status code (default 200).
            json_data: Value to return from response.json(). None makes json() raise.
            headers: Response headers dictionary.
            url: The URL of the response.

        Returns:
            MagicMock: A mock response object mimicking requests.Response.
        """
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.url = url
        mock_response.headers = headers or {'Content-Type': 'application/json'}
        mock_response.ok = 200 <= status_code < 300

        if json_data is not None:
            mock_response.json.return_value = json_data
        else:
            mock_response.json.side_effect = ValueError("No JSON data")

        return mock_response

    return _create_response


@pytest.fixture
def mock_session(mock_http_response):
    """
    A MagicMock standing in for requests.Session.

    Usage:
        def test_call(mock_session):
            mock_session.request.return_value = mock_session.response(json_data={...})

    Returns:
        MagicMock: Session mock with the response factory attached.
    """
    session = MagicMock()
    session.headers = {}
    session.response = mock_http_response
    return session


# =============================================================================
# Data Model Factories
# =============================================================================

@pytest.fixture
def actor_factory():
    """
    Factory fixture for creating Actor test objects.

    Usage:
        def test_actor(actor_factory):
            actor = actor_factory(actor_id='u2', follower_count=5)

    Returns:
        callable: A factory function for creating Actor objects.
    """
    def _create_actor(
        actor_id: str = 'u1',
        handle: Optional[str] = None,
        display_name: Optional[str] = None,
        bio: Optional[str] = None,
        follower_count: Optional[int] = 0,
        following_count: Optional[int] = 0,
        post_count: Optional[int] = 0,
        followed_by_viewer: Optional[bool] = False
    ) -> Actor:
        handle = handle or f"user_{actor_id}"
        return Actor(
            id=actor_id,
            handle=handle,
            display_name=display_name or handle.title(),
            bio=bio,
            follower_count=follower_count,
            following_count=following_count,
            post_count=post_count,
            followed_by_viewer=followed_by_viewer,
        )

    return _create_actor


@pytest.fixture
def post_factory():
    """
    Factory fixture for creating Post test objects.

    Usage:
        def test_post(post_factory):
            post = post_factory(post_id='p2', like_count=3)

    Returns:
        callable: A factory function for creating Post objects.
    """
    def _create_post(
        post_id: str = 'p1',
        author_id: str = 'u1',
        body: str = 'Test murmur for unit testing.',
        like_count: Optional[int] = 0,
        reply_count: Optional[int] = 0,
        liked_by_viewer: Optional[bool] = False,
        parent_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Post:
        return Post(
            id=post_id,
            author_id=author_id,
            body=body,
            like_count=like_count,
            reply_count=reply_count,
            liked_by_viewer=liked_by_viewer,
            parent_id=parent_id,
            created_at=created_at or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        )

    return _create_post


@pytest.fixture
def alert_factory():
    """
    Factory fixture for creating Alert test objects.

    Returns:
        callable: A factory function for creating Alert objects.
    """
    def _create_alert(
        alert_id: str = 'n1',
        kind: AlertKind = AlertKind.LIKE,
        actor_id: str = 'u2',
        subject_post_id: Optional[str] = 'p1',
        is_read: bool = False
    ) -> Alert:
        return Alert(id=alert_id, kind=kind, actor_id=actor_id,
                     subject_post_id=subject_post_id, is_read=is_read)

    return _create_alert


@pytest.fixture
def page_factory():
    """
    Factory fixture for creating Page objects.

    Usage:
        page = page_factory([post1, post2], has_more=True, next_cursor=2)

    Returns:
        callable: A factory function for creating Page objects.
    """
    def _create_page(items: List[Any], has_more: bool = False, next_cursor: Any = None,
                     related: Optional[List[Any]] = None) -> Page:
        return Page(items=list(items), has_more=has_more, next_cursor=next_cursor,
                    related=list(related or []))

    return _create_page


@pytest.fixture
def murmur_json_factory():
    """
    Factory fixture for murmur objects in the API's JSON shape.

    Returns:
        callable: A factory function for creating murmur dictionaries.
    """
    def _create_murmur_json(
        murmur_id: str = 'p1',
        user_id: str = 'u1',
        content: str = 'Hello from the API',
        likes: int = 0,
        replies: int = 0,
        is_liked: Optional[bool] = False,
        parent_id: Optional[str] = None,
        embed_user: bool = True
    ) -> Dict[str, Any]:
        data = {
            'id': murmur_id,
            'content': content,
            'likesCount': likes,
            'repliesCount': replies,
            'retweetsCount': 0,
            'isLikedByUser': is_liked,
            'createdAt': '2025-01-15T12:00:00.000Z',
            'parentId': parent_id,
        }
        if embed_user:
            data['userId'] = {'id': user_id, 'username': f'user_{user_id}', 'displayName': f'User {user_id}'}
        else:
            data['userId'] = user_id
        return data

    return _create_murmur_json


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def fake_api(actor_factory):
    """
    A MurmurApi stand-in whose endpoint methods are AsyncMocks.

    Login and /auth/me succeed for viewer 'me' by default; like/follow
    calls echo a plausible canonical response.

    Returns:
        MagicMock: Fake API with AsyncMock endpoint methods.
    """
    viewer = actor_factory(actor_id='me', handle='viewer', following_count=0, post_count=0)

    api = MagicMock()
    api.viewer = viewer
    api.login = AsyncMock(return_value=AuthResult(token='token-123', viewer=viewer))
    api.register = AsyncMock(return_value=AuthResult(token='token-123', viewer=viewer))
    api.get_me = AsyncMock(return_value=viewer)
    api.change_password = AsyncMock(return_value=None)
    api.update_profile = AsyncMock(return_value=viewer)

    api.like_murmur = AsyncMock(return_value=(True, 1))
    api.unlike_murmur = AsyncMock(return_value=(False, 0))
    api.follow_user = AsyncMock(return_value=(True, 1))
    api.unfollow_user = AsyncMock(return_value=(False, 0))
    api.create_murmur = AsyncMock()
    api.delete_murmur = AsyncMock(return_value=None)
    api.get_murmur = AsyncMock()
    api.get_user = AsyncMock()

    empty = Page(items=[], has_more=False)
    for name in ('get_timeline', 'get_explore', 'get_user_murmurs', 'get_user_liked_murmurs',
                 'get_replies', 'search_murmurs', 'get_followers', 'get_following',
                 'search_users', 'get_notifications'):
        setattr(api, name, AsyncMock(return_value=empty))

    api.get_unread_count = AsyncMock(return_value=0)
    api.mark_notification_read = AsyncMock(return_value=None)
    api.mark_all_notifications_read = AsyncMock(return_value=None)
    api.delete_notification = AsyncMock(return_value=None)
    return api


@pytest.fixture
def gated_call():
    """
    Build an async side effect that blocks until released.

    Lets a test start a mutation, observe the optimistic state while the
    "request" is in flight, then decide how it completes.

    Usage:
        call, release = gated_call(result=(True, 5))
        api.like_murmur = AsyncMock(side_effect=call)
        task = asyncio.create_task(coordinator.like('p1'))
        ...
        release()
        await task

    Returns:
        callable: Factory returning (side_effect, release).
    """
    import asyncio

    def _create(result: Any = None, error: Optional[Exception] = None):
        event = asyncio.Event()

        async def _call(*args, **kwargs):
            await event.wait()
            if error is not None:
                raise error
            return result

        return _call, event.set

    return _create
