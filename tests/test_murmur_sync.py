"""
Tests for MurmurSync

Tests cover the wiring between session, stores and registries, the page
loaders, single-entity loads, pruning, and clearing state on sign-out.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import SessionStatus
from data.paged_collection import FetchOutcome
from data.token_store import MemoryTokenStore
from services.murmur_api import MurmurApi
from services.murmur_sync import MurmurSync
from utils.exceptions import AuthError, NetworkError, NotFoundError


@pytest.fixture
def sync(fake_api):
    return MurmurSync(api=fake_api, token_store=MemoryTokenStore())


# =============================================================================
# Wiring Tests
# =============================================================================

class TestWiring:
    """Tests for how the facade connects its parts."""

    def test_client_gets_token_provider_and_401_hook(self, fake_api):
        client = MagicMock()
        sync = MurmurSync(api=fake_api, token_store=MemoryTokenStore(), client=client)

        assert client.token_provider == sync.session.current_token
        client.add_unauthorized_handler.assert_called_once_with(sync.session.handle_unauthorized)

    @pytest.mark.asyncio
    async def test_login_stores_viewer(self, sync):
        await sync.login('viewer', 'secret')
        assert sync.viewer.id == 'me'
        assert 'me' in sync.actors

    @pytest.mark.asyncio
    async def test_start_restores_and_loads_badge(self, fake_api):
        fake_api.get_unread_count = AsyncMock(return_value=3)
        sync = MurmurSync(api=fake_api, token_store=MemoryTokenStore('saved'))

        status = await sync.start()

        assert status == SessionStatus.AUTHENTICATED
        assert sync.alert_badge.unread_count == 3

    @pytest.mark.asyncio
    async def test_start_survives_badge_failure(self, fake_api):
        """A failed unread-count request does not undo the restored session."""
        fake_api.get_unread_count = AsyncMock(side_effect=NetworkError("offline"))
        sync = MurmurSync(api=fake_api, token_store=MemoryTokenStore('saved'))

        status = await sync.start()

        assert status == SessionStatus.AUTHENTICATED
        assert sync.session.is_authenticated
        assert sync.alert_badge.unread_count == 0

    @pytest.mark.asyncio
    async def test_start_without_token(self, sync, fake_api):
        assert await sync.start() == SessionStatus.ANONYMOUS
        fake_api.get_unread_count.assert_not_awaited()

    def test_close_closes_client(self, fake_api):
        client = MagicMock()
        MurmurSync(api=fake_api, token_store=MemoryTokenStore(), client=client).close()
        client.close.assert_called_once()


# =============================================================================
# Session Clear Tests
# =============================================================================

class TestSessionClear:
    """Tests for state teardown on logout and 401."""

    @pytest.mark.asyncio
    async def test_logout_clears_all_state(self, sync, fake_api, post_factory, page_factory, alert_factory):
        """After logout every store and registry is empty."""
        await sync.login('viewer', 'secret')
        fake_api.get_timeline = AsyncMock(return_value=page_factory([post_factory(post_id='p1')]))
        await sync.timeline().fetch_page()
        sync.followers('u1')
        sync.alerts.upsert(alert_factory())
        sync.alert_badge.unread_count = 4

        sync.logout()

        assert len(sync.posts) == 0
        assert len(sync.actors) == 0
        assert len(sync.alerts) == 0
        assert sync.alert_badge.unread_count == 0
        for registries in (sync.post_registries, sync.actor_registries, sync.alert_registries):
            for registry in registries.values():
                assert len(registry) == 0
        assert sync.timeline().ordered_ids == []

    @pytest.mark.asyncio
    async def test_unauthorized_clears_all_state(self, sync, post_factory):
        await sync.login('viewer', 'secret')
        sync.posts.upsert(post_factory(post_id='p1'))

        sync.session.handle_unauthorized(AuthError("expired", status_code=401))

        assert len(sync.posts) == 0
        assert not sync.session.is_authenticated

    @pytest.mark.asyncio
    async def test_page_landing_after_logout_is_dropped(self, sync, fake_api, post_factory,
                                                       actor_factory, page_factory, gated_call):
        """No entity from the old session appears after the clear."""
        await sync.login('viewer', 'secret')
        page = page_factory([post_factory(post_id='p1', author_id='u2')],
                            related=[actor_factory(actor_id='u2')])
        call, release = gated_call(result=page)
        fake_api.get_timeline = AsyncMock(side_effect=call)
        collection = sync.timeline()

        task = asyncio.create_task(collection.fetch_page())
        await asyncio.sleep(0)
        sync.logout()
        release()

        assert await task == FetchOutcome.STALE
        assert len(sync.posts) == 0
        assert len(sync.actors) == 0
        assert sync.timeline().ordered_ids == []


# =============================================================================
# Loader Tests
# =============================================================================

class TestLoaders:
    """Tests for the per-registry page loaders."""

    @pytest.mark.asyncio
    async def test_related_authors_are_upserted(self, sync, fake_api, post_factory,
                                                actor_factory, page_factory):
        fake_api.get_explore = AsyncMock(return_value=page_factory(
            [post_factory(post_id='p1', author_id='u2')], has_more=True, next_cursor=2,
            related=[actor_factory(actor_id='u2', handle='bob')]))

        await sync.explore().fetch_page()
        await sync.explore().fetch_page()

        assert sync.actors.get('u2').handle == 'bob'
        assert fake_api.get_explore.await_args_list[0].kwargs == {'page': 1}
        assert fake_api.get_explore.await_args_list[1].kwargs == {'page': 2}

    @pytest.mark.asyncio
    async def test_author_collection_excludes_replies(self, sync, fake_api, post_factory, page_factory):
        fake_api.get_user_murmurs = AsyncMock(return_value=page_factory([
            post_factory(post_id='p1', author_id='u2'),
            post_factory(post_id='r1', author_id='u2', parent_id='p0'),
        ]))

        await sync.author_posts('u2').fetch_page()

        assert sync.author_posts('u2').ordered_ids == ['p1']
        fake_api.get_user_murmurs.assert_awaited_once_with('u2', page=1)

    @pytest.mark.asyncio
    async def test_replies_partitioned_by_parent(self, sync, fake_api, post_factory, page_factory):
        fake_api.get_replies = AsyncMock(return_value=page_factory(
            [post_factory(post_id='r1', parent_id='p1')]))

        await sync.replies('p1').fetch_page()

        fake_api.get_replies.assert_awaited_once_with('p1', page=1)
        assert sync.replies('p2').ordered_ids == []

    @pytest.mark.asyncio
    async def test_notifications_use_cursor(self, sync, fake_api, alert_factory, page_factory):
        fake_api.get_notifications = AsyncMock(side_effect=[
            page_factory([alert_factory(alert_id='n1')], has_more=True, next_cursor='c2'),
            page_factory([alert_factory(alert_id='n2')], has_more=False),
        ])

        await sync.notifications().fetch_page()
        await sync.notifications().fetch_page()

        assert sync.notifications().ordered_ids == ['n1', 'n2']
        assert fake_api.get_notifications.await_args_list[1].kwargs == {'cursor': 'c2'}

    @pytest.mark.asyncio
    async def test_notifications_page_with_unsupported_kind_loads(self, fake_api):
        """Unknown notification kinds from the server do not fail the whole page."""
        client = MagicMock()
        client.get = AsyncMock(return_value={
            'items': [
                {'id': 'n1', 'type': 'follow', 'actorId': 'u2'},
                {'id': 'n2', 'type': 'retweet', 'actorId': 'u3', 'murmurId': 'p1'},
                {'id': 'n3', 'type': 'mention', 'actorId': 'u4'},
            ],
            'hasMore': False,
        })
        fake_api.get_notifications = MurmurApi(client).get_notifications
        sync = MurmurSync(api=fake_api, token_store=MemoryTokenStore())

        outcome = await sync.notifications().fetch_page()

        assert outcome == FetchOutcome.FETCHED
        assert sync.notifications().ordered_ids == ['n1', 'n2']
        assert 'n3' not in sync.alerts

    @pytest.mark.asyncio
    async def test_search_query_is_trimmed(self, sync, fake_api):
        await sync.search_users('  alice ').fetch_page()
        fake_api.search_users.assert_awaited_once_with('alice', page=1)
        assert sync.search_users('alice') is sync.search_users(' alice')


# =============================================================================
# Single Entity Tests
# =============================================================================

class TestSingleLoads:
    """Tests for load_post, load_actor and refresh_unread_count."""

    @pytest.mark.asyncio
    async def test_load_post_upserts_post_and_author(self, sync, fake_api, post_factory, actor_factory):
        fake_api.get_murmur = AsyncMock(return_value=(post_factory(post_id='p1', author_id='u2', like_count=5),
                                                      actor_factory(actor_id='u2')))

        post = await sync.load_post('p1')

        assert post.like_count == 5
        assert 'u2' in sync.actors

    @pytest.mark.asyncio
    async def test_load_post_gone_purges(self, sync, fake_api, post_factory):
        sync.posts.upsert(post_factory(post_id='p1'))
        sync.explore().prepend_id('p1')
        fake_api.get_murmur = AsyncMock(side_effect=NotFoundError("gone", status_code=404))

        assert await sync.load_post('p1') is None
        assert 'p1' not in sync.posts
        assert 'p1' not in sync.explore()

    @pytest.mark.asyncio
    async def test_load_actor_merges_counts(self, sync, fake_api, actor_factory):
        sync.actors.upsert(actor_factory(actor_id='u2', follower_count=7))
        fake_api.get_user = AsyncMock(return_value=actor_factory(actor_id='u2', follower_count=None, bio='hi'))

        actor = await sync.load_actor('u2')

        assert actor.follower_count == 7
        assert actor.bio == 'hi'

    @pytest.mark.asyncio
    async def test_unread_count_requires_session(self, sync):
        with pytest.raises(AuthError):
            await sync.refresh_unread_count()


# =============================================================================
# Prune Tests
# =============================================================================

class TestPrune:
    """Tests for explicit pruning of unreferenced entries."""

    @pytest.mark.asyncio
    async def test_prune_keeps_referenced_entries(self, sync, post_factory, actor_factory, alert_factory):
        await sync.login('viewer', 'secret')
        sync.actors.upsert_many([actor_factory(actor_id=a) for a in ('u1', 'u2', 'u3', 'u9')])
        sync.posts.upsert_many([
            post_factory(post_id='p1', author_id='u1'),
            post_factory(post_id='r1', author_id='u1', parent_id='p0'),
            post_factory(post_id='p0', author_id='u3'),
            post_factory(post_id='p9', author_id='u9'),
        ])
        sync.alerts.upsert_many([alert_factory(alert_id='n1', actor_id='u2', subject_post_id='p1'),
                                 alert_factory(alert_id='n9', actor_id='u9')])
        sync.timeline().prepend_id('p1')
        sync.replies('p0').prepend_id('r1')
        sync.notifications().prepend_id('n1')

        removed = sync.prune()

        assert removed == {'posts': 1, 'actors': 1, 'alerts': 1}
        assert set(sync.posts.ids()) == {'p1', 'r1', 'p0'}
        assert set(sync.actors.ids()) == {'me', 'u1', 'u2', 'u3'}
        assert sync.alerts.ids() == ['n1']
