"""
Murmur Sync Module

The entry point screens talk to. MurmurSync owns the three resource
stores, every collection registry, the session gate and the mutation
coordinator, and wires them together:

- the API client reads its bearer token from the session gate
- a 401 from any call tears the session down
- ending a session resets every registry and clears every store
- page loaders upsert the authors embedded in each page
"""

from typing import Any, Dict, Hashable, Optional

from data.models import Actor, Alert, AlertBadge, Page, Post, SessionStatus
from data.paged_collection import PagedCollection, PageLoader
from data.protocols import TokenStorage
from data.registry import CollectionRegistry
from data.resource_store import ResourceStore
from data.token_store import FileTokenStore
from services.api_client import ApiClient
from services.murmur_api import MurmurApi
from services.mutation_coordinator import MutationCoordinator
from services.session_gate import SessionGate
from utils.exceptions import ApiError, NotFoundError
from utils.logger import get_logger

logger = get_logger(__name__)


class MurmurSync:
    """Normalized client-side state for one Murmur account."""

    def __init__(self, api: Optional[MurmurApi] = None,
                 token_store: Optional[TokenStorage] = None,
                 client: Optional[ApiClient] = None):
        """
        Build the stores, registries and services.

        Args:
            api: Endpoint wrapper. Built over ``client`` (or a new ApiClient) if omitted.
            token_store: Credential persistence, defaults to FileTokenStore.
            client: HTTP transport to wire the session into. Only used when
                ``api`` is omitted or the caller wants the 401 hook installed.
        """
        if api is None:
            client = client or ApiClient()
            api = MurmurApi(client)
        self.api = api
        self.client = client

        self.posts: ResourceStore[Post] = ResourceStore("posts")
        self.actors: ResourceStore[Actor] = ResourceStore("actors")
        self.alerts: ResourceStore[Alert] = ResourceStore("alerts")
        self.alert_badge = AlertBadge()

        self.session = SessionGate(api, token_store or FileTokenStore())
        self.session.add_clear_listener(self._clear_state)
        self.session.add_authenticated_listener(self._remember_viewer)
        if client is not None:
            client.token_provider = self.session.current_token
            client.add_unauthorized_handler(self.session.handle_unauthorized)

        self.post_registries: Dict[str, CollectionRegistry] = {
            "timeline": CollectionRegistry("timeline", self.posts, self._timeline_loader),
            "explore": CollectionRegistry("explore", self.posts, self._explore_loader),
            "author": CollectionRegistry("author", self.posts, self._author_loader),
            "liked": CollectionRegistry("liked", self.posts, self._liked_loader),
            "replies": CollectionRegistry("replies", self.posts, self._replies_loader),
            "search": CollectionRegistry("search", self.posts, self._search_loader),
        }
        self.actor_registries: Dict[str, CollectionRegistry] = {
            "followers": CollectionRegistry("followers", self.actors, self._followers_loader),
            "following": CollectionRegistry("following", self.actors, self._following_loader),
            "user_search": CollectionRegistry("user_search", self.actors, self._user_search_loader),
        }
        self.alert_registries: Dict[str, CollectionRegistry] = {
            "notifications": CollectionRegistry("notifications", self.alerts, self._notifications_loader),
        }

        self.mutations = MutationCoordinator(
            api,
            self.session,
            posts=self.posts,
            actors=self.actors,
            alerts=self.alerts,
            post_registries=self.post_registries,
            alert_registries=self.alert_registries,
            alert_badge=self.alert_badge,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> SessionStatus:
        """Restore a persisted session, if there is one."""
        status = await self.session.restore()
        if status == SessionStatus.AUTHENTICATED:
            # The badge is best effort; the restored session stands either way
            try:
                await self.refresh_unread_count()
            except ApiError as e:
                logger.warning(f"Could not load unread notification count: {e}")
        return self.session.status

    async def login(self, identifier: str, password: str) -> Actor:
        return await self.session.login(identifier, password)

    async def register(self, username: str, email: str, display_name: str, password: str) -> Actor:
        return await self.session.register(username, email, display_name, password)

    def logout(self) -> None:
        self.session.logout()

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    @property
    def viewer(self) -> Optional[Actor]:
        """The signed-in actor as currently stored (counts included)."""
        viewer_id = self.session.viewer_id
        if viewer_id is None:
            return None
        return self.actors.get(viewer_id) or self.session.viewer

    def _remember_viewer(self, viewer: Actor) -> None:
        self.actors.upsert(viewer)

    def _clear_state(self) -> None:
        for registries in (self.post_registries, self.actor_registries, self.alert_registries):
            for registry in registries.values():
                registry.reset_all()
        self.posts.clear()
        self.actors.clear()
        self.alerts.clear()
        self.alert_badge.unread_count = 0
        logger.info("Cleared all cached murmurs, users and notifications")

    # =========================================================================
    # Collections
    # =========================================================================

    def timeline(self) -> PagedCollection:
        return self.post_registries["timeline"].get_or_create()

    def explore(self) -> PagedCollection:
        return self.post_registries["explore"].get_or_create()

    def author_posts(self, actor_id: str) -> PagedCollection:
        """Top-level murmurs by one user. Replies never appear here."""
        return self.post_registries["author"].get_or_create(actor_id)

    def liked_posts(self, actor_id: str) -> PagedCollection:
        return self.post_registries["liked"].get_or_create(actor_id)

    def replies(self, post_id: str) -> PagedCollection:
        return self.post_registries["replies"].get_or_create(post_id)

    def search_posts(self, query: str) -> PagedCollection:
        return self.post_registries["search"].get_or_create(query.strip())

    def followers(self, actor_id: str) -> PagedCollection:
        return self.actor_registries["followers"].get_or_create(actor_id)

    def following(self, actor_id: str) -> PagedCollection:
        return self.actor_registries["following"].get_or_create(actor_id)

    def search_users(self, query: str) -> PagedCollection:
        return self.actor_registries["user_search"].get_or_create(query.strip())

    def notifications(self) -> PagedCollection:
        return self.alert_registries["notifications"].get_or_create()

    # =========================================================================
    # Single-entity loads
    # =========================================================================

    async def load_post(self, post_id: str) -> Optional[Post]:
        """
        Fetch one murmur into the store (detail screen).

        Returns:
            The stored post, or None if it no longer exists remotely,
            in which case it is purged from every collection.
        """
        generation = self.posts.generation
        try:
            post, author = await self.api.get_murmur(post_id)
        except NotFoundError:
            logger.info(f"Murmur {post_id} no longer exists, removing it locally")
            if self.posts.generation == generation:
                self.mutations.purge_post(post_id)
            return None

        if self.posts.generation != generation:
            return None
        if author is not None:
            self.actors.upsert(author)
        return self.posts.upsert(post)

    async def load_actor(self, actor_id: str) -> Optional[Actor]:
        """Fetch one user profile into the store."""
        generation = self.actors.generation
        actor = await self.api.get_user(actor_id)
        if self.actors.generation != generation:
            return None
        return self.actors.upsert(actor)

    async def refresh_unread_count(self) -> int:
        """Reload the unread notification badge from the server."""
        self.session.require_authenticated()
        generation = self.alerts.generation
        count = await self.api.get_unread_count()
        if self.alerts.generation == generation:
            self.alert_badge.unread_count = count
        return self.alert_badge.unread_count

    # =========================================================================
    # Maintenance
    # =========================================================================

    def prune(self) -> Dict[str, int]:
        """
        Drop store entries that nothing references any more.

        A murmur is kept if a collection shows it or a kept murmur or
        notification points at it. A user is kept if it is the viewer, a
        collection shows it, or it authored a kept murmur or notification.

        Returns:
            Number of entries removed per store.
        """
        alert_ids = set()
        for registry in self.alert_registries.values():
            alert_ids.update(registry.referenced_ids())
        kept_alerts = [self.alerts.get(alert_id) for alert_id in alert_ids if alert_id in self.alerts]

        post_ids = set()
        for registry in self.post_registries.values():
            post_ids.update(registry.referenced_ids())
        post_ids.update(alert.subject_post_id for alert in kept_alerts if alert.subject_post_id)
        for post_id in list(post_ids):
            post = self.posts.get(post_id)
            if post is not None and post.parent_id:
                post_ids.add(post.parent_id)

        actor_ids = set()
        if self.session.viewer_id:
            actor_ids.add(self.session.viewer_id)
        for registry in self.actor_registries.values():
            actor_ids.update(registry.referenced_ids())
        actor_ids.update(alert.actor_id for alert in kept_alerts)
        for post_id in post_ids:
            post = self.posts.get(post_id)
            if post is not None:
                actor_ids.add(post.author_id)

        removed = {
            "posts": self.posts.retain(post_ids),
            "actors": self.actors.retain(actor_ids),
            "alerts": self.alerts.retain(alert_ids),
        }
        logger.info(f"Pruned unreferenced entries: {removed}")
        return removed

    # =========================================================================
    # Page loaders
    # =========================================================================

    def _with_related(self, fetch) -> PageLoader:
        """Wrap a fetch(cursor) coroutine so embedded users land in the actor store."""
        async def loader(cursor: Any) -> Page:
            generation = self.actors.generation
            page = await fetch(cursor)
            if page.related and self.actors.generation == generation:
                self.actors.upsert_many(page.related)
            return page
        return loader

    @staticmethod
    def _page_number(cursor: Any) -> int:
        return int(cursor) if cursor else 1

    def _timeline_loader(self, _key: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_timeline(page=self._page_number(cursor)))

    def _explore_loader(self, _key: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_explore(page=self._page_number(cursor)))

    def _author_loader(self, actor_id: Optional[Hashable]) -> PageLoader:
        async def fetch(cursor: Any) -> Page:
            page = await self.api.get_user_murmurs(actor_id, page=self._page_number(cursor))
            # Replies belong under their parent, not in the author's listing
            page.items = [post for post in page.items if not post.is_reply]
            return page
        return self._with_related(fetch)

    def _liked_loader(self, actor_id: Optional[Hashable]) -> PageLoader:
        return self._with_related(
            lambda cursor: self.api.get_user_liked_murmurs(actor_id, page=self._page_number(cursor)))

    def _replies_loader(self, post_id: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_replies(post_id, page=self._page_number(cursor)))

    def _search_loader(self, query: Optional[Hashable]) -> PageLoader:
        return self._with_related(
            lambda cursor: self.api.search_murmurs(query, page=self._page_number(cursor)))

    def _followers_loader(self, actor_id: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_followers(actor_id, page=self._page_number(cursor)))

    def _following_loader(self, actor_id: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_following(actor_id, page=self._page_number(cursor)))

    def _user_search_loader(self, query: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.search_users(query, page=self._page_number(cursor)))

    def _notifications_loader(self, _key: Optional[Hashable]) -> PageLoader:
        return self._with_related(lambda cursor: self.api.get_notifications(cursor=cursor))
