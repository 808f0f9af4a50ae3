"""
Mutation Coordinator Module

Runs the cross-cutting mutations (like/unlike, follow/unfollow, delete,
create, plus notification and profile updates) against the remote API and
fans the result out to every store entry and collection that shows the
affected entity.

Each mutation target (a murmur id, a user id, ...) is either Idle or
InFlight. A second mutation on an InFlight target is dropped, not queued.
Like and follow are optimistic: the store is patched first, then either
reconciled with the server's canonical values or rolled back to the exact
snapshot taken before the patch. Delete and create wait for the server.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, Optional, Set, Tuple

from config import settings
from data.models import AlertBadge
from data.registry import CollectionRegistry
from data.resource_store import ResourceStore
from services.protocols import MutationBackend
from services.session_gate import SessionGate
from utils.exceptions import ApiError, NotFoundError, ValidationError
from utils.logger import get_logger

logger = get_logger(__name__)


class MutationStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"     # the same target already had a mutation in flight
    FAILED = "failed"


@dataclass
class MutationResult:
    """Outcome of a mutation. Errors are returned here, never raised."""
    status: MutationStatus
    error: Optional[Exception] = None
    value: Any = None

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.APPLIED

    @classmethod
    def applied(cls, value: Any = None) -> "MutationResult":
        return cls(MutationStatus.APPLIED, value=value)

    @classmethod
    def skipped(cls) -> "MutationResult":
        return cls(MutationStatus.SKIPPED)

    @classmethod
    def failed(cls, error: Exception) -> "MutationResult":
        return cls(MutationStatus.FAILED, error=error)


class MutationCoordinator:
    """Optimistic, at-most-one-in-flight mutations with fan-out to every collection."""

    def __init__(self, api: MutationBackend, session: SessionGate,
                 posts: ResourceStore, actors: ResourceStore, alerts: ResourceStore,
                 post_registries: Dict[str, CollectionRegistry],
                 alert_registries: Dict[str, CollectionRegistry],
                 alert_badge: Optional[AlertBadge] = None):
        """
        Initialize the coordinator.

        Args:
            api: Remote calls for each mutation.
            session: Gate consulted before any remote call.
            posts: Murmur store.
            actors: User store.
            alerts: Notification store.
            post_registries: Murmur collections by kind. "timeline", "explore",
                "author" and "replies" receive newly created murmurs; every
                registry is swept on delete.
            alert_registries: Notification collections by kind.
            alert_badge: Unread counter kept in step with mark-read/delete.
        """
        self.api = api
        self.session = session
        self.posts = posts
        self.actors = actors
        self.alerts = alerts
        self.post_registries = post_registries
        self.alert_registries = alert_registries
        self.alert_badge = alert_badge or AlertBadge()
        self._in_flight: Set[Tuple[str, Hashable]] = set()

    def is_in_flight(self, kind: str, target_id: Hashable) -> bool:
        return (kind, target_id) in self._in_flight

    def _begin(self, kind: str, target_id: Hashable) -> Optional[MutationResult]:
        """
        Claim a target. Returns a result to hand back immediately if the
        mutation must not proceed, or None once the target is claimed.
        """
        if (kind, target_id) in self._in_flight:
            logger.info(f"Ignoring {kind} on {target_id}: already in flight")
            return MutationResult.skipped()
        if not self.session.is_authenticated:
            return MutationResult.failed(self._auth_required())
        self._in_flight.add((kind, target_id))
        return None

    def _end(self, kind: str, target_id: Hashable) -> None:
        self._in_flight.discard((kind, target_id))

    def _auth_required(self) -> Exception:
        try:
            self.session.require_authenticated()
        except ApiError as e:
            return e
        return ApiError("Session check failed")

    # =========================================================================
    # Like / unlike
    # =========================================================================

    async def like(self, post_id: str) -> MutationResult:
        return await self._set_like(post_id, True)

    async def unlike(self, post_id: str) -> MutationResult:
        return await self._set_like(post_id, False)

    async def toggle_like(self, post_id: str) -> MutationResult:
        post = self.posts.get(post_id)
        desired = not bool(post.liked_by_viewer) if post else True
        return await self._set_like(post_id, desired)

    async def _set_like(self, post_id: str, desired: bool) -> MutationResult:
        blocked = self._begin("like", post_id)
        if blocked:
            return blocked

        generation = self.posts.generation
        snapshot = self.posts.get(post_id)
        if snapshot is not None and bool(snapshot.liked_by_viewer) != desired:
            delta = 1 if desired else -1
            self.posts.patch(post_id, liked_by_viewer=desired,
                             like_count=max(0, (snapshot.like_count or 0) + delta))

        try:
            call = self.api.like_murmur if desired else self.api.unlike_murmur
            is_liked, likes_count = await call(post_id)
        except NotFoundError:
            logger.info(f"Murmur {post_id} no longer exists, removing it locally")
            if self.posts.generation == generation:
                self.purge_post(post_id)
            return MutationResult.applied()
        except Exception as e:
            self._log_failure("like" if desired else "unlike", post_id, e)
            if snapshot is not None and self.posts.generation == generation:
                self.posts.patch(post_id, liked_by_viewer=snapshot.liked_by_viewer,
                                 like_count=snapshot.like_count)
            return MutationResult.failed(e)
        finally:
            self._end("like", post_id)

        if self.posts.generation == generation:
            self.posts.patch(post_id, liked_by_viewer=is_liked, like_count=likes_count)
        return MutationResult.applied((is_liked, likes_count))

    # =========================================================================
    # Follow / unfollow
    # =========================================================================

    async def follow(self, actor_id: str) -> MutationResult:
        return await self._set_follow(actor_id, True)

    async def unfollow(self, actor_id: str) -> MutationResult:
        return await self._set_follow(actor_id, False)

    async def toggle_follow(self, actor_id: str) -> MutationResult:
        actor = self.actors.get(actor_id)
        desired = not bool(actor.followed_by_viewer) if actor else True
        return await self._set_follow(actor_id, desired)

    async def _set_follow(self, actor_id: str, desired: bool) -> MutationResult:
        if actor_id == self.session.viewer_id:
            return MutationResult.failed(ValidationError("You cannot follow yourself"))

        blocked = self._begin("follow", actor_id)
        if blocked:
            return blocked

        generation = self.actors.generation
        snapshot = self.actors.get(actor_id)
        if snapshot is not None and bool(snapshot.followed_by_viewer) != desired:
            delta = 1 if desired else -1
            patch = {"followed_by_viewer": desired}
            if snapshot.follower_count is not None:
                patch["follower_count"] = max(0, snapshot.follower_count + delta)
            self.actors.patch(actor_id, **patch)

        try:
            call = self.api.follow_user if desired else self.api.unfollow_user
            is_following, followers_count = await call(actor_id)
        except Exception as e:
            self._log_failure("follow" if desired else "unfollow", actor_id, e)
            if snapshot is not None and self.actors.generation == generation:
                self.actors.patch(actor_id, followed_by_viewer=snapshot.followed_by_viewer,
                                  follower_count=snapshot.follower_count)
            return MutationResult.failed(e)
        finally:
            self._end("follow", actor_id)

        if self.actors.generation != generation:
            return MutationResult.applied((is_following, followers_count))

        self.actors.patch(actor_id, followed_by_viewer=is_following, follower_count=followers_count)

        if snapshot is not None and bool(snapshot.followed_by_viewer) != is_following:
            self._adjust_viewer("following_count", 1 if is_following else -1)
        return MutationResult.applied((is_following, followers_count))

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, post_id: str) -> MutationResult:
        """
        Delete a murmur. Nothing changes locally until the server confirms.

        A 404 means the murmur is already gone, which is the outcome we wanted.
        """
        blocked = self._begin("delete", post_id)
        if blocked:
            return blocked

        generation = self.posts.generation
        try:
            await self.api.delete_murmur(post_id)
        except NotFoundError:
            logger.info(f"Murmur {post_id} was already deleted")
        except Exception as e:
            self._log_failure("delete", post_id, e)
            return MutationResult.failed(e)
        finally:
            self._end("delete", post_id)

        if self.posts.generation == generation:
            self.purge_post(post_id)
        logger.info(f"Deleted murmur {post_id}")
        return MutationResult.applied(post_id)

    def purge_post(self, post_id: str) -> None:
        """Remove a murmur that no longer exists remotely from the store and every collection."""
        post = self.posts.remove(post_id)

        for registry in self.post_registries.values():
            for collection in registry.collections():
                collection.remove_id(post_id)

        replies = self.post_registries.get("replies")
        if replies is not None:
            replies.reset(post_id)

        if post is None:
            return

        if post.parent_id:
            parent = self.posts.get(post.parent_id)
            if parent is not None:
                self.posts.patch(post.parent_id, reply_count=max(0, (parent.reply_count or 0) - 1))

        author = self.actors.get(post.author_id)
        if author is not None and author.post_count is not None:
            self.actors.patch(post.author_id, post_count=max(0, author.post_count - 1))

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, body: str, parent_id: Optional[str] = None) -> MutationResult:
        """
        Publish a murmur, or a reply when parent_id is given.

        The id is assigned by the server, so nothing is inserted until it answers.
        A new top-level murmur goes to the front of the explore and timeline
        collections and the viewer's own murmurs; a reply goes to the front of
        its parent's replies and bumps the parent's reply count.
        """
        text = (body or "").strip()
        if not text:
            return MutationResult.failed(ValidationError(
                "Murmur cannot be empty", field_errors={"content": "required"}))
        if len(text) > settings.MAX_MURMUR_LENGTH:
            return MutationResult.failed(ValidationError(
                f"Murmur is {len(text)} characters, the limit is {settings.MAX_MURMUR_LENGTH}",
                field_errors={"content": "too long"}))

        blocked = self._begin("create", parent_id or "")
        if blocked:
            return blocked

        generation = self.posts.generation
        try:
            post, author = await self.api.create_murmur(text, parent_id)
        except Exception as e:
            self._log_failure("create", parent_id or "new murmur", e)
            return MutationResult.failed(e)
        finally:
            self._end("create", parent_id or "")

        if self.posts.generation != generation:
            return MutationResult.applied(post)

        if author is not None:
            self.actors.upsert(author)
        post = self.posts.upsert(post)

        if post.parent_id:
            parent = self.posts.get(post.parent_id)
            if parent is not None:
                self.posts.patch(post.parent_id, reply_count=(parent.reply_count or 0) + 1)
            self._prepend("replies", post.parent_id, post.id)
        else:
            self._prepend("explore", None, post.id)
            self._prepend("timeline", None, post.id)
            if self.session.viewer_id:
                self._prepend("author", self.session.viewer_id, post.id)

        self._adjust_viewer("post_count", 1)
        return MutationResult.applied(post)

    def _prepend(self, registry_name: str, partition_key: Optional[Hashable], post_id: str) -> None:
        registry = self.post_registries.get(registry_name)
        if registry is None:
            return
        collection = registry.get(partition_key)
        if collection is not None:
            collection.prepend_id(post_id)

    # =========================================================================
    # Notifications
    # =========================================================================

    async def mark_alert_read(self, alert_id: str) -> MutationResult:
        blocked = self._begin("alert", alert_id)
        if blocked:
            return blocked

        generation = self.alerts.generation
        try:
            await self.api.mark_notification_read(alert_id)
        except NotFoundError:
            logger.info(f"Notification {alert_id} no longer exists, removing it locally")
            if self.alerts.generation == generation:
                self.purge_alert(alert_id)
            return MutationResult.applied()
        except Exception as e:
            self._log_failure("mark read", alert_id, e)
            return MutationResult.failed(e)
        finally:
            self._end("alert", alert_id)

        if self.alerts.generation == generation:
            alert = self.alerts.get(alert_id)
            if alert is not None and not alert.is_read:
                self.alerts.patch(alert_id, is_read=True)
                self.alert_badge.decrement()
        return MutationResult.applied()

    async def mark_all_alerts_read(self) -> MutationResult:
        blocked = self._begin("alert", "*")
        if blocked:
            return blocked

        generation = self.alerts.generation
        try:
            await self.api.mark_all_notifications_read()
        except Exception as e:
            self._log_failure("mark all read", "notifications", e)
            return MutationResult.failed(e)
        finally:
            self._end("alert", "*")

        if self.alerts.generation == generation:
            for alert in self.alerts:
                if not alert.is_read:
                    self.alerts.patch(alert.id, is_read=True)
            self.alert_badge.unread_count = 0
        return MutationResult.applied()

    async def delete_alert(self, alert_id: str) -> MutationResult:
        blocked = self._begin("alert", alert_id)
        if blocked:
            return blocked

        generation = self.alerts.generation
        try:
            await self.api.delete_notification(alert_id)
        except NotFoundError:
            logger.info(f"Notification {alert_id} was already deleted")
        except Exception as e:
            self._log_failure("delete notification", alert_id, e)
            return MutationResult.failed(e)
        finally:
            self._end("alert", alert_id)

        if self.alerts.generation == generation:
            self.purge_alert(alert_id)
        return MutationResult.applied(alert_id)

    def purge_alert(self, alert_id: str) -> None:
        alert = self.alerts.remove(alert_id)
        for registry in self.alert_registries.values():
            for collection in registry.collections():
                collection.remove_id(alert_id)
        if alert is not None and not alert.is_read:
            self.alert_badge.decrement()

    # =========================================================================
    # Profile
    # =========================================================================

    async def update_profile(self, display_name: Optional[str] = None,
                             bio: Optional[str] = None) -> MutationResult:
        if display_name is None and bio is None:
            return MutationResult.failed(ValidationError("Nothing to update"))
        if display_name is not None and not display_name.strip():
            return MutationResult.failed(ValidationError(
                "Display name cannot be empty", field_errors={"displayName": "required"}))

        viewer_id = self.session.viewer_id
        blocked = self._begin("profile", viewer_id)
        if blocked:
            return blocked

        generation = self.actors.generation
        try:
            viewer = await self.api.update_profile(display_name=display_name, bio=bio)
        except Exception as e:
            self._log_failure("update profile", viewer_id, e)
            return MutationResult.failed(e)
        finally:
            self._end("profile", viewer_id)

        if self.actors.generation == generation:
            viewer = self.actors.upsert(viewer)
        return MutationResult.applied(viewer)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _adjust_viewer(self, field_name: str, delta: int) -> None:
        viewer_id = self.session.viewer_id
        viewer = self.actors.get(viewer_id) if viewer_id else None
        if viewer is None:
            return
        current = getattr(viewer, field_name)
        if current is not None:
            self.actors.patch(viewer_id, **{field_name: max(0, current + delta)})

    @staticmethod
    def _log_failure(action: str, target: Any, error: Exception) -> None:
        if isinstance(error, ApiError):
            logger.warning(f"{action} failed for {target}: {error}")
        else:
            logger.error(f"Unexpected error during {action} for {target}: {error}", exc_info=True)
