"""Shared data coordinator.

Chooses, once per session, which backend is authoritative for activity and
created cards:

* ``LocalBackend``: this device's stores; mutations apply immediately and
  the in-memory view is re-read from the local store, no network involved.
* ``RemoteBackend``: the shared store over HTTP; every mutation is followed
  by a refetch so the view always reflects server-computed state.

``initialize()`` probes both remote resources. Only when both answer does
the coordinator switch to Remote, and it never switches back or retries
within the session. Identity changes trigger a refetch through whichever
backend was chosen; a slow fetch that resolves after a newer one still
overwrites the view (last resolved wins).
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from .config import LOCAL_STORAGE_PATH
from .created import LocalCreatedStore
from .errors import AlreadyActive, CardVoteError
from .identity import IdentityResolver, is_demo_user
from .merge import EMPTY_ACTIVITY, merge, merge_all
from .models import AcquireResult, ActivityRecord, CardBaseline, CommentAuthor, MergedView
from .observable import Observable
from .remote import RemoteActivityClient
from .state import LocalActivityStore
from .storage import MemoryStorage, open_storage

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class LocalBackend:
    mode = Mode.LOCAL

    def __init__(self, activity: LocalActivityStore, created: LocalCreatedStore):
        self.activity = activity
        self.created = created

    async def load_activity(self, identity: str) -> Dict[str, ActivityRecord]:
        # the local store resolves the identity itself
        return self.activity.get_all()

    async def add_vote(self, identity: str, card_id: str, option: str) -> None:
        self.activity.add_vote(card_id, option)

    async def add_comment(self, identity: str, card_id: str, author: CommentAuthor, text: str) -> None:
        self.activity.add_comment(card_id, author, text)

    async def load_created(self) -> List[CardBaseline]:
        return self.created.cards()

    async def add_created(self, identity: str, card: Dict[str, Any]) -> None:
        self.created.add(card, identity)


class RemoteBackend:
    mode = Mode.REMOTE

    def __init__(self, client: RemoteActivityClient):
        self.client = client

    async def load_activity(self, identity: str) -> Dict[str, ActivityRecord]:
        return await self.client.fetch_activity(identity)

    async def add_vote(self, identity: str, card_id: str, option: str) -> None:
        await self.client.post_vote(identity, card_id, option)

    async def add_comment(self, identity: str, card_id: str, author: CommentAuthor, text: str) -> None:
        await self.client.post_comment(card_id, author, text)

    async def load_created(self) -> List[CardBaseline]:
        return await self.client.fetch_created()

    async def add_created(self, identity: str, card: Dict[str, Any]) -> None:
        await self.client.post_created(identity, card)


class SharedDataCoordinator(Observable):
    def __init__(
        self,
        identity: IdentityResolver,
        local_activity: LocalActivityStore,
        local_created: LocalCreatedStore,
        remote: Optional[RemoteActivityClient] = None,
    ):
        super().__init__()
        self.identity = identity
        self.remote = remote
        self.backend = LocalBackend(local_activity, local_created)
        self.activity: Dict[str, ActivityRecord] = local_activity.get_all()
        self.created_cards: List[CardBaseline] = local_created.cards()
        self._initialized = False
        self._stale = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = identity.subscribe(self._on_identity_changed)

    @property
    def mode(self) -> Mode:
        return self.backend.mode

    @property
    def is_remote(self) -> bool:
        return self.mode is Mode.REMOTE

    async def initialize(self) -> Mode:
        if self._initialized:
            return self.mode
        self._initialized = True
        if self.remote is None:
            logger.info("no shared store client, staying local")
            return self.mode

        created, activity = await asyncio.gather(
            self.remote.fetch_created(),
            self.remote.fetch_activity(self.identity.activity_id()),
            return_exceptions=True,
        )
        failures = [r for r in (created, activity) if isinstance(r, BaseException)]
        for failure in failures:
            if not isinstance(failure, CardVoteError):
                raise failure
        if failures:
            logger.info("shared store unavailable (%s), staying local",
                        ", ".join(f.reason for f in failures))
            return self.mode

        self.backend = RemoteBackend(self.remote)
        self.created_cards = created
        self.activity = activity
        logger.info("shared store reachable, using remote data")
        self._notify()
        return self.mode

    async def close(self) -> None:
        """Stop following identity changes and drop refreshes still in flight."""
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    # ---- reads ----

    def activity_for(self, card_id: str) -> ActivityRecord:
        return self.activity.get(card_id, EMPTY_ACTIVITY)

    def merged(self, baseline: CardBaseline) -> MergedView:
        if baseline.id is None:
            return merge(baseline)
        return merge(baseline, self.activity_for(baseline.id))

    def merged_all(self, baselines: Iterable[CardBaseline]) -> Dict[str, MergedView]:
        return merge_all(baselines, self.activity)

    async def refresh_activity(self, identity: Optional[str] = None) -> bool:
        """
        ``identity`` pins the fetch to the identity current when it was
        requested; by default the identity at call time is used.
        """
        if identity is None:
            identity = self.identity.activity_id()
        try:
            activity = await self.backend.load_activity(identity)
        except CardVoteError as exc:
            logger.warning("activity refresh failed: %s", exc.reason)
            return False
        self.activity = activity
        self._notify()
        return True

    async def refresh_created(self) -> bool:
        try:
            cards = await self.backend.load_created()
        except CardVoteError as exc:
            logger.warning("created cards refresh failed: %s", exc.reason)
            return False
        self.created_cards = cards
        self._notify()
        return True

    def _on_identity_changed(self) -> None:
        """
        Remote refetches run as tasks on the running loop, so identity
        mutations are expected to happen on it. A change made outside the
        loop only marks the view stale; ``settle()`` refetches it.
        """
        if self.mode is Mode.LOCAL:
            self.activity = self.backend.activity.get_all()
            self._notify()
            return
        identity = self.identity.activity_id()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("identity changed to %s outside the event loop, refetch deferred", identity)
            self._stale = True
            return
        task = loop.create_task(self.refresh_activity(identity))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settle(self) -> None:
        """Wait for refreshes started by identity changes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._stale:
            self._stale = False
            await self.refresh_activity()

    # ---- mutations: False means nothing changed for the caller ----

    async def add_vote(self, card_id: str, option: str) -> bool:
        identity = self.identity.activity_id()
        if self.mode is Mode.REMOTE and self.activity_for(card_id).user_selected_option is not None:
            logger.info("%s already voted on %s, not resubmitting", identity, card_id)
            return False
        try:
            await self.backend.add_vote(identity, card_id, option)
        except CardVoteError as exc:
            logger.warning("vote on %s failed: %s", card_id, exc.reason)
            if self.mode is Mode.REMOTE:
                await self.refresh_activity()
            return False
        await self.refresh_activity()
        return True

    async def add_comment(self, card_id: str, author: CommentAuthor, text: str) -> bool:
        try:
            await self.backend.add_comment(self.identity.activity_id(), card_id, author, text)
        except CardVoteError as exc:
            logger.warning("comment on %s failed: %s", card_id, exc.reason)
            if self.mode is Mode.REMOTE:
                await self.refresh_activity()
            return False
        await self.refresh_activity()
        return True

    async def add_created(self, card: Dict[str, Any]) -> bool:
        try:
            await self.backend.add_created(self.identity.activity_id(), card)
        except CardVoteError as exc:
            logger.warning("creating card failed: %s", exc.reason)
            return False
        await self.refresh_created()
        return True

    # ---- login / logout ----

    async def login(self, user_id: str) -> AcquireResult:
        """
        Claims the identity in the active-session registry first (remote mode
        only); the local auth state changes only when the claim succeeds.
        Switching from one demo account to another hands back the previous
        claim once the new one is held.
        """
        if not is_demo_user(user_id):
            return AcquireResult(acquired=False, reason="BAD_REQUEST")
        previous = self.identity.auth().user_id
        if previous == user_id:
            return AcquireResult(acquired=True)
        if self.mode is Mode.REMOTE:
            try:
                await self.remote.acquire_session(user_id)
            except AlreadyActive:
                return AcquireResult(acquired=False, reason=AlreadyActive.reason)
            except CardVoteError as exc:
                logger.warning("login for %s failed: %s", user_id, exc.reason)
                return AcquireResult(acquired=False, reason=exc.reason)
            if previous:
                await self._release(previous)
        self.identity.login_as_demo_user(user_id)
        return AcquireResult(acquired=True)

    async def _release(self, user_id: str) -> None:
        try:
            await self.remote.release_session(user_id)
        except CardVoteError as exc:
            # release is idempotent, a later logout can retry it
            logger.warning("releasing %s failed: %s", user_id, exc.reason)

    async def logout(self) -> None:
        user_id = self.identity.auth().user_id
        if self.mode is Mode.REMOTE and user_id:
            await self._release(user_id)
        self.identity.logout()


def build_coordinator(
    storage: Optional[MemoryStorage] = None,
    remote: Optional[RemoteActivityClient] = None,
) -> SharedDataCoordinator:
    """Wire the client-side stores over one device medium."""
    storage = storage if storage is not None else open_storage(LOCAL_STORAGE_PATH)
    identity = IdentityResolver(storage)
    return SharedDataCoordinator(
        identity,
        LocalActivityStore(storage, identity),
        LocalCreatedStore(storage),
        remote,
    )
