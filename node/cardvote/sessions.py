"""Active-session registry: at most one live login per identity.

Two variants share one interface:

* ``AtomicRegistry`` creates the presence key with ``SET ... NX``, so the
  existence check and the write are one operation and concurrent logins for
  the same identity cannot both win.
* ``BestEffortRegistry`` is the degraded path for stores without a
  set-if-absent primitive: it reads, branches, then writes. Two logins that
  interleave between the read and the write will both succeed. That window
  is accepted because the identity space is the fixed set of demo accounts.

Presence keys have no TTL; an entry only disappears through ``release``.
"""

import logging
from typing import Iterable, List

from fastapi import APIRouter
from redis.exceptions import RedisError

from .config import ACTIVE_USER_ATOMIC, DEMO_USER_IDS
from .errors import AlreadyActive, BackendError, BadRequest
from .identity import is_demo_user
from .kv import get_kv
from .models import AcquireResult, ActiveUserIn

logger = logging.getLogger(__name__)

router = APIRouter()

PRESENCE_KEY_PREFIX = "vote_active_user:"


def presence_key(identity: str) -> str:
    return PRESENCE_KEY_PREFIX + identity


class _PresenceRegistry:
    kind = "base"

    def __init__(self, store):
        self.store = store

    async def release(self, identity: str) -> None:
        """Unconditional delete; releasing an absent entry is fine."""
        await self.store.delete(presence_key(identity))

    async def active(self, known: Iterable[str] = DEMO_USER_IDS) -> List[str]:
        result = []
        for identity in known:
            if await self.store.get(presence_key(identity)) is not None:
                result.append(identity)
        return result


class AtomicRegistry(_PresenceRegistry):
    kind = "atomic"

    async def try_acquire(self, identity: str) -> AcquireResult:
        created = await self.store.set(presence_key(identity), "1", nx=True)
        if not created:
            return AcquireResult(acquired=False, reason=AlreadyActive.reason)
        return AcquireResult(acquired=True)


class BestEffortRegistry(_PresenceRegistry):
    kind = "best-effort"

    async def try_acquire(self, identity: str) -> AcquireResult:
        # read, branch, write: not atomic (see module docstring)
        if await self.store.get(presence_key(identity)) is not None:
            return AcquireResult(acquired=False, reason=AlreadyActive.reason)
        await self.store.set(presence_key(identity), "1")
        return AcquireResult(acquired=True)


def build_registry(store, atomic: bool = True) -> _PresenceRegistry:
    return AtomicRegistry(store) if atomic else BestEffortRegistry(store)


@router.get("/active-user")
async def active_users():
    kv = get_kv()
    if kv is None:
        return {"userIds": []}
    try:
        user_ids = await build_registry(kv, ACTIVE_USER_ATOMIC).active()
    except RedisError:
        logger.exception("active-user read failed")
        return {"userIds": []}
    return {"userIds": user_ids}


@router.post("/active-user")
async def post_active_user(body: ActiveUserIn):
    kv = get_kv()
    if kv is None:
        return {"ok": True}
    registry = build_registry(kv, ACTIVE_USER_ATOMIC)
    try:
        if body.logout_user_id is not None:
            if not is_demo_user(body.logout_user_id):
                raise BadRequest()
            await registry.release(body.logout_user_id)
            logger.info("released %s", body.logout_user_id)
            return {"ok": True}

        if body.user_id is None:
            return {"ok": True}
        if not is_demo_user(body.user_id):
            raise BadRequest()
        result = await registry.try_acquire(body.user_id)
    except RedisError as exc:
        logger.exception("active-user write failed")
        raise BackendError() from exc

    if not result.acquired:
        logger.info("rejected second login for %s", body.user_id)
        raise AlreadyActive()
    logger.info("acquired %s (%s)", body.user_id, registry.kind)
    return {"ok": True}
