"""Identity resolver: which key the current session's activity lives under.

Logged-in demo users are keyed by their demo id, other logged-in users by
``"line"``, and anonymous sessions by ``guest_<guest id>``. The guest id
lives in session-scoped storage and is replaced on logout, so activity from
one anonymous session never leaks into the next one.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from pydantic import ValidationError

from .config import DEMO_USER_IDS
from .errors import BadRequest
from .ids import new_guest_id
from .models import AuthState, CommentAuthor
from .observable import Observable
from .storage import MemoryStorage

logger = logging.getLogger(__name__)

AUTH_KEY = "vote_line_auth"
GUEST_ID_KEY = "vote_guest_id"
PROFILE_KEY_PREFIX = "vote_user_profile_"
LINE_IDENTITY = "line"

DEMO_USERS: Dict[str, CommentAuthor] = {
    uid: CommentAuthor(
        name=uid,
        icon_url=f"/{uid}.png" if uid in ("user1", "user2") else "/default-avatar.png",
    )
    for uid in DEMO_USER_IDS
}


def is_demo_user(user_id: Optional[str]) -> bool:
    return isinstance(user_id, str) and user_id in DEMO_USER_IDS


class IdentityResolver(Observable):
    def __init__(self, storage: MemoryStorage, session: Optional[MemoryStorage] = None):
        super().__init__()
        self.storage = storage
        # survives reloads but not logout; a fresh MemoryStorage = fresh tab
        self.session = session if session is not None else MemoryStorage()

    # ---- guest ids ----

    def guest_id(self) -> str:
        gid = self.session.get(GUEST_ID_KEY)
        if not isinstance(gid, str) or not gid:
            gid = new_guest_id()
            self.session.set(GUEST_ID_KEY, gid)
        return gid

    def regenerate_guest_id(self) -> str:
        gid = new_guest_id()
        self.session.set(GUEST_ID_KEY, gid)
        return gid

    # ---- auth state ----

    def auth(self) -> AuthState:
        raw = self.storage.get(AUTH_KEY)
        if not isinstance(raw, dict):
            return AuthState()
        try:
            state = AuthState.model_validate(raw)
        except ValidationError:
            return AuthState()
        if state.user_id is not None and not is_demo_user(state.user_id):
            state = state.model_copy(update={"user_id": None})
        return state

    def _save(self, state: AuthState) -> None:
        self.storage.set(AUTH_KEY, state.wire())
        self._notify()

    def activity_id(self) -> str:
        """Never fails: an unreadable auth record resolves to the guest key."""
        state = self.auth()
        if state.is_logged_in:
            if state.user_id:
                return state.user_id
            if state.user and is_demo_user(state.user.name):
                return state.user.name
            return LINE_IDENTITY
        return "guest_" + self.guest_id()

    def _saved_profile(self, user_id: str) -> Optional[dict]:
        raw = self.storage.get(PROFILE_KEY_PREFIX + user_id)
        if not isinstance(raw, dict):
            return None
        profile = {}
        if isinstance(raw.get("name"), str) and raw["name"]:
            profile["name"] = raw["name"]
        if isinstance(raw.get("iconUrl"), str):
            profile["iconUrl"] = raw["iconUrl"]
        return profile or None

    def login(self, user: Optional[CommentAuthor] = None) -> None:
        """External-provider login without a demo id."""
        self._save(AuthState(is_logged_in=True, user=user or DEMO_USERS["user1"]))

    def login_as_demo_user(self, user_id: str) -> None:
        if not is_demo_user(user_id):
            raise BadRequest()
        default = DEMO_USERS[user_id]
        saved = self._saved_profile(user_id)
        user = default
        if saved:
            user = CommentAuthor(
                name=saved.get("name", default.name),
                icon_url=saved.get("iconUrl", default.icon_url),
            )
        self._save(AuthState(is_logged_in=True, user=user, user_id=user_id))
        logger.info("logged in as %s", user_id)

    def update_profile(self, name: Optional[str] = None, icon_url: Optional[str] = None) -> None:
        state = self.auth()
        if not state.is_logged_in or state.user is None:
            return
        user = CommentAuthor(
            name=name if name is not None else state.user.name,
            icon_url=icon_url if icon_url is not None else state.user.icon_url,
        )
        self._save(state.model_copy(update={"user": user}))
        owner = state.user_id or (state.user.name if is_demo_user(state.user.name) else None)
        if owner:
            self.storage.set(PROFILE_KEY_PREFIX + owner, user.wire())

    def logout(self) -> None:
        self.regenerate_guest_id()
        self._save(AuthState())
