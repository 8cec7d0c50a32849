"""Favorite tags (per identity) and hidden tags (per device).

Both are ordered lists of trimmed, non-empty strings compared without regard
to case; the spelling stored is the one first added.
"""

import logging
from typing import Any, List

from .identity import IdentityResolver, is_demo_user
from .migrations import mark_migrated, read_migrations
from .observable import Observable
from .storage import MemoryStorage

logger = logging.getLogger(__name__)

FAVORITE_TAGS_KEY_PREFIX = "vote_favorite_tags_"
LEGACY_FAVORITE_TAGS_KEY = "vote_favorite_tags"
LEGACY_FAVORITE_TAGS_VERSION = 1
HIDDEN_TAGS_KEY = "vote_hidden_tags"


def _tag_list(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [t for t in raw if isinstance(t, str) and t]


def _contains(tags: List[str], tag: str) -> bool:
    lower = tag.lower()
    return any(t.lower() == lower for t in tags)


class _TagSet(Observable):
    def __init__(self, storage: MemoryStorage):
        super().__init__()
        self.storage = storage

    def _key(self) -> str:
        raise NotImplementedError

    def tags(self) -> List[str]:
        return _tag_list(self.storage.get(self._key()))

    def _save(self, tags: List[str]) -> None:
        self.storage.set(self._key(), tags)
        self._notify()

    def contains(self, tag: str) -> bool:
        tag = tag.strip()
        return bool(tag) and _contains(self.tags(), tag)

    def add(self, tag: str) -> bool:
        """False for blank tags and tags already present."""
        tag = tag.strip()
        if not tag:
            return False
        tags = self.tags()
        if _contains(tags, tag):
            return False
        self._save([*tags, tag])
        return True

    def remove(self, tag: str) -> bool:
        tag = tag.strip()
        if not tag:
            return False
        tags = self.tags()
        kept = [t for t in tags if t.lower() != tag.lower()]
        if len(kept) == len(tags):
            return False
        self._save(kept)
        return True

    def toggle(self, tag: str) -> bool:
        """New membership; blank tags are never members."""
        if self.contains(tag):
            self.remove(tag)
            return False
        return self.add(tag)


class FavoriteTagStore(_TagSet):
    def __init__(self, storage: MemoryStorage, identity: IdentityResolver):
        super().__init__(storage)
        self.identity = identity

    def _key(self) -> str:
        identity = self.identity.activity_id()
        self._migrate(identity)
        return FAVORITE_TAGS_KEY_PREFIX + identity

    def _migrate(self, identity: str) -> None:
        # the single-list layout only ever belonged to the demo accounts
        if "favoriteTags" in read_migrations(self.storage, identity):
            return
        key = FAVORITE_TAGS_KEY_PREFIX + identity
        if is_demo_user(identity) and not _tag_list(self.storage.get(key)):
            legacy = _tag_list(self.storage.get(LEGACY_FAVORITE_TAGS_KEY))
            if legacy:
                self.storage.set(key, legacy)
                logger.info("copied %d legacy favorite tags for %s", len(legacy), identity)
        mark_migrated(self.storage, identity, "favoriteTags", LEGACY_FAVORITE_TAGS_VERSION)


class HiddenTagStore(_TagSet):
    """Tags the device owner is not interested in; shared by every identity."""

    def _key(self) -> str:
        return HIDDEN_TAGS_KEY
