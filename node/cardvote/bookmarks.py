"""Per-identity bookmark collections, bookmark set and pinned collections.

Invariants kept here:
  * bookmark set ⊇ union of all collection memberships (adding a card to a
    collection bookmarks it; removing it does not un-bookmark it)
  * pinned ids ⊆ ids of collections owned by the identity
Legacy data from the single global collections key is copied into an
identity's own key once; the fact is recorded in a per-identity migration
record instead of being inferred from an empty store.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import BadRequest
from .identity import IdentityResolver
from .ids import epoch_ms, random_suffix
from .migrations import mark_migrated, read_migrations
from .models import Collection
from .observable import Observable
from .storage import MemoryStorage

logger = logging.getLogger(__name__)

LEGACY_COLLECTIONS_KEY = "vote_collections"
LEGACY_COLLECTIONS_VERSION = 1
COLLECTIONS_KEY_PREFIX = "vote_collections_"
BOOKMARKS_KEY_PREFIX = "vote_bookmark_ids_"
PINNED_KEY_PREFIX = "vote_pinned_collection_ids_"


def _parse_collections(raw: Any) -> List[Collection]:
    if not isinstance(raw, list):
        return []
    cols = []
    for item in raw:
        try:
            cols.append(Collection.model_validate(item))
        except ValidationError:
            continue
    return cols


def _string_list(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return list(dict.fromkeys(x for x in raw if isinstance(x, str)))


class CollectionStore(Observable):
    def __init__(self, storage: MemoryStorage, identity: IdentityResolver):
        super().__init__()
        self.storage = storage
        self.identity = identity

    # ---- migration record ----

    def migrations(self, identity: Optional[str] = None) -> Dict[str, int]:
        return read_migrations(self.storage, identity or self.identity.activity_id())

    def _mark_migrated(self, identity: str, name: str, version: int) -> None:
        mark_migrated(self.storage, identity, name, version)

    def _migrate_collections(self, identity: str) -> None:
        if "collections" in self.migrations(identity):
            return
        key = COLLECTIONS_KEY_PREFIX + identity
        if not _parse_collections(self.storage.get(key)):
            legacy = _parse_collections(self.storage.get(LEGACY_COLLECTIONS_KEY))
            if legacy:
                # legacy key is left in place
                self.storage.set(key, [c.wire() for c in legacy])
                logger.info("copied %d legacy collections for %s", len(legacy), identity)
        self._mark_migrated(identity, "collections", LEGACY_COLLECTIONS_VERSION)

    # ---- collections ----

    def _load(self, identity: str) -> List[Collection]:
        self._migrate_collections(identity)
        return _parse_collections(self.storage.get(COLLECTIONS_KEY_PREFIX + identity))

    def _save(self, identity: str, cols: List[Collection]) -> None:
        self.storage.set(COLLECTIONS_KEY_PREFIX + identity, [c.wire() for c in cols])
        self._notify()

    def list_collections(self) -> List[Collection]:
        return self._load(self.identity.activity_id())

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        for col in self.list_collections():
            if col.id == collection_id:
                return col
        return None

    def create_collection(self, name: str, color: Optional[str] = None, visibility: str = "public") -> Collection:
        if not name or not name.strip():
            raise BadRequest()
        identity = self.identity.activity_id()
        cols = self._load(identity)
        taken = {c.id for c in cols}
        col_id = f"col-{epoch_ms()}"
        while col_id in taken:
            col_id = f"col-{epoch_ms()}-{random_suffix(4)}"
        col = Collection(id=col_id, name=name.strip(), visibility=visibility, **({"color": color} if color else {}))
        self._save(identity, [*cols, col])
        return col

    def update_collection(
        self,
        collection_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        visibility: Optional[str] = None,
    ) -> Collection:
        if name is not None and not name.strip():
            raise BadRequest()
        identity = self.identity.activity_id()
        cols = self._load(identity)
        idx = self._index(cols, collection_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name.strip()
        if color is not None:
            changes["color"] = color
        if visibility is not None:
            if visibility not in ("public", "private", "member"):
                raise BadRequest()
            changes["visibility"] = visibility
        cols[idx] = cols[idx].model_copy(update=changes)
        self._save(identity, cols)
        return cols[idx]

    def delete_collection(self, collection_id: str) -> None:
        identity = self.identity.activity_id()
        cols = self._load(identity)
        self._index(cols, collection_id)
        pinned = _string_list(self.storage.get(PINNED_KEY_PREFIX + identity))
        if collection_id in pinned:
            self.storage.set(PINNED_KEY_PREFIX + identity, [p for p in pinned if p != collection_id])
        self._save(identity, [c for c in cols if c.id != collection_id])

    @staticmethod
    def _index(cols: List[Collection], collection_id: str) -> int:
        for i, col in enumerate(cols):
            if col.id == collection_id:
                return i
        raise BadRequest("COLLECTION_NOT_FOUND")

    def add_card(self, collection_id: str, card_id: str) -> None:
        if not self.is_card_in(collection_id, card_id):
            self.toggle_card(collection_id, card_id)

    def remove_card(self, collection_id: str, card_id: str) -> None:
        if self.is_card_in(collection_id, card_id):
            self.toggle_card(collection_id, card_id)

    def is_card_in(self, collection_id: str, card_id: str) -> bool:
        col = self.get_collection(collection_id)
        return col is not None and card_id in col.card_ids

    def toggle_card(self, collection_id: str, card_id: str) -> bool:
        """Returns the new membership. Adding also bookmarks the card."""
        identity = self.identity.activity_id()
        cols = self._load(identity)
        idx = self._index(cols, collection_id)
        col = cols[idx]
        if card_id in col.card_ids:
            cols[idx] = col.model_copy(update={"card_ids": [c for c in col.card_ids if c != card_id]})
            self._save(identity, cols)
            return False
        cols[idx] = col.model_copy(update={"card_ids": [*col.card_ids, card_id]})
        self._save(identity, cols)
        self.add_bookmark(card_id)
        return True

    def is_card_in_any(self, card_id: str) -> bool:
        return any(card_id in c.card_ids for c in self.list_collections())

    # ---- bookmarks ----

    def bookmark_ids(self) -> List[str]:
        identity = self.identity.activity_id()
        key = BOOKMARKS_KEY_PREFIX + identity
        ids = _string_list(self.storage.get(key))
        if ids or "bookmarks" in self.migrations(identity):
            return ids
        # seed once from existing collection memberships
        seeded: Dict[str, None] = {}
        for col in self._load(identity):
            for card_id in col.card_ids:
                seeded.setdefault(card_id, None)
        if seeded:
            self.storage.set(key, list(seeded))
        self._mark_migrated(identity, "bookmarks", LEGACY_COLLECTIONS_VERSION)
        return list(seeded)

    def is_bookmarked(self, card_id: str) -> bool:
        return card_id in self.bookmark_ids()

    def add_bookmark(self, card_id: str) -> None:
        ids = self.bookmark_ids()
        if card_id in ids:
            return
        self.storage.set(BOOKMARKS_KEY_PREFIX + self.identity.activity_id(), [*ids, card_id])
        self._notify()

    def remove_bookmark(self, card_id: str) -> None:
        """Also drops the card from every collection to keep the inclusion."""
        identity = self.identity.activity_id()
        cols = self._load(identity)
        if any(card_id in c.card_ids for c in cols):
            self._save(identity, [
                c.model_copy(update={"card_ids": [i for i in c.card_ids if i != card_id]}) for c in cols
            ])
        ids = self.bookmark_ids()
        if card_id not in ids:
            return
        self.storage.set(BOOKMARKS_KEY_PREFIX + identity, [i for i in ids if i != card_id])
        self._notify()

    # ---- pinned ----

    def pinned_ids(self) -> List[str]:
        identity = self.identity.activity_id()
        owned = {c.id for c in self._load(identity)}
        return [p for p in _string_list(self.storage.get(PINNED_KEY_PREFIX + identity)) if p in owned]

    def toggle_pin(self, collection_id: str) -> bool:
        identity = self.identity.activity_id()
        self._index(self._load(identity), collection_id)
        pinned = self.pinned_ids()
        if collection_id in pinned:
            pinned = [p for p in pinned if p != collection_id]
        else:
            pinned.append(collection_id)
        self.storage.set(PINNED_KEY_PREFIX + identity, pinned)
        self._notify()
        return collection_id in pinned
