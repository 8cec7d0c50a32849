# cards created on this device (local mode timeline)
from typing import Any, Dict, List, Optional

from .errors import BadRequest
from .ids import epoch_ms, now_iso
from .models import CardBaseline, normalize_card
from .observable import Observable
from .storage import MemoryStorage

CREATED_KEY = "vote_created_cards"


def stamp_card(card: Dict[str, Any]) -> Dict[str, Any]:
    """Give a new card an id and creation time when it lacks them."""
    stamped = dict(card)
    if not isinstance(stamped.get("id"), str):
        stamped["id"] = f"created-{epoch_ms()}"
    if not isinstance(stamped.get("createdAt"), str):
        stamped["createdAt"] = now_iso()
    return stamped


def _unpack(item: Any):
    # entries are {userId, card}; older ones are bare cards
    if isinstance(item, dict) and isinstance(item.get("card"), dict):
        user_id = item.get("userId")
        return item["card"], user_id if isinstance(user_id, str) else None
    return item, None


class LocalCreatedStore(Observable):
    def __init__(self, storage: MemoryStorage):
        super().__init__()
        self.storage = storage

    def _load(self) -> List[Any]:
        raw = self.storage.get(CREATED_KEY)
        return raw if isinstance(raw, list) else []

    def cards(self) -> List[CardBaseline]:
        """Newest first; malformed entries are dropped."""
        result = []
        for item in self._load():
            card = normalize_card(*_unpack(item))
            if card is not None:
                result.append(card)
        return result

    def add(self, card: Dict[str, Any], user_id: Optional[str] = None) -> CardBaseline:
        stamped = stamp_card(card)
        parsed = normalize_card(stamped, user_id)
        if parsed is None:
            raise BadRequest()
        self.storage.set(CREATED_KEY, [{"userId": user_id, "card": stamped}, *self._load()])
        self._notify()
        return parsed
