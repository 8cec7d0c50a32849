# per-device activity store + helpers
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from .config import MAX_VOTE_EVENTS
from .errors import BadRequest
from .identity import IdentityResolver
from .ids import new_comment_id, now_iso
from .models import OPTIONS, ActivityRecord, Comment, CommentAuthor, GlobalCardData, VoteEvent
from .observable import Observable
from .storage import MemoryStorage

logger = logging.getLogger(__name__)

GLOBAL_KEY = "vote_card_activity_global"
USER_KEY_PREFIX = "vote_card_activity_"
VOTE_EVENTS_KEY = "vote_vote_events"

# Stored layout:
# global[card_id] = {countA, countB, comments}      (this device's contributions)
# selections[card_id] = {userSelectedOption}        (per identity)


def _as_map(raw: Any) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _card_data(raw: Any) -> GlobalCardData:
    try:
        return GlobalCardData.model_validate(raw if isinstance(raw, dict) else {})
    except ValidationError:
        return GlobalCardData()


class LocalActivityStore(Observable):
    def __init__(self, storage: MemoryStorage, identity: IdentityResolver):
        super().__init__()
        self.storage = storage
        self.identity = identity

    def _user_key(self) -> str:
        return USER_KEY_PREFIX + self.identity.activity_id()

    def _load_global(self) -> Dict[str, Any]:
        return _as_map(self.storage.get(GLOBAL_KEY))

    def _load_selections(self) -> Dict[str, Any]:
        return _as_map(self.storage.get(self._user_key()))

    def _save_card(self, card_id: str, data: GlobalCardData) -> None:
        stored = self._load_global()
        stored[card_id] = data.wire()
        self.storage.set(GLOBAL_KEY, stored)

    @staticmethod
    def _record(g: Any, u: Any) -> ActivityRecord:
        data = _card_data(g)
        return ActivityRecord(
            count_a=data.count_a,
            count_b=data.count_b,
            comments=data.comments,
            user_selected_option=_as_map(u).get("userSelectedOption"),
        )

    def get(self, card_id: str) -> ActivityRecord:
        """Zero record for unknown cards; never raises on bad stored data."""
        return self._record(self._load_global().get(card_id), self._load_selections().get(card_id))

    def get_all(self) -> Dict[str, ActivityRecord]:
        stored = self._load_global()
        selections = self._load_selections()
        result: Dict[str, ActivityRecord] = {}
        for card_id in {**stored, **selections}:
            result[card_id] = self._record(stored.get(card_id), selections.get(card_id))
        return result

    def add_vote(self, card_id: str, option: str) -> ActivityRecord:
        """
        Increments every time it is called and overwrites this identity's
        selection (last write wins on one device). Counter, selection and
        event are committed in one write.
        """
        if not card_id or option not in OPTIONS:
            raise BadRequest()
        stored = self._load_global()
        current = _card_data(stored.get(card_id))
        stored[card_id] = current.model_copy(update={
            "count_a": current.count_a + (1 if option == "A" else 0),
            "count_b": current.count_b + (1 if option == "B" else 0),
        }).wire()

        selections = self._load_selections()
        selections[card_id] = {"userSelectedOption": option}

        events = self._load_events()
        events.append(VoteEvent(card_id=card_id, date=now_iso()).wire())

        self.storage.set_many({
            GLOBAL_KEY: stored,
            self._user_key(): selections,
            VOTE_EVENTS_KEY: events[-MAX_VOTE_EVENTS:],
        })
        self._notify()
        return self.get(card_id)

    def add_comment(self, card_id: str, author: CommentAuthor, text: str) -> Comment:
        if not card_id or not text or not text.strip():
            raise BadRequest()
        current = _card_data(self._load_global().get(card_id))
        comment = Comment(id=new_comment_id(), user=author, date=now_iso(), text=text)
        self._save_card(card_id, current.model_copy(update={"comments": [*current.comments, comment]}))
        self._notify()
        return comment

    def add_comment_like(self, card_id: str, comment_id: str) -> bool:
        current = _card_data(self._load_global().get(card_id))
        found = False
        comments: List[Comment] = []
        for c in current.comments:
            if c.id == comment_id:
                c = c.model_copy(update={"like_count": c.like_count + 1})
                found = True
            comments.append(c)
        if not found:
            return False
        self._save_card(card_id, current.model_copy(update={"comments": comments}))
        self._notify()
        return True

    def _load_events(self) -> List[Dict[str, Any]]:
        raw = self.storage.get(VOTE_EVENTS_KEY)
        return [e for e in raw if isinstance(e, dict)] if isinstance(raw, list) else []

    def get_vote_events(self) -> List[VoteEvent]:
        """Newest first."""
        events = []
        for raw in self._load_events():
            try:
                events.append(VoteEvent.model_validate(raw))
            except ValidationError:
                continue
        return sorted(events, key=lambda e: e.date, reverse=True)

    def card_ids_commented_by(self, name: str) -> List[str]:
        ids = []
        for card_id, raw in self._load_global().items():
            if any(c.user.name == name for c in _card_data(raw).comments):
                ids.append(card_id)
        return ids

    def reset_vote_counts(self) -> None:
        """Zero every counter on this device, keep comments."""
        reset = {
            card_id: GlobalCardData(comments=_card_data(raw).comments).wire()
            for card_id, raw in self._load_global().items()
        }
        self.storage.set(GLOBAL_KEY, reset)
        self._notify()
