# unsent card texts saved from the create screen, kept per device
from typing import List, Optional

from pydantic import ValidationError

from .ids import epoch_ms, now_iso, random_suffix
from .models import Draft
from .observable import Observable
from .storage import MemoryStorage

DRAFTS_KEY = "vote_drafts"


class DraftStore(Observable):
    def __init__(self, storage: MemoryStorage):
        super().__init__()
        self.storage = storage

    def _load(self) -> List[Draft]:
        raw = self.storage.get(DRAFTS_KEY)
        if not isinstance(raw, list):
            return []
        drafts = []
        for item in raw:
            try:
                drafts.append(Draft.model_validate(item))
            except ValidationError:
                continue
        return drafts

    def _save(self, drafts: List[Draft]) -> None:
        self.storage.set(DRAFTS_KEY, [d.wire() for d in drafts])
        self._notify()

    def drafts(self) -> List[Draft]:
        """Most recently saved first."""
        return sorted(self._load(), key=lambda d: d.saved_at, reverse=True)

    def add(self, text: str) -> Optional[Draft]:
        """Blank text is not saved and gives None."""
        text = text.strip()
        if not text:
            return None
        drafts = self._load()
        taken = {d.id for d in drafts}
        draft_id = f"draft-{epoch_ms()}"
        while draft_id in taken:
            draft_id = f"draft-{epoch_ms()}-{random_suffix(4)}"
        draft = Draft(id=draft_id, text=text, saved_at=now_iso())
        self._save([draft, *drafts])
        return draft

    def delete(self, draft_id: str) -> bool:
        drafts = self._load()
        kept = [d for d in drafts if d.id != draft_id]
        if len(kept) == len(drafts):
            return False
        self._save(kept)
        return True
