# per-identity record of which legacy keys were already copied
from typing import Dict

from .storage import MemoryStorage

MIGRATIONS_KEY_PREFIX = "vote_migrations_"


def read_migrations(storage: MemoryStorage, identity: str) -> Dict[str, int]:
    """``{step name: legacy version}``; anything malformed reads as not migrated."""
    raw = storage.get(MIGRATIONS_KEY_PREFIX + identity)
    if not isinstance(raw, dict):
        return {}
    return {k: v for k, v in raw.items() if isinstance(v, int)}


def mark_migrated(storage: MemoryStorage, identity: str, name: str, version: int) -> None:
    record = read_migrations(storage, identity)
    record[name] = version
    storage.set(MIGRATIONS_KEY_PREFIX + identity, record)
