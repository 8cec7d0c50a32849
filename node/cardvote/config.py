# env vars + constants
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


NODE_ID = os.getenv("NODE_ID", "nodeX")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Server: empty REDIS_URL means the shared store is unconfigured
REDIS_URL = os.getenv("REDIS_URL", "").strip()
# Set to false for stores without SET NX (e.g. some REST gateways)
ACTIVE_USER_ATOMIC = _flag("ACTIVE_USER_ATOMIC", "true")

# Client
REMOTE_BASE_URL = os.getenv("REMOTE_BASE_URL", "http://localhost:8000").rstrip("/")
REMOTE_TIMEOUT = float(os.getenv("REMOTE_TIMEOUT", "2.0"))
LOCAL_STORAGE_PATH = os.getenv("LOCAL_STORAGE_PATH", "").strip()

DEMO_USER_IDS = tuple(f"user{i}" for i in range(1, 11))
MAX_VOTE_EVENTS = 100
