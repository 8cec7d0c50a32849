# id + timestamp helpers
import secrets
import string
import time
from datetime import datetime, timezone

_ALPHABET = string.digits + string.ascii_lowercase


def base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_ALPHABET[rem])
    return "".join(reversed(out))


def random_suffix(length: int = 7) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_comment_id() -> str:
    """Timestamp + random suffix: practically unique, not globally coordinated."""
    return f"comment-{epoch_ms()}-{random_suffix()}"


def new_guest_id() -> str:
    return f"g_{base36(epoch_ms())}_{random_suffix()}"
