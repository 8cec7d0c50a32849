"""Error taxonomy shared by the stores, the HTTP client and the routes."""

from __future__ import annotations


class CardVoteError(Exception):
    """Base class; ``reason`` is the stable machine-readable code."""

    reason: str = "UNKNOWN"
    status_code: int = 500

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class NotConfigured(CardVoteError):
    """The shared store is unset or unreachable; callers fall back to local."""

    reason = "NOT_CONFIGURED"
    status_code = 503


class BadRequest(CardVoteError):
    reason = "BAD_REQUEST"
    status_code = 400


class AlreadyActive(CardVoteError):
    """Another session already holds this identity."""

    reason = "ALREADY_ACTIVE"
    status_code = 409
    wire_code = "ALREADY_LOGGED_IN"


class BackendError(CardVoteError):
    reason = "BACKEND_ERROR"
    status_code = 500


def from_status(status_code: int, code: str | None = None) -> CardVoteError:
    """Map an HTTP status from the shared store back onto the taxonomy."""
    if status_code == 503:
        return NotConfigured()
    if status_code == 400:
        return BadRequest()
    if status_code == 409 or code == AlreadyActive.wire_code:
        return AlreadyActive()
    return BackendError()
