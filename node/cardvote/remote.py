# HTTP client for the shared store endpoints
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import REMOTE_BASE_URL, REMOTE_TIMEOUT
from .errors import BackendError, CardVoteError, from_status
from .models import ActivityRecord, CardBaseline, CommentAuthor, normalize_card

logger = logging.getLogger(__name__)

ACTIVITY_API = "/activity"
CREATED_VOTES_API = "/created-votes"
ACTIVE_USER_API = "/active-user"


def build_activity(global_data: Any, selections: Any) -> Dict[str, ActivityRecord]:
    """
    Project the two remote resources onto the local ActivityRecord shape:
    counters/comments from the aggregate, the option from the selection map.
    """
    global_data = global_data if isinstance(global_data, dict) else {}
    selections = selections if isinstance(selections, dict) else {}
    result: Dict[str, ActivityRecord] = {}
    for card_id in {**global_data, **selections}:
        g = global_data.get(card_id)
        result[card_id] = ActivityRecord.model_validate({
            **(g if isinstance(g, dict) else {}),
            "userSelectedOption": selections.get(card_id),
        })
    return result


class RemoteActivityClient:
    """
    Every call is one request/response round trip. Non-200 answers and
    transport failures surface as CardVoteError subclasses.
    """

    def __init__(
        self,
        base_url: str = REMOTE_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = REMOTE_TIMEOUT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise BackendError() from exc
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if resp.status_code != 200:
            code = payload.get("code") if isinstance(payload, dict) else None
            raise from_status(resp.status_code, code)
        if payload is None:
            raise BackendError()
        return payload

    # ---- activity ----

    async def fetch_activity(self, user_id: str) -> Dict[str, ActivityRecord]:
        data = await self._request("GET", ACTIVITY_API, params={"userId": user_id})
        if not isinstance(data, dict):
            raise BackendError()
        return build_activity(data.get("global"), data.get("userSelections"))

    async def post_vote(self, user_id: str, card_id: str, option: str) -> None:
        await self._request("POST", ACTIVITY_API, json={
            "type": "vote", "userId": user_id, "cardId": card_id, "option": option,
        })

    async def post_comment(self, card_id: str, author: CommentAuthor, text: str) -> None:
        await self._request("POST", ACTIVITY_API, json={
            "type": "comment", "cardId": card_id, "comment": {"user": author.wire(), "text": text},
        })

    # ---- created cards ----

    async def fetch_created(self) -> List[CardBaseline]:
        data = await self._request("GET", CREATED_VOTES_API)
        if not isinstance(data, list):
            raise BackendError()
        cards = []
        for item in data:
            if not isinstance(item, dict):
                continue
            user_id = item.get("userId")
            card = normalize_card(item.get("card"), user_id if isinstance(user_id, str) else None)
            if card is not None:
                cards.append(card)
        return cards

    async def post_created(self, user_id: str, card: Dict[str, Any]) -> None:
        await self._request("POST", CREATED_VOTES_API, json={"userId": user_id, "card": card})

    # ---- active sessions ----

    async def acquire_session(self, user_id: str) -> None:
        """Raises AlreadyActive when another device holds ``user_id``."""
        await self._request("POST", ACTIVE_USER_API, json={"userId": user_id})

    async def release_session(self, user_id: str) -> None:
        await self._request("POST", ACTIVE_USER_API, json={"logoutUserId": user_id})

    async def active_users(self) -> List[str]:
        try:
            data = await self._request("GET", ACTIVE_USER_API)
        except CardVoteError:
            return []
        ids = data.get("userIds") if isinstance(data, dict) else None
        return [i for i in ids if isinstance(i, str)] if isinstance(ids, list) else []
