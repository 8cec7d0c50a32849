# shared activity + created-cards store, and their HTTP endpoints
import logging
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

import redis.asyncio as redis
from fastapi import APIRouter, Body
from redis.exceptions import RedisError

from .created import stamp_card
from .errors import BackendError, NotConfigured
from .ids import new_comment_id, now_iso
from .kv import get_json, get_kv, set_json
from .models import OPTIONS, Comment, CommentAuthor, CommentIn, CreatedVoteIn, GlobalCardData, VoteIn

logger = logging.getLogger(__name__)

router = APIRouter()

GLOBAL_KEY = "vote_activity_global"
USER_KEY_PREFIX = "vote_activity_user_"
CREATED_KEY = "vote_created_votes"


def require_kv() -> redis.Redis:
    kv = get_kv()
    if kv is None:
        raise NotConfigured()
    return kv


def _as_map(raw: Any) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _card(raw: Any) -> GlobalCardData:
    return GlobalCardData.model_validate(raw if isinstance(raw, dict) else {})


async def read_activity(kv: redis.Redis, user_id: Optional[str]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """
    Global aggregate for every card plus the option ``user_id`` picked per card.
    """
    stored = _as_map(await get_json(kv, GLOBAL_KEY))
    global_data = {card_id: _card(raw).wire() for card_id, raw in stored.items()}
    selections: Dict[str, str] = {}
    if user_id:
        for card_id, v in _as_map(await get_json(kv, USER_KEY_PREFIX + user_id)).items():
            option = _as_map(v).get("userSelectedOption")
            if option in OPTIONS:
                selections[card_id] = option
    return global_data, selections


async def record_vote(kv: redis.Redis, user_id: str, card_id: str, option: str) -> None:
    """
    Read-increment-write of the whole aggregate map, then the same for the
    voter's selection map. Neither step is atomic and the two are not
    transactional: a failure after the first write leaves an increment with
    no recorded selection. Concurrent voters may lose increments.
    """
    stored = _as_map(await get_json(kv, GLOBAL_KEY))
    current = _card(stored.get(card_id))
    stored[card_id] = current.model_copy(update={
        "count_a": current.count_a + (1 if option == "A" else 0),
        "count_b": current.count_b + (1 if option == "B" else 0),
    }).wire()
    await set_json(kv, GLOBAL_KEY, stored)

    user_key = USER_KEY_PREFIX + user_id
    selections = _as_map(await get_json(kv, user_key))
    selections[card_id] = {"userSelectedOption": option}
    await set_json(kv, user_key, selections)


async def record_comment(kv: redis.Redis, card_id: str, author: CommentAuthor, text: str) -> Comment:
    stored = _as_map(await get_json(kv, GLOBAL_KEY))
    current = _card(stored.get(card_id))
    comment = Comment(id=new_comment_id(), user=author, date=now_iso(), text=text, like_count=0)
    stored[card_id] = current.model_copy(update={"comments": [*current.comments, comment]}).wire()
    await set_json(kv, GLOBAL_KEY, stored)
    return comment


async def list_created(kv: redis.Redis) -> List[Dict[str, Any]]:
    raw = await get_json(kv, CREATED_KEY)
    return [e for e in raw if isinstance(e, dict)] if isinstance(raw, list) else []


async def add_created(kv: redis.Redis, user_id: str, card: Dict[str, Any]) -> Dict[str, Any]:
    entry = {"userId": user_id, "card": stamp_card(card)}
    await set_json(kv, CREATED_KEY, [entry, *await list_created(kv)])
    return entry


@router.get("/activity")
async def get_activity(userId: str = ""):
    kv = require_kv()
    try:
        global_data, selections = await read_activity(kv, userId)
    except RedisError as exc:
        logger.exception("activity read failed")
        raise BackendError() from exc
    return {"global": global_data, "userSelections": selections}


@router.post("/activity")
async def post_activity(body: Annotated[Union[VoteIn, CommentIn], Body(discriminator="type")]):
    kv = require_kv()
    try:
        if isinstance(body, CommentIn):
            await record_comment(kv, body.card_id, body.comment.user, body.comment.text)
        else:
            await record_vote(kv, body.user_id, body.card_id, body.option)
    except RedisError as exc:
        logger.exception("activity write failed (%s)", body.type)
        raise BackendError() from exc
    return {"ok": True}


@router.get("/created-votes")
async def get_created_votes():
    kv = require_kv()
    try:
        return await list_created(kv)
    except RedisError as exc:
        logger.exception("created-votes read failed")
        raise BackendError() from exc


@router.post("/created-votes")
async def post_created_vote(body: CreatedVoteIn):
    kv = require_kv()
    try:
        await add_created(kv, body.user_id, body.card)
    except RedisError as exc:
        logger.exception("created-votes write failed")
        raise BackendError() from exc
    return {"ok": True}
