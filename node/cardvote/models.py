from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Option = Literal["A", "B"]
Visibility = Literal["public", "private", "member"]
OPTIONS = ("A", "B")


def _non_negative(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
        return 0
    return int(v)


class WireModel(BaseModel):
    """
    Python attributes are snake_case, the wire and the persisted JSON use
    the camelCase names of the browser client. Both are accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True)

    def wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CommentAuthor(WireModel):
    name: str
    icon_url: Optional[str] = Field(None, alias="iconUrl")


class Comment(WireModel):
    id: str
    user: CommentAuthor
    date: str
    text: str
    like_count: int = Field(0, alias="likeCount")

    @field_validator("like_count", mode="before")
    @classmethod
    def clamp_counters(cls, v: Any) -> int:
        return _non_negative(v)


class GlobalCardData(WireModel):
    """
    Shared per-card aggregate: counters only grow, comments are append-only.
    """
    count_a: int = Field(0, alias="countA")
    count_b: int = Field(0, alias="countB")
    comments: List[Comment] = Field(default_factory=list)

    @field_validator("count_a", "count_b", mode="before")
    @classmethod
    def clamp_counters(cls, v: Any) -> int:
        return _non_negative(v)

    @field_validator("comments", mode="before")
    @classmethod
    def keep_valid_comments(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        kept = []
        for item in v:
            if isinstance(item, Comment):
                kept.append(item)
                continue
            try:
                kept.append(Comment.model_validate(item))
            except ValidationError:
                continue
        return kept


class ActivityRecord(GlobalCardData):
    """
    Activity overlay for one card as seen by one identity:
    aggregate counters and comments plus that identity's own selection.
    """
    user_selected_option: Optional[Option] = Field(None, alias="userSelectedOption")

    @field_validator("user_selected_option", mode="before")
    @classmethod
    def known_option(cls, v: Any) -> Optional[str]:
        return v if v in OPTIONS else None


class CardBaseline(WireModel):
    """
    Author-supplied seed data for a card. Counters here are never mutated;
    activity is layered on top by the merge engine.
    """
    id: Optional[str] = None
    question: str
    option_a: str = Field(..., alias="optionA")
    option_b: str = Field(..., alias="optionB")
    count_a: int = Field(0, alias="countA")
    count_b: int = Field(0, alias="countB")
    comment_count: int = Field(0, alias="commentCount")
    tags: Optional[List[str]] = None
    visibility: Literal["public", "private"] = "public"
    creator: Optional[CommentAuthor] = None
    created_at: Optional[str] = Field(None, alias="createdAt")
    period_end: Optional[str] = Field(None, alias="periodEnd")
    read_more_text: Optional[str] = Field(None, alias="readMoreText")
    pattern_type: Optional[str] = Field(None, alias="patternType")
    background_image_url: Optional[str] = Field(None, alias="backgroundImageUrl")
    option_a_image_url: Optional[str] = Field(None, alias="optionAImageUrl")
    option_b_image_url: Optional[str] = Field(None, alias="optionBImageUrl")
    bookmarked: Optional[bool] = None
    created_by_user_id: Optional[str] = Field(None, alias="createdByUserId")

    @field_validator("count_a", "count_b", "comment_count", mode="before")
    @classmethod
    def clamp_counters(cls, v: Any) -> int:
        return _non_negative(v)

    @field_validator("question", "option_a", "option_b")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def string_tags(cls, v: Any) -> Optional[List[str]]:
        if not isinstance(v, list):
            return None
        tags = [t for t in v if isinstance(t, str)]
        return tags or None

    @field_validator("visibility", mode="before")
    @classmethod
    def coerce_visibility(cls, v: Any) -> str:
        return "private" if v == "private" else "public"

    @field_validator("creator", mode="before")
    @classmethod
    def coerce_creator(cls, v: Any) -> Any:
        if isinstance(v, dict) and isinstance(v.get("name"), str):
            return v
        return v if isinstance(v, CommentAuthor) else None


def normalize_card(raw: Any, created_by: Optional[str] = None) -> Optional[CardBaseline]:
    """Parse a stored/received card, dropping it when it is unusable."""
    if isinstance(raw, CardBaseline):
        card = raw
    elif isinstance(raw, dict):
        try:
            card = CardBaseline.model_validate(raw)
        except ValidationError:
            return None
    else:
        return None
    if created_by is not None:
        card = card.model_copy(update={"created_by_user_id": created_by})
    return card


class MergedView(WireModel):
    count_a: int = Field(..., alias="countA")
    count_b: int = Field(..., alias="countB")
    comment_count: int = Field(..., alias="commentCount")


class AuthState(WireModel):
    is_logged_in: bool = Field(False, alias="isLoggedIn")
    user: Optional[CommentAuthor] = None
    user_id: Optional[str] = Field(None, alias="userId")


class Collection(WireModel):
    id: str
    name: str
    color: str = "#E5E7EB"
    visibility: Visibility = "public"
    card_ids: List[str] = Field(default_factory=list, alias="cardIds")

    @field_validator("card_ids", mode="before")
    @classmethod
    def unique_ids(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        seen: Dict[str, None] = {}
        for item in v:
            seen.setdefault(str(item), None)
        return list(seen)

    @field_validator("visibility", mode="before")
    @classmethod
    def coerce_visibility(cls, v: Any) -> str:
        return v if v in ("public", "private", "member") else "public"


class Draft(WireModel):
    id: str
    text: str
    saved_at: str = Field("", alias="savedAt")


class VoteEvent(WireModel):
    card_id: str = Field(..., alias="cardId")
    date: str


class CreatedVoteEntry(WireModel):
    user_id: str = Field(..., alias="userId")
    card: Dict[str, Any]


# ---- request bodies ----

class VoteIn(WireModel):
    type: Literal["vote"]
    user_id: str = Field(..., alias="userId", min_length=1, examples=["user1"])
    card_id: str = Field(..., alias="cardId", min_length=1, examples=["seed-0"])
    option: Option = Field(..., examples=["A"])


class CommentBody(WireModel):
    user: CommentAuthor
    text: str

    @field_validator("text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class CommentIn(WireModel):
    type: Literal["comment"]
    card_id: str = Field(..., alias="cardId", min_length=1)
    comment: CommentBody


class CreatedVoteIn(WireModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    card: Dict[str, Any]


class ActiveUserIn(WireModel):
    user_id: Optional[str] = Field(None, alias="userId")
    logout_user_id: Optional[str] = Field(None, alias="logoutUserId")


class AcquireResult(BaseModel):
    acquired: bool
    reason: Optional[str] = None
