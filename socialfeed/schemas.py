"""
Pydantic entities returned by the stores, plus feed pagination and filter parameters.
Kept separate from ORM models so the cache and callers never hold a session.
"""
from datetime import datetime, timezone
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from socialfeed.errors import ValidationError

MAX_FEED_LIMIT = 20
MAX_FILTER_TAGS = 5
MAX_SEARCH_LENGTH = 100


# ──────────────────────────── Entities ────────────────────────────────────

class Role(BaseModel):
    id: Optional[int] = None
    name: str = "user"
    level: int = 0
    description: Optional[str] = None

    class Config:
        from_attributes = True


class User(BaseModel):
    id: Optional[int] = None
    username: str
    email: str
    is_active: bool = False
    role_id: Optional[int] = None
    role: Role = Field(default_factory=Role)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Only set on reads straight from the store; never serialised, so the
    # cache never holds it.
    password_hash: Optional[str] = Field(default=None, exclude=True, repr=False)

    class Config:
        from_attributes = True


class Comment(BaseModel):
    id: Optional[int] = None
    post_id: int
    user_id: int
    content: str
    username: Optional[str] = None
    created_at: Optional[datetime] = None


class Post(BaseModel):
    id: Optional[int] = None
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    user_id: int
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    comments: list[Comment] = Field(default_factory=list)


class PostWithMetadata(Post):
    """A feed row: the post plus denormalised display data."""
    username: Optional[str] = None
    comments_count: int = 0


class Follower(BaseModel):
    user_id: int
    follower_id: int
    created_at: Optional[datetime] = None


# ──────────────────────────── Feed parameters ─────────────────────────────

def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"]) or "filter"
        parts.append(f"{field}: {err['msg']}")
    return "; ".join(parts)


def _present(params: Mapping[str, str], *keys: str) -> dict[str, str]:
    out = {}
    for key in keys:
        value = params.get(key)
        if value is not None and str(value).strip():
            out[key] = str(value).strip()
    return out


def to_utc(value: datetime) -> datetime:
    """Naive timestamps are UTC already; aware ones are converted and made naive."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Pageable(BaseModel):
    limit: int = Field(10, ge=1, le=MAX_FEED_LIMIT)
    offset: int = Field(0, ge=0)
    sort: Literal["ASC", "DESC"] = "DESC"

    @field_validator("sort", mode="before")
    @classmethod
    def normalise_sort(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @classmethod
    def parse(cls, params: Mapping[str, str]) -> "Pageable":
        """Build from query-string values; malformed input raises ValidationError."""
        try:
            return cls(**_present(params, "limit", "offset", "sort"))
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc


class FeedFilter(BaseModel):
    tags: list[str] = Field(default_factory=list, max_length=MAX_FILTER_TAGS)
    search: Optional[str] = Field(None, max_length=MAX_SEARCH_LENGTH)
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(t).strip() for t in v if str(t).strip()]

    @field_validator("search", mode="before")
    @classmethod
    def blank_search_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("since", "until", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        if v is None or isinstance(v, datetime):
            return v
        if not isinstance(v, str):
            raise ValueError("must be an ISO-8601 timestamp, e.g. 2024-01-31T15:04:05")
        text = v.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(
                "must be an ISO-8601 timestamp, e.g. 2024-01-31T15:04:05"
            ) from None

    @field_validator("since", "until")
    @classmethod
    def normalise_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None

    @model_validator(mode="after")
    def check_window(self) -> "FeedFilter":
        if self.since and self.until and self.since > self.until:
            raise ValueError("since must not be later than until")
        return self

    @classmethod
    def parse(cls, params: Mapping[str, str]) -> "FeedFilter":
        """Build from query-string values; malformed input raises ValidationError."""
        try:
            return cls(**_present(params, "tags", "search", "since", "until"))
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc
