"""Persisted entity shapes.

Every document the engine reads or writes goes through one of these models,
so missing or mistyped fields fail at the store boundary instead of being
defaulted at each call site. Field names on disk are camelCase.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ACCOUNTS = "accounts"
FOLLOW_REQUESTS = "followRequests"
NOTIFICATIONS = "notifications"
POSTS = "posts"

BOARD_NAME_MAX_LEN = 40


def utcnow() -> datetime:
    return datetime.now(UTC)


def bookmarks_path(owner_id: str) -> str:
    return f"{ACCOUNTS}/{owner_id}/bookmarks"


def boards_path(owner_id: str) -> str:
    return f"{ACCOUNTS}/{owner_id}/boards"


class Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    @classmethod
    def from_doc(cls, body: dict[str, Any] | None):
        if body is None:
            return None
        return cls.model_validate(body)

    def to_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _unique(values: list[str], *, name: str) -> list[str]:
    if len(set(values)) != len(values):
        raise ValueError(f"{name} must not contain duplicates")
    return values


class Account(Document):
    id: str
    display_name: str = ""
    is_private: bool = False
    following: list[str] = Field(default_factory=list)
    followers: list[str] = Field(default_factory=list)
    pending_follow_requests: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("following", "followers", "pending_follow_requests")
    @classmethod
    def _no_duplicate_edges(cls, v: list[str], info) -> list[str]:
        return _unique(v, name=str(info.field_name))


class FollowRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class FollowRequest(Document):
    id: str
    sender_id: str
    recipient_id: str
    status: FollowRequestStatus = FollowRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == FollowRequestStatus.PENDING


NotificationType = Literal["follow", "follow_request", "follow_accepted"]


class NotificationRecord(Document):
    id: str
    type: NotificationType
    sender_id: str
    recipient_id: str
    status: str = "unread"
    request_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Post(Document):
    id: str
    author_id: str
    caption: str = ""
    image_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Bookmark(Document):
    id: str
    post_id: str
    author_id: str | None = None
    bookmarked_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _keyed_by_post(self) -> "Bookmark":
        if self.id != self.post_id:
            raise ValueError("bookmark id must equal its post id")
        return self


def normalize_board_name(raw: str | None, *, max_len: int = BOARD_NAME_MAX_LEN) -> str:
    name = str(raw or "").strip()
    if not name:
        raise ValueError("board name must not be empty")
    if len(name) > int(max_len):
        raise ValueError(f"board name must be at most {int(max_len)} characters")
    return name


class CuratedBoard(Document):
    id: str
    name: str
    post_ids: list[str] = Field(default_factory=list)
    post_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return normalize_board_name(v)

    @field_validator("post_ids")
    @classmethod
    def _no_duplicate_posts(cls, v: list[str]) -> list[str]:
        return _unique(v, name="postIds")

    @model_validator(mode="after")
    def _count_matches(self) -> "CuratedBoard":
        if self.post_count != len(self.post_ids):
            raise ValueError(
                f"postCount {self.post_count} != len(postIds) {len(self.post_ids)}"
            )
        return self

    def with_post_ids(self, post_ids: list[str]) -> "CuratedBoard":
        return self.model_copy(
            update={
                "post_ids": list(post_ids),
                "post_count": len(post_ids),
                "updated_at": utcnow(),
            }
        )
