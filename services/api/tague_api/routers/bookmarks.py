from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine
from tague_api.schemas import Bookmark

router = APIRouter(prefix="/api/bookmarks", tags=["bookmarks"])


class BookmarkOut(BaseModel):
    post_id: str
    author_id: str | None = None
    bookmarked_at: datetime


class BookmarksOut(BaseModel):
    items: list[BookmarkOut]


class BookmarkStatusOut(BaseModel):
    post_id: str
    bookmarked: bool


def _bookmark_out(b: Bookmark) -> BookmarkOut:
    return BookmarkOut(post_id=b.post_id, author_id=b.author_id, bookmarked_at=b.bookmarked_at)


@router.get("", response_model=BookmarksOut)
async def list_bookmarks(
    account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BookmarksOut:
    items = unwrap(await engine.list_visible_bookmarks(account_id))
    return BookmarksOut(items=[_bookmark_out(b) for b in items])


@router.get("/{post_id}", response_model=BookmarkStatusOut)
async def bookmark_status(
    post_id: str, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BookmarkStatusOut:
    bookmarked = unwrap(await engine.is_bookmarked(account_id, post_id))
    return BookmarkStatusOut(post_id=post_id, bookmarked=bookmarked)


@router.put("/{post_id}", response_model=BookmarkOut)
async def add_bookmark(
    post_id: str, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BookmarkOut:
    return _bookmark_out(unwrap(await engine.add_bookmark(account_id, post_id)))


@router.delete("/{post_id}", response_model=BookmarkOut)
async def remove_bookmark(
    post_id: str, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BookmarkOut:
    return _bookmark_out(unwrap(await engine.remove_bookmark(account_id, post_id)))
