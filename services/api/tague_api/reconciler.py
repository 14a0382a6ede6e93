"""Keeps bookmarks and curated boards consistent with each other and with
account privacy.

Two independent, idempotent jobs:

- visibility: a bookmark on a post whose author is private and does not
  count the owner among its followers is deleted when the bookmark list is
  read, not just hidden;
- referential integrity: whenever a bookmark disappears, every board of the
  same owner that lists the post loses it, with ``postCount`` recomputed in
  the same single-board transaction.

Board reads also pass through here and repair any id whose bookmark is gone.
"""

from __future__ import annotations

import logging

from tague_api.bookmarks import BookmarkStore
from tague_api.boards import CuratedBoardStore
from tague_api.cache import SessionCache
from tague_api.docstore import DocumentStore, DocumentStoreError
from tague_api.logs import log_event
from tague_api.results import (
    EngineError,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    require_principal,
)
from tague_api.schemas import ACCOUNTS, Account, Bookmark, CuratedBoard, boards_path


class ConsistencyReconciler:
    def __init__(
        self,
        store: DocumentStore,
        bookmarks: BookmarkStore,
        boards: CuratedBoardStore,
        cache: SessionCache,
    ) -> None:
        self._store = store
        self._bookmarks = bookmarks
        self._boards = boards
        self._cache = cache
        bookmarks.subscribe(self.cascade_removal)

    async def cascade_removal(self, owner_id: str, post_id: str) -> list[str]:
        touched: list[str] = []
        for board in await self._boards.fetch_all(owner_id):
            if post_id not in board.post_ids:
                continue
            updated = await self._boards.drop_post_ids(owner_id, board.id, {post_id})
            if updated is not None and post_id not in updated.post_ids:
                touched.append(board.id)
        if touched:
            log_event(
                logging.INFO,
                "board_cascade",
                owner_id=owner_id,
                post_id=post_id,
                boards=touched,
            )
        return touched

    async def _author_id(self, bookmark: Bookmark) -> str | None:
        post = await self._cache.get_post(bookmark.post_id)
        if post is not None:
            return post.author_id
        return bookmark.author_id

    async def _is_visible(
        self, owner_id: str, bookmark: Bookmark, authors: dict[str, Account | None]
    ) -> bool:
        author_id = await self._author_id(bookmark)
        if not author_id or author_id == owner_id:
            return True
        if author_id not in authors:
            authors[author_id] = Account.from_doc(
                await self._store.get_document(ACCOUNTS, author_id)
            )
        author = authors[author_id]
        if author is None:
            return True
        return not author.is_private or owner_id in author.followers

    async def list_visible_bookmarks(self, owner_id: str | None) -> Result:
        try:
            oid = require_principal(owner_id)
            authors: dict[str, Account | None] = {}
            visible: list[Bookmark] = []
            evicted: list[str] = []
            for bookmark in await self._bookmarks.fetch_all(oid):
                if await self._is_visible(oid, bookmark, authors):
                    visible.append(bookmark)
                    continue
                await self._bookmarks.delete_and_announce(oid, bookmark.post_id)
                evicted.append(bookmark.post_id)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        if evicted:
            log_event(
                logging.INFO, "bookmarks_evicted_private", owner_id=oid, post_ids=evicted
            )
        return Ok(visible[: self._bookmarks.page_limit])

    async def _repair(
        self, owner_id: str, board: CuratedBoard, bookmarked: set[str]
    ) -> CuratedBoard | None:
        dangling = {p for p in board.post_ids if p not in bookmarked}
        if not dangling:
            return board
        repaired = await self._boards.drop_post_ids(owner_id, board.id, dangling)
        if repaired is not None and len(repaired.post_ids) != len(board.post_ids):
            log_event(
                logging.INFO,
                "board_repaired",
                owner_id=owner_id,
                board_id=board.id,
                dropped=sorted(dangling),
            )
        return repaired

    async def read_board(self, owner_id: str | None, board_id: str) -> Result:
        try:
            oid = require_principal(owner_id)
            board = CuratedBoard.from_doc(
                await self._store.get_document(boards_path(oid), str(board_id))
            )
            if board is None:
                raise EngineError(ErrorKind.NOT_FOUND, f"board {board_id} not found")
            repaired = await self._repair(oid, board, await self._bookmarks.post_ids(oid))
            if repaired is None:
                raise EngineError(ErrorKind.NOT_FOUND, f"board {board_id} not found")
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(repaired)

    async def list_boards(self, owner_id: str | None) -> Result:
        try:
            oid = require_principal(owner_id)
            bookmarked = await self._bookmarks.post_ids(oid)
            out: list[CuratedBoard] = []
            for board in await self._boards.fetch_all(oid):
                repaired = await self._repair(oid, board, bookmarked)
                if repaired is not None:
                    out.append(repaired)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(out)
