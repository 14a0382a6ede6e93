from __future__ import annotations

import logging
from typing import Awaitable, Callable

from tague_api.cache import SessionCache
from tague_api.core.config import Settings
from tague_api.docstore import DocumentStore, DocumentStoreError, Transaction
from tague_api.logs import log_event
from tague_api.results import (
    EngineError,
    Err,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    require_principal,
)
from tague_api.retry import with_io_retry
from tague_api.schemas import Bookmark, bookmarks_path, utcnow

RemovalListener = Callable[[str, str], Awaitable[None]]


class BookmarkStore:
    """Per-account set of bookmarked posts.

    Removal, whatever its cause, is announced to subscribers after the
    bookmark document is gone; the reconciler subscribes to keep boards free
    of dangling post ids.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: SessionCache,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings or Settings()
        self._listeners: list[RemovalListener] = []

    def subscribe(self, listener: RemovalListener) -> None:
        self._listeners.append(listener)

    @property
    def page_limit(self) -> int:
        return int(self._settings.bookmarks_page_limit)

    async def fetch_all(self, owner_id: str, *, limit: int | None = None) -> list[Bookmark]:
        """Bookmarks newest first; the whole collection unless ``limit`` is given."""
        rows = await self._store.query_collection(
            bookmarks_path(owner_id),
            order_by="bookmarkedAt",
            descending=True,
            limit=limit,
        )
        return [Bookmark.from_doc(r) for r in rows]

    async def _get(self, owner_id: str, post_id: str) -> Bookmark | None:
        return Bookmark.from_doc(
            await self._store.get_document(bookmarks_path(owner_id), post_id)
        )

    async def post_ids(self, owner_id: str) -> set[str]:
        rows = await self._store.query_collection(bookmarks_path(owner_id))
        return {str(r.get("postId")) for r in rows if r.get("postId")}

    async def delete_and_announce(self, owner_id: str, post_id: str) -> bool:
        removed = await with_io_retry(
            lambda: self._store.delete_document(bookmarks_path(owner_id), post_id),
            action="bookmark_remove",
            settings=self._settings,
        )
        if removed:
            for listener in self._listeners:
                await listener(owner_id, post_id)
        return removed

    async def add(self, owner_id: str | None, post_id: str) -> Result:
        try:
            oid = require_principal(owner_id)
            pid = str(post_id or "").strip()
            post = await self._cache.get_post(pid) if pid else None
            if post is None:
                raise EngineError(ErrorKind.NOT_FOUND, f"post {pid} not found")

            async def txn(tx: Transaction) -> Bookmark:
                existing = Bookmark.from_doc(await tx.get(bookmarks_path(oid), pid))
                if existing is not None:
                    return existing
                bookmark = Bookmark(
                    id=pid, post_id=pid, author_id=post.author_id, bookmarked_at=utcnow()
                )
                tx.set(bookmarks_path(oid), pid, bookmark.to_doc())
                return bookmark

            bookmark = await with_io_retry(
                lambda: self._store.run_transaction(txn),
                action="bookmark_add",
                settings=self._settings,
            )
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(bookmark)

    async def remove(self, owner_id: str | None, post_id: str) -> Result:
        try:
            oid = require_principal(owner_id)
            pid = str(post_id or "").strip()
            existing = await self._get(oid, pid) if pid else None
            if existing is None:
                raise EngineError(ErrorKind.NOT_FOUND, f"bookmark {pid} not found")
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)

        try:
            await self.delete_and_announce(oid, pid)
        except DocumentStoreError as exc:
            err = err_from_exception(exc)
            log_event(
                logging.ERROR,
                "bookmark_remove_failed",
                owner_id=oid,
                post_id=pid,
                kind=err.kind.value,
                error=err.detail[:200],
            )
            return Err(kind=err.kind, detail=err.detail, meta={"post_id": pid})
        log_event(logging.INFO, "bookmark_removed", owner_id=oid, post_id=pid)
        return Ok(existing)

    async def list(self, owner_id: str | None) -> Result:
        try:
            oid = require_principal(owner_id)
            bookmarks = await self.fetch_all(oid, limit=self.page_limit)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(bookmarks)

    async def exists(self, owner_id: str | None, post_id: str) -> Result:
        try:
            oid = require_principal(owner_id)
            pid = str(post_id or "").strip()
            found = await self._get(oid, pid) is not None if pid else False
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(found)
