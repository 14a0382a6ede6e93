from __future__ import annotations

import logging
from typing import Iterable, Literal

from tague_api.bookmarks import BookmarkStore
from tague_api.boards import CuratedBoardStore
from tague_api.cache import SessionCache
from tague_api.core.config import Settings
from tague_api.docstore import DocumentStore, DocumentStoreError, SqlDocumentStore, Transaction
from tague_api.follow_graph import FollowGraphManager
from tague_api.locks import PairLocks
from tague_api.logs import log_event
from tague_api.notifications import NotificationEmitter
from tague_api.reconciler import ConsistencyReconciler
from tague_api.results import (
    EngineError,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    require_principal,
)
from tague_api.schemas import ACCOUNTS, Account, utcnow


class Engine:
    """Everything one user session talks to.

    Built per session: the post cache lives and dies with it. The pair-lock
    registry is process-wide unless one is passed in.
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        settings: Settings | None = None,
        locks: PairLocks | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or SqlDocumentStore(settings=self.settings)
        self.cache = SessionCache(self.store)
        self.notifications = NotificationEmitter(self.store, settings=self.settings)
        self.follows = FollowGraphManager(
            self.store, self.notifications, locks=locks, settings=self.settings
        )
        self.bookmarks = BookmarkStore(self.store, self.cache, settings=self.settings)
        self.boards = CuratedBoardStore(self.store, settings=self.settings)
        self.reconciler = ConsistencyReconciler(
            self.store, self.bookmarks, self.boards, self.cache
        )

    # accounts

    async def create_account(
        self, account_id: str, *, display_name: str = "", is_private: bool = False
    ) -> Result:
        aid = str(account_id or "").strip()
        if not aid or "/" in aid:
            return EngineError(ErrorKind.INVALID, "invalid account id").to_err()

        async def txn(tx: Transaction) -> Account:
            existing = Account.from_doc(await tx.get(ACCOUNTS, aid))
            if existing is not None:
                raise EngineError(ErrorKind.CONFLICT, "account_exists")
            account = Account(
                id=aid,
                display_name=str(display_name or aid),
                is_private=bool(is_private),
                created_at=utcnow(),
            )
            tx.set(ACCOUNTS, aid, account.to_doc())
            return account

        try:
            account = await self.store.run_transaction(txn)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        log_event(logging.INFO, "account_created", account_id=aid)
        return Ok(account)

    async def get_account(self, account_id: str) -> Result:
        try:
            return Ok(await self.follows.get_account(str(account_id)))
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)

    async def set_privacy(self, account_id: str | None, is_private: bool) -> Result:
        return await self.follows.set_privacy(account_id, is_private)

    # follow graph

    async def toggle_follow(self, requester_id: str | None, target_id: str) -> Result:
        return await self.follows.toggle_follow(requester_id, target_id)

    async def resolve_follow_request(
        self,
        request_id: str,
        outcome: Literal["accept", "decline"],
        *,
        acting_id: str | None,
    ) -> Result:
        return await self.follows.resolve_follow_request(
            request_id, outcome, acting_id=acting_id
        )

    async def cancel_follow_request(
        self, requester_id: str | None, target_id: str
    ) -> Result:
        return await self.follows.cancel_follow_request(requester_id, target_id)

    async def relationship(self, viewer_id: str | None, target_id: str) -> Result:
        return await self.follows.relationship(viewer_id, target_id)

    async def list_followers(self, account_id: str) -> Result:
        return await self.follows.list_followers(account_id)

    async def list_following(self, account_id: str) -> Result:
        return await self.follows.list_following(account_id)

    async def list_pending_requests(self, recipient_id: str | None) -> Result:
        return await self.follows.list_pending_requests(recipient_id)

    async def list_notifications(
        self, recipient_id: str | None, *, limit: int | None = None
    ) -> Result:
        try:
            rid = require_principal(recipient_id)
            return Ok(await self.notifications.list_for(rid, limit=limit))
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)

    # bookmarks and boards

    async def add_bookmark(self, owner_id: str | None, post_id: str) -> Result:
        return await self.bookmarks.add(owner_id, post_id)

    async def remove_bookmark(self, owner_id: str | None, post_id: str) -> Result:
        return await self.bookmarks.remove(owner_id, post_id)

    async def is_bookmarked(self, owner_id: str | None, post_id: str) -> Result:
        return await self.bookmarks.exists(owner_id, post_id)

    async def list_visible_bookmarks(self, owner_id: str | None) -> Result:
        return await self.reconciler.list_visible_bookmarks(owner_id)

    async def create_board(self, owner_id: str | None, name: str) -> Result:
        return await self.boards.create(owner_id, name)

    async def rename_board(self, owner_id: str | None, board_id: str, name: str) -> Result:
        return await self.boards.rename(owner_id, board_id, name)

    async def delete_board(self, owner_id: str | None, board_id: str) -> Result:
        return await self.boards.delete(owner_id, board_id)

    async def add_posts_to_board(
        self, owner_id: str | None, board_id: str, post_ids: Iterable[str]
    ) -> Result:
        return await self.boards.add_posts(owner_id, board_id, post_ids)

    async def remove_post_from_board(
        self, owner_id: str | None, board_id: str, post_id: str
    ) -> Result:
        return await self.boards.remove_post(owner_id, board_id, post_id)

    async def save_post_to_board(
        self, owner_id: str | None, board_id: str, post_id: str
    ) -> Result:
        """Bookmark ``post_id`` if needed, then add it to the board."""
        saved = await self.bookmarks.add(owner_id, post_id)
        if not saved.ok:
            return saved
        return await self.boards.add_posts(owner_id, board_id, [post_id])

    async def get_board(self, owner_id: str | None, board_id: str) -> Result:
        return await self.reconciler.read_board(owner_id, board_id)

    async def list_boards(self, owner_id: str | None) -> Result:
        return await self.reconciler.list_boards(owner_id)

    # session

    def logout(self) -> None:
        self.cache.invalidate()
