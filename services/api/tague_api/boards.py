from __future__ import annotations

import logging
from typing import Iterable
from uuid import uuid4

from tague_api.core.config import Settings
from tague_api.docstore import DocumentStore, DocumentStoreError, Transaction
from tague_api.logs import log_event
from tague_api.results import (
    EngineError,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    require_principal,
)
from tague_api.retry import with_io_retry
from tague_api.schemas import (
    Bookmark,
    CuratedBoard,
    boards_path,
    bookmarks_path,
    normalize_board_name,
    utcnow,
)


def _name_or_invalid(raw: str | None) -> str:
    try:
        return normalize_board_name(raw)
    except ValueError as exc:
        raise EngineError(ErrorKind.INVALID, str(exc)) from None


async def _read_board(tx: Transaction, owner_id: str, board_id: str) -> CuratedBoard:
    board = CuratedBoard.from_doc(await tx.get(boards_path(owner_id), board_id))
    if board is None:
        raise EngineError(ErrorKind.NOT_FOUND, f"board {board_id} not found")
    return board


class CuratedBoardStore:
    """Named, ordered subsets of an account's own bookmarks.

    Each mutation is a read-modify-write transaction on the single board
    document, so ``postIds`` and ``postCount`` always change together.
    """

    def __init__(self, store: DocumentStore, *, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or Settings()

    async def _tx(self, action: str, txn):
        return await with_io_retry(
            lambda: self._store.run_transaction(txn),
            action=action,
            settings=self._settings,
        )

    async def fetch_all(self, owner_id: str) -> list[CuratedBoard]:
        rows = await self._store.query_collection(
            boards_path(owner_id), order_by="createdAt", descending=True
        )
        return [CuratedBoard.from_doc(r) for r in rows]

    async def create(self, owner_id: str | None, name: str) -> Result:
        try:
            oid = require_principal(owner_id)
            clean = _name_or_invalid(name)
            now = utcnow()
            board = CuratedBoard(
                id=f"brd_{uuid4().hex[:16]}",
                name=clean,
                post_ids=[],
                post_count=0,
                created_at=now,
                updated_at=now,
            )
            await with_io_retry(
                lambda: self._store.set_document(
                    boards_path(oid), board.id, board.to_doc()
                ),
                action="board_create",
                settings=self._settings,
            )
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        log_event(logging.INFO, "board_created", owner_id=oid, board_id=board.id)
        return Ok(board)

    async def rename(self, owner_id: str | None, board_id: str, name: str) -> Result:
        try:
            oid = require_principal(owner_id)
            clean = _name_or_invalid(name)

            async def txn(tx: Transaction) -> CuratedBoard:
                board = await _read_board(tx, oid, board_id)
                renamed = board.model_copy(update={"name": clean, "updated_at": utcnow()})
                tx.set(boards_path(oid), board.id, renamed.to_doc())
                return renamed

            board = await self._tx("board_rename", txn)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(board)

    async def delete(self, owner_id: str | None, board_id: str) -> Result:
        try:
            oid = require_principal(owner_id)

            async def txn(tx: Transaction) -> CuratedBoard:
                board = await _read_board(tx, oid, board_id)
                tx.delete(boards_path(oid), board.id)
                return board

            board = await self._tx("board_delete", txn)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        log_event(logging.INFO, "board_deleted", owner_id=oid, board_id=board.id)
        return Ok(board)

    async def add_posts(
        self, owner_id: str | None, board_id: str, post_ids: Iterable[str]
    ) -> Result:
        try:
            oid = require_principal(owner_id)
            wanted: list[str] = []
            for pid in post_ids:
                pid = str(pid or "").strip()
                if pid and pid not in wanted:
                    wanted.append(pid)

            async def txn(tx: Transaction) -> CuratedBoard:
                board = await _read_board(tx, oid, board_id)
                present = set(board.post_ids)
                candidates = [p for p in wanted if p not in present]
                accepted: list[str] = []
                # Reading each bookmark inside the transaction pins it: if one
                # is removed before commit, the commit conflicts and re-runs.
                for pid in candidates:
                    if Bookmark.from_doc(await tx.get(bookmarks_path(oid), pid)):
                        accepted.append(pid)
                if not accepted:
                    return board
                updated = board.with_post_ids([*board.post_ids, *accepted])
                tx.set(boards_path(oid), board.id, updated.to_doc())
                return updated

            board = await self._tx("board_add_posts", txn)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(board)

    async def remove_post(
        self, owner_id: str | None, board_id: str, post_id: str
    ) -> Result:
        try:
            oid = require_principal(owner_id)
            pid = str(post_id or "").strip()

            async def txn(tx: Transaction) -> CuratedBoard:
                board = await _read_board(tx, oid, board_id)
                if pid not in board.post_ids:
                    return board
                updated = board.with_post_ids([p for p in board.post_ids if p != pid])
                tx.set(boards_path(oid), board.id, updated.to_doc())
                return updated

            board = await self._tx("board_remove_post", txn)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(board)

    async def drop_post_ids(
        self,
        owner_id: str,
        board_id: str,
        post_ids: set[str],
        *,
        only_unbookmarked: bool = True,
    ) -> CuratedBoard | None:
        """Remove ``post_ids`` from one board; ``None`` if the board is gone.

        With ``only_unbookmarked`` an id is kept if its bookmark exists again
        at commit time.
        """

        async def txn(tx: Transaction) -> CuratedBoard | None:
            board = CuratedBoard.from_doc(await tx.get(boards_path(owner_id), board_id))
            if board is None:
                return None
            drop = {p for p in post_ids if p in board.post_ids}
            if only_unbookmarked:
                for pid in sorted(drop):
                    if await tx.get(bookmarks_path(owner_id), pid) is not None:
                        drop.discard(pid)
            if not drop:
                return board
            updated = board.with_post_ids([p for p in board.post_ids if p not in drop])
            tx.set(boards_path(owner_id), board.id, updated.to_doc())
            return updated

        return await self._tx("board_drop_posts", txn)
