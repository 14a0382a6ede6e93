"""Follow graph and follow-request lifecycle.

Per (requester R, target T) pair the relationship is one of ``not_following``,
``request_pending`` or ``following``. Every transition that touches the edge
runs as one store transaction over both account documents (and the request
document when one is involved), so the two sides of an edge are never
observed half-applied. Notifications are written after the transaction
commits and never undo it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal
from uuid import uuid4

from tague_api.core.config import Settings
from tague_api.docstore import (
    ArrayRemove,
    ArrayUnion,
    DocumentStore,
    DocumentStoreError,
    Transaction,
)
from tague_api.locks import PairLocks, get_pair_locks
from tague_api.logs import log_event
from tague_api.notifications import NotificationEmitter
from tague_api.privacy import GateDecision, can_view, decide
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
from tague_api.schemas import (
    ACCOUNTS,
    FOLLOW_REQUESTS,
    Account,
    FollowRequest,
    FollowRequestStatus,
    NotificationType,
    utcnow,
)

ALREADY_PENDING_MESSAGE = "request already pending"


class FollowState(str, enum.Enum):
    NOT_FOLLOWING = "not_following"
    REQUEST_PENDING = "request_pending"
    FOLLOWING = "following"


@dataclass(frozen=True)
class FollowOutcome:
    state: FollowState
    message: str
    request_id: str | None = None
    notice: ErrorKind | None = None


@dataclass(frozen=True)
class Relationship:
    state: FollowState
    is_following_me: bool
    can_view: bool
    request_id: str | None = None


@dataclass(frozen=True)
class _Transition:
    outcome: FollowOutcome
    notify: NotificationType | None = None
    notify_sender: str | None = None
    notify_recipient: str | None = None


def _state_of(
    requester: Account, target: Account, pending: FollowRequest | None
) -> FollowState:
    if target.id in requester.following or requester.id in target.followers:
        return FollowState.FOLLOWING
    if pending is not None or requester.id in target.pending_follow_requests:
        return FollowState.REQUEST_PENDING
    return FollowState.NOT_FOLLOWING


async def _read_pair(
    tx: Transaction, requester_id: str, target_id: str
) -> tuple[Account, Account]:
    requester = Account.from_doc(await tx.get(ACCOUNTS, requester_id))
    target = Account.from_doc(await tx.get(ACCOUNTS, target_id))
    if requester is None:
        raise EngineError(ErrorKind.UNAUTHENTICATED, "acting account does not exist")
    if target is None:
        raise EngineError(ErrorKind.NOT_FOUND, "target account not found")
    return requester, target


class FollowGraphManager:
    def __init__(
        self,
        store: DocumentStore,
        emitter: NotificationEmitter,
        *,
        locks: PairLocks | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._emitter = emitter
        self._locks = locks or get_pair_locks()
        self._settings = settings or Settings()

    # -- reads -------------------------------------------------------------

    async def get_account(self, account_id: str) -> Account:
        account = Account.from_doc(await self._store.get_document(ACCOUNTS, account_id))
        if account is None:
            raise EngineError(ErrorKind.NOT_FOUND, f"account {account_id} not found")
        return account

    async def pending_request(
        self, sender_id: str, recipient_id: str
    ) -> FollowRequest | None:
        rows = await self._store.query_collection(
            FOLLOW_REQUESTS,
            [
                ("senderId", "==", str(sender_id)),
                ("recipientId", "==", str(recipient_id)),
                ("status", "==", FollowRequestStatus.PENDING.value),
            ],
            limit=1,
        )
        return FollowRequest.from_doc(rows[0]) if rows else None

    async def _durable_state(self, requester_id: str, target_id: str) -> FollowState | None:
        try:
            requester = await self.get_account(requester_id)
            target = await self.get_account(target_id)
            pending = await self.pending_request(requester_id, target_id)
        except (EngineError, DocumentStoreError):
            return None
        return _state_of(requester, target, pending)

    # -- guarded mutation --------------------------------------------------

    async def _mutate_pair(
        self,
        a: str,
        b: str,
        *,
        action: str,
        fallback_state: Callable[[], Awaitable[FollowState | None]],
        run: Callable[[], Awaitable[_Transition]],
    ) -> Result:
        if not self._locks.try_acquire(a, b):
            return Err(
                kind=ErrorKind.CONFLICT,
                detail="mutation_in_flight",
                meta={"action": action},
            )
        try:
            try:
                transition = await with_io_retry(
                    run, action=action, settings=self._settings
                )
            except EngineError as exc:
                return exc.to_err()
            except DocumentStoreError as exc:
                err = err_from_exception(exc)
                state = await fallback_state()
                log_event(
                    logging.ERROR,
                    "follow_mutation_failed",
                    action=action,
                    a=a,
                    b=b,
                    kind=err.kind.value,
                    error=err.detail[:200],
                )
                meta: dict[str, Any] = {"action": action}
                if state is not None:
                    meta["state"] = state.value
                return Err(kind=err.kind, detail=err.detail, meta=meta)
        finally:
            self._locks.release(a, b)

        if transition.notify and transition.notify_sender and transition.notify_recipient:
            await self._emitter.emit(
                transition.notify,
                transition.notify_sender,
                transition.notify_recipient,
                request_id=transition.outcome.request_id,
            )
        log_event(
            logging.INFO,
            action,
            a=a,
            b=b,
            state=transition.outcome.state.value,
            notice=transition.outcome.notice.value if transition.outcome.notice else None,
        )
        return Ok(transition.outcome)

    # -- transitions -------------------------------------------------------

    async def toggle_follow(self, requester_id: str | None, target_id: str) -> Result:
        try:
            rid = require_principal(requester_id)
        except EngineError as exc:
            return exc.to_err()
        tid = str(target_id or "").strip()
        if not tid:
            return Err(kind=ErrorKind.NOT_FOUND, detail="target account not found")
        if rid == tid:
            return Err(kind=ErrorKind.INVALID, detail="cannot_follow_self")

        async def run() -> _Transition:
            pending = await self.pending_request(rid, tid)

            async def txn(tx: Transaction) -> _Transition:
                requester, target = await _read_pair(tx, rid, tid)
                state = _state_of(requester, target, pending)

                if state == FollowState.FOLLOWING:
                    # Unfollow never goes through the request system.
                    tx.update(ACCOUNTS, rid, {"following": ArrayRemove(tid)})
                    tx.update(ACCOUNTS, tid, {"followers": ArrayRemove(rid)})
                    return _Transition(
                        FollowOutcome(FollowState.NOT_FOLLOWING, "unfollowed")
                    )

                if state == FollowState.REQUEST_PENDING:
                    return _Transition(
                        FollowOutcome(
                            FollowState.REQUEST_PENDING,
                            ALREADY_PENDING_MESSAGE,
                            request_id=pending.id if pending else None,
                            notice=ErrorKind.ALREADY_PENDING,
                        )
                    )

                if decide(target) == GateDecision.IMMEDIATE:
                    tx.update(ACCOUNTS, rid, {"following": ArrayUnion(tid)})
                    tx.update(ACCOUNTS, tid, {"followers": ArrayUnion(rid)})
                    return _Transition(
                        FollowOutcome(FollowState.FOLLOWING, "followed"),
                        notify="follow",
                        notify_sender=rid,
                        notify_recipient=tid,
                    )

                req = FollowRequest(
                    id=f"frq_{uuid4().hex}",
                    sender_id=rid,
                    recipient_id=tid,
                    status=FollowRequestStatus.PENDING,
                    created_at=utcnow(),
                )
                tx.set(FOLLOW_REQUESTS, req.id, req.to_doc())
                tx.update(ACCOUNTS, tid, {"pendingFollowRequests": ArrayUnion(rid)})
                return _Transition(
                    FollowOutcome(
                        FollowState.REQUEST_PENDING, "follow request sent", request_id=req.id
                    ),
                    notify="follow_request",
                    notify_sender=rid,
                    notify_recipient=tid,
                )

            return await self._store.run_transaction(txn)

        return await self._mutate_pair(
            rid,
            tid,
            action="toggle_follow",
            fallback_state=lambda: self._durable_state(rid, tid),
            run=run,
        )

    async def resolve_follow_request(
        self,
        request_id: str,
        outcome: Literal["accept", "decline"],
        *,
        acting_id: str | None,
    ) -> Result:
        try:
            actor = require_principal(acting_id)
            if outcome not in ("accept", "decline"):
                raise EngineError(ErrorKind.INVALID, f"unknown outcome {outcome!r}")
            req = FollowRequest.from_doc(
                await self._store.get_document(FOLLOW_REQUESTS, str(request_id))
            )
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        if req is None or req.recipient_id != actor:
            return Err(kind=ErrorKind.NOT_FOUND, detail="follow request not found")

        sender_id, recipient_id = req.sender_id, req.recipient_id

        async def run() -> _Transition:
            async def txn(tx: Transaction) -> _Transition:
                current = FollowRequest.from_doc(await tx.get(FOLLOW_REQUESTS, req.id))
                sender = Account.from_doc(await tx.get(ACCOUNTS, sender_id))
                recipient = Account.from_doc(await tx.get(ACCOUNTS, recipient_id))
                if sender is None or recipient is None:
                    raise EngineError(ErrorKind.NOT_FOUND, "account not found")
                if current is None:
                    raise EngineError(ErrorKind.NOT_FOUND, "follow request not found")
                if not current.is_pending:
                    raise EngineError(
                        ErrorKind.CONFLICT,
                        "request_not_pending",
                        {"status": current.status.value},
                    )
                now = utcnow()
                if outcome == "accept":
                    resolved = current.model_copy(
                        update={"status": FollowRequestStatus.ACCEPTED, "resolved_at": now}
                    )
                    tx.set(FOLLOW_REQUESTS, req.id, resolved.to_doc())
                    tx.update(
                        ACCOUNTS,
                        recipient.id,
                        {
                            "followers": ArrayUnion(sender.id),
                            "pendingFollowRequests": ArrayRemove(sender.id),
                        },
                    )
                    tx.update(ACCOUNTS, sender.id, {"following": ArrayUnion(recipient.id)})
                    return _Transition(
                        FollowOutcome(
                            FollowState.FOLLOWING, "follow request accepted", request_id=req.id
                        ),
                        notify="follow_accepted",
                        notify_sender=recipient.id,
                        notify_recipient=sender.id,
                    )

                resolved = current.model_copy(
                    update={"status": FollowRequestStatus.DECLINED, "resolved_at": now}
                )
                tx.set(FOLLOW_REQUESTS, req.id, resolved.to_doc())
                tx.update(
                    ACCOUNTS, recipient.id, {"pendingFollowRequests": ArrayRemove(sender.id)}
                )
                return _Transition(
                    FollowOutcome(
                        FollowState.NOT_FOLLOWING, "follow request declined", request_id=req.id
                    )
                )

            return await self._store.run_transaction(txn)

        return await self._mutate_pair(
            sender_id,
            recipient_id,
            action="resolve_follow_request",
            fallback_state=lambda: self._durable_state(sender_id, recipient_id),
            run=run,
        )

    async def cancel_follow_request(
        self, requester_id: str | None, target_id: str
    ) -> Result:
        try:
            rid = require_principal(requester_id)
        except EngineError as exc:
            return exc.to_err()
        tid = str(target_id or "").strip()

        async def run() -> _Transition:
            pending = await self.pending_request(rid, tid)
            if pending is None:
                raise EngineError(ErrorKind.NOT_FOUND, "no pending follow request")

            async def txn(tx: Transaction) -> _Transition:
                current = FollowRequest.from_doc(await tx.get(FOLLOW_REQUESTS, pending.id))
                _, target = await _read_pair(tx, rid, tid)
                if current is None or not current.is_pending:
                    raise EngineError(ErrorKind.NOT_FOUND, "no pending follow request")
                tx.set(
                    FOLLOW_REQUESTS,
                    current.id,
                    current.model_copy(
                        update={
                            "status": FollowRequestStatus.CANCELLED,
                            "resolved_at": utcnow(),
                        }
                    ).to_doc(),
                )
                tx.update(ACCOUNTS, target.id, {"pendingFollowRequests": ArrayRemove(rid)})
                return _Transition(
                    FollowOutcome(
                        FollowState.NOT_FOLLOWING,
                        "follow request withdrawn",
                        request_id=current.id,
                    )
                )

            return await self._store.run_transaction(txn)

        return await self._mutate_pair(
            rid,
            tid,
            action="cancel_follow_request",
            fallback_state=lambda: self._durable_state(rid, tid),
            run=run,
        )

    # -- queries and settings ----------------------------------------------

    async def relationship(self, viewer_id: str | None, target_id: str) -> Result:
        try:
            vid = require_principal(viewer_id)
            viewer = await self.get_account(vid)
            target = await self.get_account(str(target_id))
            pending = await self.pending_request(vid, target.id)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        if viewer.id == target.id:
            state = FollowState.NOT_FOLLOWING
        else:
            state = _state_of(viewer, target, pending)
        return Ok(
            Relationship(
                state=state,
                is_following_me=target.id in viewer.followers,
                can_view=can_view(vid, target),
                request_id=pending.id if pending else None,
            )
        )

    async def set_privacy(self, account_id: str | None, is_private: bool) -> Result:
        try:
            aid = require_principal(account_id)
            await self.get_account(aid)
            await with_io_retry(
                lambda: self._store.update_document(
                    ACCOUNTS, aid, {"isPrivate": bool(is_private)}
                ),
                action="set_privacy",
                settings=self._settings,
            )
            account = await self.get_account(aid)
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        log_event(logging.INFO, "set_privacy", account_id=aid, is_private=bool(is_private))
        return Ok(account)

    async def list_followers(self, account_id: str) -> Result:
        try:
            account = await self.get_account(str(account_id))
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(list(account.followers))

    async def list_following(self, account_id: str) -> Result:
        try:
            account = await self.get_account(str(account_id))
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok(list(account.following))

    async def list_pending_requests(self, recipient_id: str | None) -> Result:
        try:
            rid = require_principal(recipient_id)
            rows = await self._store.query_collection(
                FOLLOW_REQUESTS,
                [
                    ("recipientId", "==", rid),
                    ("status", "==", FollowRequestStatus.PENDING.value),
                ],
                order_by="createdAt",
                descending=True,
            )
        except EngineError as exc:
            return exc.to_err()
        except DocumentStoreError as exc:
            return err_from_exception(exc)
        return Ok([FollowRequest.from_doc(r) for r in rows])
