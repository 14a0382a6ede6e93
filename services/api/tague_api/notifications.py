from __future__ import annotations

import logging
from uuid import uuid4

from tague_api.core.config import Settings
from tague_api.docstore import DocumentStore, DocumentStoreError
from tague_api.logs import log_event
from tague_api.schemas import (
    FOLLOW_REQUESTS,
    NOTIFICATIONS,
    FollowRequest,
    NotificationRecord,
    NotificationType,
    utcnow,
)


class NotificationEmitter:
    """Append-only writer for follow-related notification records.

    Emission is best-effort: by the time it runs the graph mutation has
    committed, so a failed write is logged and swallowed here.
    """

    def __init__(self, store: DocumentStore, *, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or Settings()

    async def emit(
        self,
        type: NotificationType,
        sender_id: str,
        recipient_id: str,
        *,
        request_id: str | None = None,
    ) -> NotificationRecord | None:
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex}",
            type=type,
            sender_id=str(sender_id),
            recipient_id=str(recipient_id),
            status="pending" if type == "follow_request" else "unread",
            request_id=request_id,
            created_at=utcnow(),
        )
        try:
            await self._store.set_document(NOTIFICATIONS, record.id, record.to_doc())
        except DocumentStoreError as exc:
            log_event(
                logging.WARNING,
                "notification_emit_failed",
                type=type,
                sender_id=sender_id,
                recipient_id=recipient_id,
                error=str(exc)[:200],
            )
            return None
        return record

    async def list_for(
        self, recipient_id: str, *, limit: int | None = None
    ) -> list[NotificationRecord]:
        cap = int(self._settings.notifications_page_limit)
        limit = max(1, min(cap, int(limit or cap)))
        rows = await self._store.query_collection(
            NOTIFICATIONS,
            [("recipientId", "==", str(recipient_id))],
            order_by="createdAt",
            descending=True,
        )
        out: list[NotificationRecord] = []
        for row in rows:
            record = NotificationRecord.from_doc(row)
            if record.type == "follow_request" and record.request_id:
                req = FollowRequest.from_doc(
                    await self._store.get_document(FOLLOW_REQUESTS, record.request_id)
                )
                # Answered (or withdrawn) requests drop out of the inbox.
                if req is None or not req.is_pending:
                    continue
            out.append(record)
            if len(out) >= limit:
                break
        return out
