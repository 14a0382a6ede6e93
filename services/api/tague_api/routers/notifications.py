from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationOut(BaseModel):
    id: str
    type: str
    sender_id: str
    status: str
    request_id: str | None = None
    created_at: datetime


class NotificationsOut(BaseModel):
    items: list[NotificationOut]


@router.get("", response_model=NotificationsOut)
async def list_notifications(
    limit: int = 20,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> NotificationsOut:
    records = unwrap(await engine.list_notifications(account_id, limit=limit))
    return NotificationsOut(
        items=[
            NotificationOut(
                id=r.id,
                type=r.type,
                sender_id=r.sender_id,
                status=r.status,
                request_id=r.request_id,
                created_at=r.created_at,
            )
            for r in records
        ]
    )
