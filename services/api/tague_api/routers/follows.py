from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel

from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine
from tague_api.follow_graph import FollowOutcome
from tague_api.rate_limit import check_follow_rate_limit
from tague_api.schemas import FollowRequest

router = APIRouter(prefix="/api/follows", tags=["follows"])


class FollowOut(BaseModel):
    ok: bool = True
    state: str
    message: str
    request_id: str | None = None


class FollowRequestOut(BaseModel):
    id: str
    sender_id: str
    recipient_id: str
    status: str
    created_at: datetime


class FollowRequestsOut(BaseModel):
    items: list[FollowRequestOut]


def _follow_out(outcome: FollowOutcome) -> FollowOut:
    return FollowOut(
        state=outcome.state.value,
        message=outcome.message,
        request_id=outcome.request_id,
    )


@router.get("/requests", response_model=FollowRequestsOut)
async def pending_requests(
    account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> FollowRequestsOut:
    reqs: list[FollowRequest] = unwrap(await engine.list_pending_requests(account_id))
    return FollowRequestsOut(
        items=[
            FollowRequestOut(
                id=r.id,
                sender_id=r.sender_id,
                recipient_id=r.recipient_id,
                status=r.status.value,
                created_at=r.created_at,
            )
            for r in reqs
        ]
    )


@router.post("/requests/{request_id}/{outcome}", response_model=FollowOut)
async def resolve_request(
    request_id: str,
    outcome: Literal["accept", "decline"],
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> FollowOut:
    return _follow_out(
        unwrap(
            await engine.resolve_follow_request(request_id, outcome, acting_id=account_id)
        )
    )


@router.post("/{target_id}", response_model=FollowOut)
async def toggle_follow(
    request: Request,
    target_id: str,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> FollowOut:
    check_follow_rate_limit(principal_id=account_id, request=request, target_id=target_id)
    return _follow_out(unwrap(await engine.toggle_follow(account_id, target_id)))


@router.delete("/{target_id}/request", response_model=FollowOut)
async def cancel_request(
    request: Request,
    target_id: str,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> FollowOut:
    check_follow_rate_limit(principal_id=account_id, request=request, target_id=target_id)
    return _follow_out(unwrap(await engine.cancel_follow_request(account_id, target_id)))
