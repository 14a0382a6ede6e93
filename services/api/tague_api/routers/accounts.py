from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine
from tague_api.follow_graph import Relationship
from tague_api.schemas import Account

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class AccountOut(BaseModel):
    id: str
    display_name: str
    is_private: bool
    follower_count: int
    following_count: int
    created_at: datetime


class CreateAccountRequest(BaseModel):
    account_id: str = Field(min_length=1, max_length=80)
    display_name: str = Field(default="", max_length=80)
    is_private: bool = False


class PrivacyRequest(BaseModel):
    is_private: bool


class RelationshipOut(BaseModel):
    account_id: str
    state: str
    is_following_me: bool
    can_view: bool
    request_id: str | None = None


class AccountIdsOut(BaseModel):
    items: list[str]


def _account_out(account: Account) -> AccountOut:
    return AccountOut(
        id=account.id,
        display_name=account.display_name,
        is_private=account.is_private,
        follower_count=len(account.followers),
        following_count=len(account.following),
        created_at=account.created_at,
    )


@router.post("", response_model=AccountOut, status_code=201)
async def create_account(
    req: CreateAccountRequest, engine: Engine = EngineDep
) -> AccountOut:
    account = unwrap(
        await engine.create_account(
            req.account_id, display_name=req.display_name, is_private=req.is_private
        )
    )
    return _account_out(account)


@router.put("/me/privacy", response_model=AccountOut)
async def set_privacy(
    req: PrivacyRequest,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> AccountOut:
    return _account_out(unwrap(await engine.set_privacy(account_id, req.is_private)))


@router.get("/{account_id}", response_model=AccountOut)
async def get_account(account_id: str, engine: Engine = EngineDep) -> AccountOut:
    return _account_out(unwrap(await engine.get_account(account_id)))


@router.get("/{account_id}/relationship", response_model=RelationshipOut)
async def relationship(
    account_id: str,
    viewer_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> RelationshipOut:
    rel: Relationship = unwrap(await engine.relationship(viewer_id, account_id))
    return RelationshipOut(
        account_id=account_id,
        state=rel.state.value,
        is_following_me=rel.is_following_me,
        can_view=rel.can_view,
        request_id=rel.request_id,
    )


@router.get("/{account_id}/followers", response_model=AccountIdsOut)
async def followers(account_id: str, engine: Engine = EngineDep) -> AccountIdsOut:
    return AccountIdsOut(items=unwrap(await engine.list_followers(account_id)))


@router.get("/{account_id}/following", response_model=AccountIdsOut)
async def following(account_id: str, engine: Engine = EngineDep) -> AccountIdsOut:
    return AccountIdsOut(items=unwrap(await engine.list_following(account_id)))
