from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from tague_api.core.security import create_access_token
from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine
from tague_api.schemas import Account

router = APIRouter(prefix="/api/auth", tags=["auth"])


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenRequest(BaseModel):
    account_id: str = Field(min_length=1, max_length=80)


class MeResponse(BaseModel):
    account_id: str
    display_name: str
    is_private: bool
    follower_count: int
    following_count: int
    pending_request_count: int


@router.post("/token", response_model=AuthResponse)
async def auth_token(req: TokenRequest, engine: Engine = EngineDep) -> AuthResponse:
    result = await engine.get_account(req.account_id)
    if not result.ok:
        raise HTTPException(status_code=401, detail="Unknown account")
    account: Account = result.value
    return AuthResponse(access_token=create_access_token(subject=account.id))


@router.get("/me", response_model=MeResponse)
async def auth_me(
    account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> MeResponse:
    account: Account = unwrap(await engine.get_account(account_id))
    return MeResponse(
        account_id=account.id,
        display_name=account.display_name,
        is_private=account.is_private,
        follower_count=len(account.followers),
        following_count=len(account.following),
        pending_request_count=len(account.pending_follow_requests),
    )


@router.post("/logout")
async def auth_logout(
    account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> dict[str, bool]:
    _ = account_id
    engine.logout()
    return {"ok": True}
