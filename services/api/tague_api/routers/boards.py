from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from tague_api.deps import CurrentUserId, EngineDep, unwrap
from tague_api.engine import Engine
from tague_api.schemas import CuratedBoard

router = APIRouter(prefix="/api/boards", tags=["boards"])


class BoardOut(BaseModel):
    id: str
    name: str
    post_ids: list[str]
    post_count: int
    created_at: datetime
    updated_at: datetime


class BoardsOut(BaseModel):
    items: list[BoardOut]


class BoardNameRequest(BaseModel):
    # Length and blank checks live in the engine so they map to 400, not 422.
    name: str = ""


class AddPostsRequest(BaseModel):
    post_ids: list[str] = Field(default_factory=list, max_length=500)


def _board_out(board: CuratedBoard) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        post_ids=list(board.post_ids),
        post_count=board.post_count,
        created_at=board.created_at,
        updated_at=board.updated_at,
    )


@router.get("", response_model=BoardsOut)
async def list_boards(
    account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BoardsOut:
    return BoardsOut(items=[_board_out(b) for b in unwrap(await engine.list_boards(account_id))])


@router.post("", response_model=BoardOut, status_code=201)
async def create_board(
    req: BoardNameRequest, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BoardOut:
    return _board_out(unwrap(await engine.create_board(account_id, req.name)))


@router.get("/{board_id}", response_model=BoardOut)
async def get_board(
    board_id: str, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> BoardOut:
    return _board_out(unwrap(await engine.get_board(account_id, board_id)))


@router.patch("/{board_id}", response_model=BoardOut)
async def rename_board(
    board_id: str,
    req: BoardNameRequest,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> BoardOut:
    return _board_out(unwrap(await engine.rename_board(account_id, board_id, req.name)))


@router.delete("/{board_id}")
async def delete_board(
    board_id: str, account_id: str = CurrentUserId, engine: Engine = EngineDep
) -> dict[str, object]:
    board = unwrap(await engine.delete_board(account_id, board_id))
    return {"ok": True, "board_id": board.id}


@router.post("/{board_id}/posts", response_model=BoardOut)
async def add_posts(
    board_id: str,
    req: AddPostsRequest,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> BoardOut:
    return _board_out(
        unwrap(await engine.add_posts_to_board(account_id, board_id, req.post_ids))
    )


@router.put("/{board_id}/posts/{post_id}", response_model=BoardOut)
async def save_post(
    board_id: str,
    post_id: str,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> BoardOut:
    return _board_out(unwrap(await engine.save_post_to_board(account_id, board_id, post_id)))


@router.delete("/{board_id}/posts/{post_id}", response_model=BoardOut)
async def remove_post(
    board_id: str,
    post_id: str,
    account_id: str = CurrentUserId,
    engine: Engine = EngineDep,
) -> BoardOut:
    return _board_out(
        unwrap(await engine.remove_post_from_board(account_id, board_id, post_id))
    )
