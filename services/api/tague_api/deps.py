from __future__ import annotations

from typing import Any, Iterator

from fastapi import Depends, Header, HTTPException

from tague_api.core.config import Settings
from tague_api.core.security import decode_token
from tague_api.docstore import SqlDocumentStore
from tague_api.engine import Engine
from tague_api.results import Err, ErrorKind, Result

_STORE: SqlDocumentStore | None = None

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID: 400,
    ErrorKind.TRANSIENT_IO: 503,
}


def get_store() -> SqlDocumentStore:
    global _STORE
    if _STORE is None:
        _STORE = SqlDocumentStore(settings=Settings())
    return _STORE


def get_engine() -> Iterator[Engine]:
    engine = Engine(get_store())
    try:
        yield engine
    finally:
        engine.logout()


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_token(token)
    except Exception as e:  # noqa: BLE001
        raise HTTPException(status_code=401, detail="Invalid token") from e
    return str(payload.get("sub"))


def unwrap(result: Result) -> Any:
    """Return the ``Ok`` value or raise the matching ``HTTPException``."""
    if result.ok:
        return result.value
    assert isinstance(result, Err)
    status = _STATUS_BY_KIND.get(result.kind, 500)
    if result.kind == ErrorKind.TRANSIENT_IO:
        raise HTTPException(
            status_code=status,
            detail={"error": "retry", "state": result.meta.get("state")},
        )
    raise HTTPException(status_code=status, detail=result.detail or result.kind.value)


CurrentUserId = Depends(get_current_user_id)
EngineDep = Depends(get_engine)
