"""Uniform outcome type for engine operations.

Every public engine operation returns ``Ok(value)`` or ``Err(kind, detail)``.
Store-level exceptions are internal and are translated here, at the engine
boundary, so callers branch on ``kind`` instead of catching.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union

from tague_api.docstore import ConflictError, NotFoundError, TransientStoreError


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    CONFLICT = "conflict"
    ALREADY_PENDING = "already_pending"
    TRANSIENT_IO = "transient_io"
    INVALID = "invalid"


@dataclass(frozen=True)
class Ok:
    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Err]


class EngineError(Exception):
    """Raised inside engine code to short-circuit into an ``Err``."""

    def __init__(
        self, kind: ErrorKind, detail: str = "", meta: dict[str, Any] | None = None
    ) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail
        self.meta = dict(meta or {})

    def to_err(self) -> Err:
        return Err(kind=self.kind, detail=self.detail, meta=self.meta)


def err_from_exception(exc: Exception) -> Err:
    if isinstance(exc, EngineError):
        return exc.to_err()
    if isinstance(exc, NotFoundError):
        return Err(kind=ErrorKind.NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return Err(kind=ErrorKind.CONFLICT, detail=str(exc))
    if isinstance(exc, TransientStoreError):
        return Err(kind=ErrorKind.TRANSIENT_IO, detail=str(exc))
    raise exc


def require_principal(principal_id: str | None) -> str:
    pid = str(principal_id or "").strip()
    if not pid:
        raise EngineError(ErrorKind.UNAUTHENTICATED, "no acting principal")
    return pid
